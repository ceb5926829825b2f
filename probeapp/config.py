"""
Runtime configuration
=====================
Every setting comes from an environment variable with a default, and the
ones an operator tweaks by hand also have a command-line flag. A non-empty
flag wins over a non-empty env var, which wins over the default.

    PORT / --port                  listening port (8081)
    DB_HOST / --db-host            MySQL host for /getAlbums
    DB_PORT / --db-port            MySQL port (3306)
    DB_USER / --db-user
    DB_PASSWORD / --db-password
    DB_NAME / --db-name
    STARTUP_DELAY / --startup-delay  seconds before /readyz turns green (10)
    LOG_LEVEL / --log-level        uvicorn log level (info)
"""

import argparse
import os
import socket
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

from sqlalchemy.engine import URL

DEFAULT_PORT = 8081
DEFAULT_DB_PORT = 3306


def _default_hostname() -> str:
    return os.getenv("HOSTNAME") or socket.gethostname()


@dataclass
class Settings:
    port: int = DEFAULT_PORT
    db_host: Optional[str] = None
    db_port: int = DEFAULT_DB_PORT
    db_user: Optional[str] = None
    db_password: Optional[str] = None
    db_name: Optional[str] = None
    startup_delay: float = 10.0
    # Server limits: time to first response byte, keep-alive idle, header size
    write_timeout: float = 10.0
    idle_timeout: float = 15.0
    max_header_bytes: int = 1 << 20
    shutdown_timeout: float = 10.0
    log_level: str = "info"
    hostname: str = field(default_factory=_default_hostname)

    @property
    def database_url(self) -> Optional[URL]:
        """MySQL URL for the album store, or None when any credential is missing."""
        if not (self.db_host and self.db_user and self.db_password and self.db_name):
            return None
        return URL.create(
            "mysql+pymysql",
            username=self.db_user,
            password=self.db_password,
            host=self.db_host,
            port=self.db_port,
            database=self.db_name,
        )


def build_parser(prog: Optional[str] = None) -> argparse.ArgumentParser:
    # Flags are strings so that an empty value means "not given", like the env vars
    parser = argparse.ArgumentParser(prog=prog, description="Kubernetes probe test service")
    parser.add_argument("--port", default="", help="service port")
    parser.add_argument("--db-host", default="", help="database host")
    parser.add_argument("--db-port", default="", help="database port")
    parser.add_argument("--db-user", default="", help="database user")
    parser.add_argument("--db-password", default="", help="database password")
    parser.add_argument("--db-name", default="", help="database name")
    parser.add_argument("--startup-delay", default="", help="seconds before the readiness probe passes")
    parser.add_argument("--log-level", default="", help="log level (debug, info, warning, ...)")
    return parser


def _pick(flag_value: str, environ: Mapping[str, str], key: str) -> Optional[str]:
    if flag_value:
        return flag_value
    value = environ.get(key)
    return value if value else None


def _to_port(parser: argparse.ArgumentParser, name: str, raw: Optional[str], default: int) -> int:
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        parser.error(f"invalid {name} value: {raw!r}")
    if not 0 < value < 65536:
        parser.error(f"{name} out of range: {value}")
    return value


def _to_seconds(parser: argparse.ArgumentParser, name: str, raw: Optional[str], default: float) -> float:
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        parser.error(f"invalid {name} value: {raw!r}")
    if value < 0:
        parser.error(f"{name} must not be negative: {value}")
    return value


def load_settings(
    argv: Optional[Sequence[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
    prog: Optional[str] = None,
) -> Settings:
    """Resolve settings from flags and environment.

    Invalid numeric values abort through ``argparse`` (SystemExit, status 2),
    which is the fatal-startup path: nothing has been bound yet.
    """
    parser = build_parser(prog)
    args = parser.parse_args(argv)
    env = os.environ if environ is None else environ

    return Settings(
        port=_to_port(parser, "PORT", _pick(args.port, env, "PORT"), DEFAULT_PORT),
        db_host=_pick(args.db_host, env, "DB_HOST"),
        db_port=_to_port(parser, "DB_PORT", _pick(args.db_port, env, "DB_PORT"), DEFAULT_DB_PORT),
        db_user=_pick(args.db_user, env, "DB_USER"),
        db_password=_pick(args.db_password, env, "DB_PASSWORD"),
        db_name=_pick(args.db_name, env, "DB_NAME"),
        startup_delay=_to_seconds(parser, "STARTUP_DELAY", _pick(args.startup_delay, env, "STARTUP_DELAY"), 10.0),
        write_timeout=_to_seconds(parser, "WRITE_TIMEOUT", env.get("WRITE_TIMEOUT") or None, 10.0),
        idle_timeout=_to_seconds(parser, "IDLE_TIMEOUT", env.get("IDLE_TIMEOUT") or None, 15.0),
        shutdown_timeout=_to_seconds(parser, "SHUTDOWN_TIMEOUT", env.get("SHUTDOWN_TIMEOUT") or None, 10.0),
        log_level=(_pick(args.log_level, env, "LOG_LEVEL") or "info").lower(),
        hostname=env.get("HOSTNAME") or socket.gethostname(),
    )
