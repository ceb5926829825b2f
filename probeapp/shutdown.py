"""
Shutdown handling
=================
uvicorn already traps SIGINT/SIGTERM; this server logs which signal arrived
and then lets uvicorn drain: stop accepting connections, wait for in-flight
requests up to ``timeout_graceful_shutdown``, run app shutdown, exit.
A second SIGINT forces the exit.
"""

import logging
import math
import signal

import uvicorn

from probeapp.config import Settings

logger = logging.getLogger("uvicorn.error")


def _signal_name(sig: int) -> str:
    try:
        return signal.Signals(sig).name
    except ValueError:
        return str(sig)


class ProbeServer(uvicorn.Server):
    def handle_exit(self, sig, frame):
        if self.should_exit:
            logger.warning(f"Caught {_signal_name(sig)} while already shutting down")
        else:
            logger.info(f"Caught {_signal_name(sig)}, draining in-flight requests and exiting")
        super().handle_exit(sig, frame)


def build_server(app, settings: Settings) -> ProbeServer:
    # uvicorn takes whole seconds; round up so 0.5 never becomes "off"
    config = uvicorn.Config(
        app,
        host="0.0.0.0",
        port=settings.port,
        log_level=settings.log_level,
        timeout_keep_alive=math.ceil(settings.idle_timeout),
        timeout_graceful_shutdown=math.ceil(settings.shutdown_timeout),
        h11_max_incomplete_event_size=settings.max_header_bytes,
    )
    return ProbeServer(config)
