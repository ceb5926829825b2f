"""
Album store
===========
Read-only access to the ``albums`` table of an external MySQL database.
Used by GET /getAlbums and by the ``probeapp-albums`` command, which lists
the same rows straight to stdout.
"""

import sys
import threading
from dataclasses import asdict, dataclass
from typing import List, Optional, Sequence, Union

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.exc import SQLAlchemyError

from probeapp.config import load_settings

ALBUMS_QUERY = text("select * from albums")


class AlbumStoreError(Exception):
    """The album database is unconfigured, unreachable or returned bad rows."""


@dataclass(frozen=True)
class Album:
    id: int
    title: str
    artist: str
    year: int

    def to_dict(self) -> dict:
        return asdict(self)


class AlbumStore:
    def __init__(self, url: Union[str, URL, None], connect_timeout: float = 5.0):
        self.url = make_url(url) if url is not None else None
        self.connect_timeout = connect_timeout
        self._engine: Optional[Engine] = None
        self._lock = threading.Lock()

    @property
    def configured(self) -> bool:
        return self.url is not None

    def _get_engine(self) -> Engine:
        if self.url is None:
            raise AlbumStoreError("database connection is not configured")
        with self._lock:
            if self._engine is None:
                connect_args = {}
                if self.url.get_backend_name() == "mysql":
                    connect_args["connect_timeout"] = int(self.connect_timeout)
                self._engine = create_engine(self.url, pool_pre_ping=True, connect_args=connect_args)
            return self._engine

    def list_albums(self) -> List[Album]:
        engine = self._get_engine()
        try:
            with engine.connect() as conn:
                rows = conn.execute(ALBUMS_QUERY).all()
        except SQLAlchemyError as e:
            raise AlbumStoreError(f"album query failed: {e}") from e

        albums = []
        for row in rows:
            try:
                album = Album(id=int(row[0]), title=str(row[1]), artist=str(row[2]), year=int(row[3]))
            except (IndexError, TypeError, ValueError) as e:
                raise AlbumStoreError(f"unexpected album row {tuple(row)!r}: {e}") from e
            albums.append(album)
        return albums

    def dispose(self) -> None:
        with self._lock:
            if self._engine is not None:
                self._engine.dispose()
                self._engine = None


def main(argv: Optional[Sequence[str]] = None) -> int:
    """List every album in the configured database, one per line."""
    settings = load_settings(argv, prog="probeapp-albums")
    store = AlbumStore(settings.database_url)
    try:
        albums = store.list_albums()
    except AlbumStoreError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    finally:
        store.dispose()

    for album in albums:
        print(f"{album.id}\t{album.title}\t{album.artist}\t{album.year}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
