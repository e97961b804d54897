from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

import sqlalchemy as sa
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base
from .repo import Repository

logger = logging.getLogger("gallery_sync.storage")


def _make_sqlite_url(path: Union[str, Path]) -> str:
    p = Path(path)
    if not p.is_absolute():
        p = p.resolve()
    # Use forward slashes for SQLAlchemy URL on Windows
    return f"sqlite:///{p.as_posix()}"


def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite only enforces ON DELETE CASCADE with this pragma set per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_engine(path: Optional[Union[str, Path]] = None) -> Engine:
    """Return a SQLAlchemy Engine for the given path.

    - If path is None or 'memory', return an in-memory SQLite engine shared across threads.
    - If path is a filesystem path, ensure parent directories exist and return a file-based SQLite engine.
    """
    connect_args = {"check_same_thread": False}
    if path is None or path == "memory":
        engine = sa.create_engine(
            "sqlite:///:memory:", echo=False, connect_args=connect_args, poolclass=StaticPool
        )
    else:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        engine = sa.create_engine(
            _make_sqlite_url(path), echo=False, connect_args={**connect_args, "timeout": 30}
        )

    sa.event.listen(engine, "connect", _enable_foreign_keys)
    return engine


def init_db(engine: Engine) -> None:
    """Create database schema for the application's models."""
    Base.metadata.create_all(engine)
    logger.info("storage.init_db completed; engine=%s", engine.url)


class Database:
    """Engine plus session factory; every unit of work gets its own session."""

    def __init__(self, path: Optional[Union[str, Path]] = None, *, engine: Optional[Engine] = None) -> None:
        self.engine = engine or get_engine(path)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    def init_schema(self) -> None:
        init_db(self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Yield a Session that commits on exit and rolls back on exception."""
        sess: Session = self._session_factory()
        try:
            yield sess
            sess.commit()
        except Exception:
            sess.rollback()
            raise
        finally:
            sess.close()

    @contextmanager
    def unit_of_work(self) -> Iterator[Repository]:
        """Yield a Repository whose writes commit atomically when the block exits."""
        with self.session() as sess:
            yield Repository(sess)

    def dispose(self) -> None:
        self.engine.dispose()
