"""Database engine and session management."""

import logging
from collections.abc import Iterator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from invoiceflow.db.models import Base

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):  # type: ignore[no-untyped-def]
    # SQLite ignores ON DELETE CASCADE unless foreign keys are switched on per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _is_in_memory(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url


class Database:
    """Process-scoped database handle owning the engine and session factory."""

    def __init__(self, url: str, echo: bool = False) -> None:
        self.url = url
        self.engine = self._create_engine(url, echo)
        self._session_factory = sessionmaker(
            bind=self.engine, autoflush=False, autocommit=False, expire_on_commit=False
        )
        logger.info(f"Database engine created: dialect={self.engine.dialect.name}")

    @staticmethod
    def _create_engine(url: str, echo: bool) -> Engine:
        if url.startswith("sqlite"):
            kwargs: dict = {"connect_args": {"check_same_thread": False}, "echo": echo}
            if _is_in_memory(url):
                kwargs["poolclass"] = StaticPool
            engine = create_engine(url, **kwargs)
            event.listen(engine, "connect", _enable_sqlite_foreign_keys)
            return engine

        return create_engine(url, pool_pre_ping=True, echo=echo)

    def create_all(self) -> None:
        """Create missing tables."""
        Base.metadata.create_all(bind=self.engine)

    def session(self) -> Session:
        """Open a new session. Callers are responsible for closing it."""
        return self._session_factory()

    def sessions(self) -> Iterator[Session]:
        """Yield a session and close it afterwards (FastAPI dependency style)."""
        db = self.session()
        try:
            yield db
        finally:
            db.close()

    def ping(self) -> bool:
        """Check database connectivity."""
        try:
            with self.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning(f"Database ping failed: {e}")
            return False

    def dispose(self) -> None:
        self.engine.dispose()
