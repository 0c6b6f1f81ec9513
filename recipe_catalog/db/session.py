from __future__ import annotations

from collections.abc import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import DEFAULT_DATABASE_CONFIG, DatabaseConfig

Base = declarative_base()


def make_engine(config: DatabaseConfig = DEFAULT_DATABASE_CONFIG) -> Engine:
    connect_args = {}
    if config.url.startswith("sqlite"):
        # Sessions are handed to background tasks running on other threads
        connect_args["check_same_thread"] = False
    return create_engine(config.url, echo=config.echo, connect_args=connect_args)


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    if type(dbapi_connection).__module__.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = make_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind: Engine | None = None) -> None:
    """Create all tables on the given engine (defaults to the app engine)."""
    from . import models  # noqa: F401  register mappers

    Base.metadata.create_all(bind=bind or engine)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
