from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session
from sqlalchemy.pool import StaticPool

from . import config


class Base(DeclarativeBase):
    pass


def table_args(*extra) -> tuple:
    return (*extra, {"schema": config.DB_SCHEMA} if config.DB_SCHEMA else {})


def make_engine(url: str):
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url.rstrip("/").endswith("sqlite+pysqlite:"):
            # one shared connection, otherwise every checkout sees an empty db
            kwargs["poolclass"] = StaticPool
        return create_engine(url, future=True, **kwargs)
    return create_engine(url, future=True, pool_pre_ping=True)


engine = make_engine(config.DB_URL)


def get_session() -> Session:
    with Session(engine) as s:
        yield s


def init_db() -> None:
    from . import models  # noqa: F401  registers the tables on Base.metadata

    Base.metadata.create_all(engine)


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
