from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool


def _engine_options(dsn: str):
    if dsn.startswith("sqlite"):
        # One shared connection keeps in-memory databases alive across sessions.
        return {
            "connect_args": {"check_same_thread": False},
            "poolclass": StaticPool,
        }
    return {
        "pool_pre_ping": True,
    }


class Base(DeclarativeBase):
    pass


def create_session_factory(dsn: str):
    engine = create_engine(dsn, **_engine_options(dsn))
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)
