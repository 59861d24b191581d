from __future__ import annotations

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from careauthz.db.base import Base


def build_engine(db_url: str) -> Engine:
    return create_engine(
        db_url,
        connect_args={"check_same_thread": False} if db_url.startswith("sqlite") else {},
    )


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, class_=Session)


def init_db(engine: Engine) -> None:
    """Create the consent tables if they do not exist yet."""

    # Register models on Base.metadata.
    from careauthz.models import consent  # noqa: F401

    Base.metadata.create_all(bind=engine)
