import logging
from functools import lru_cache

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import get_settings

logger = logging.getLogger(__name__)

Base = declarative_base()


def make_engine(url: str):
    connect_args = {}
    if url.startswith("sqlite"):
        # Requests are served from a worker thread pool.
        connect_args["check_same_thread"] = False
    return create_engine(url, connect_args=connect_args)


def make_session_factory(bind):
    return sessionmaker(bind=bind, autoflush=False)


def init_db(bind) -> None:
    """Create database tables."""
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=bind)
    logger.info(f"Initialized database at {bind.url}")


@lru_cache
def get_session_factory():
    """Session factory for background jobs, which run outside the web application."""
    engine = make_engine(get_settings().database_url)
    init_db(engine)
    return make_session_factory(engine)


def get_db(request: Request):
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
