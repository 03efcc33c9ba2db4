from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

# ---------------------------------------------------------------------------
# Database configuration
# ---------------------------------------------------------------------------

# Declarative base class that the ORM models should inherit from.
Base = declarative_base()

# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------

def make_engine(database_url: str) -> Engine:
    """Create the engine for ``database_url``.

    ``check_same_thread`` must be disabled for SQLite so FastAPI's worker
    threads can share the pool.  A pure in-memory SQLite database lives in a
    single connection, hence ``StaticPool``.
    """
    kwargs = {"echo": False}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    return create_engine(database_url, **kwargs)


def make_session_factory(engine: Engine) -> sessionmaker:
    """Session factory handing out one short-lived session per store call."""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Create tables if they do not yet exist.

    Importing ``tutor.memory.models`` registers all subclasses with the Base
    metadata, after which ``metadata.create_all`` will build the schema.
    """
    # The models import stays inside the function to avoid a circular import
    # (models imports Base from this module).
    from . import models  # noqa: F401  (side-effect import)

    Base.metadata.create_all(bind=engine)
