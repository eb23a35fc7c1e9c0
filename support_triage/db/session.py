from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from support_triage.core.config import settings


def build_engine(database_url: str) -> Engine:
    """Create an engine with per-backend connection options."""
    url = make_url(database_url)
    backend = url.get_backend_name()

    if backend.startswith("postgresql"):
        return create_engine(
            database_url,
            pool_pre_ping=True,
            connect_args={"options": "-c timezone=utc"},
        )

    if backend == "sqlite":
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        # In-memory databases live on a single connection
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)

    return create_engine(database_url, pool_pre_ping=True)


engine = build_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
