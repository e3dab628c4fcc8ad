from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool, StaticPool

from app.core.config import settings
from app.models.base import Base
from app.core.logging import logger


def _engine_kwargs(database_url: str) -> dict:
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        return kwargs
    return {"pool_pre_ping": True, "pool_recycle": 300, "poolclass": NullPool}


engine = create_engine(
    settings.DATABASE_URL,
    echo=settings.LOG_LEVEL == "DEBUG",
    **_engine_kwargs(settings.DATABASE_URL),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db() -> None:
    """Create tables for every registered model."""
    # Imported for its side effect of registering the mapped classes.
    import app.models  # noqa: F401

    with engine.begin() as connection:
        Base.metadata.create_all(bind=connection)
    logger.info("Database tables ensured", backend=engine.url.get_backend_name())


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
