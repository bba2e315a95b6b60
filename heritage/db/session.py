from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from heritage.core.config import get_settings

settings = get_settings()


def _connect_args(database_url: str) -> dict:
    # SQLite connections are shared with the request threadpool
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    settings.database_url,
    connect_args=_connect_args(settings.database_url),
    pool_pre_ping=True,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db() -> None:
    """Create any missing tables."""
    from heritage.db.base import Base
    import heritage.db.models  # noqa: F401  (registers the mappers)

    Base.metadata.create_all(bind=engine)
