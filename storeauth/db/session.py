from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from storeauth.core.config import get_settings

settings = get_settings()

connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}

engine = create_engine(
    settings.database_url,
    echo=settings.database_echo,
    connect_args=connect_args,
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db() -> None:
    """Create any missing tables."""
    from storeauth.db import models  # noqa: F401  (register models)
    from storeauth.db.base import Base

    Base.metadata.create_all(bind=engine)
