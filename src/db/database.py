"""Generate database session"""

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from src.core.config import Settings
from src.db.schema import Base


def build_engine(settings: Settings) -> Engine:
    engine = create_engine(settings.database_url)
    # Ensure all tables are created
    Base.metadata.create_all(bind=engine)
    return engine


def build_session(settings: Settings) -> Session:
    """The lobby is a single long-lived process, so it works with one session for its whole lifetime."""
    session_factory = sessionmaker(bind=build_engine(settings))
    return session_factory()
