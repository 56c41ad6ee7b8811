"""
SQLAlchemy Models Initialization
"""

from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session

from reelsmith.config.settings import settings


# Create base class for models
Base = declarative_base()


def create_db_engine(database_url: str) -> Engine:
    """Create an engine, preparing the parent directory of SQLite files"""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        db_path = database_url.split("///", 1)[-1]
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(database_url, connect_args=connect_args)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


# Process-wide engine and session factory for the web and worker processes
engine = create_db_engine(settings.database_url)
SessionLocal = create_session_factory(engine)


def get_db() -> Session:
    """
    Dependency function to get database session

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine = None):
    """
    Initialize database by creating all tables
    """
    # Register models on Base.metadata
    from reelsmith.models import generation_job, video_batch  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
