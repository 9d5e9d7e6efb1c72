import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from .config import ConfigManager
from .models import Base

logger = logging.getLogger("Database")

DATABASE_URL = ConfigManager.database_url()

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db():
    """Creates missing tables. Schema migrations are managed outside this service."""
    logger.info("Initializing database tables...")
    Base.metadata.create_all(bind=engine)


def get_db():
    """FastAPI dependency yielding a session per request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
