from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from backend.app.config import get_settings


def build_engine(database_url: str):
    """Create an engine; SQLite connections are shared across worker threads."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args = {
            "check_same_thread": False,
            "timeout": get_settings().sqlite_busy_timeout_seconds,
        }
    return create_engine(database_url, connect_args=connect_args)


# Create SQLAlchemy engine
engine = build_engine(get_settings().database_url)

# Create sessionmaker
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Create tables in the database
def create_tables():
    from backend.app.models.models import Base
    Base.metadata.create_all(bind=engine)

# Dependency to get the database session
def get_db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
