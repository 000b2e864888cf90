from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
import os

from taskimport.core.config import settings

POSTGRES_URL = os.getenv("POSTGRES_URL", settings.postgres_url)

engine = create_engine(POSTGRES_URL, pool_pre_ping=True, future=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


def is_postgresql(db) -> bool:
    """Check if the session is bound to PostgreSQL."""
    try:
        dialect_name = db.bind.dialect.name if db.bind else None
        return dialect_name == "postgresql"
    except (AttributeError, TypeError):
        return False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
