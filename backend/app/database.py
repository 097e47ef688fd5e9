"""SQLAlchemy engine, session factory and request-scoped session dependency."""
from fastapi import Depends
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from app.config import settings

_connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(settings.DATABASE_URL, connect_args=_connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_session_factory() -> sessionmaker:
    """Session factory dependency; the realtime endpoint opens one session per operation."""
    return SessionLocal


def get_db(factory: sessionmaker = Depends(get_session_factory)):
    """Yield a session for one request and always close it."""
    db = factory()
    try:
        yield db
    finally:
        db.close()
