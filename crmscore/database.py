"""
Engine and session factory for lead/deal storage.

Routes take a session from get_session() and close it themselves;
batch jobs and scripts use session_scope() instead.
"""
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from crmscore.config import DATABASE_URL


class Base(DeclarativeBase):
    pass


def _engine_for(database_url):
    # postgres:// is rejected by SQLAlchemy 2.x
    url = database_url.replace('postgres://', 'postgresql://', 1)
    if url.startswith('sqlite'):
        return create_engine(url, connect_args={'check_same_thread': False})
    return create_engine(url, pool_pre_ping=True, pool_size=5, max_overflow=10)


engine = _engine_for(DATABASE_URL)

SessionLocal = sessionmaker(bind=engine)


def get_session():
    """Return a new DB session."""
    return SessionLocal()


@contextmanager
def session_scope():
    """Session that rolls back on error and is always closed."""
    session = SessionLocal()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
