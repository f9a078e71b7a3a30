"""Database engine and session management for the user store."""

from collections.abc import Generator

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings


def make_engine(url: str, echo: bool = False, **kwargs) -> Engine:
    """Engine for url; pre-ping drops stale pooled connections."""
    return create_engine(url, pool_pre_ping=True, echo=echo, **kwargs)


def make_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=bind)


engine = make_engine(settings.DATABASE_URL, echo=settings.DEBUG)

SessionLocal = make_session_factory(engine)


def get_db() -> Generator[Session, None, None]:
    """Dependency that yields a DB session, rolls back unfinished work and closes it."""
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def check_db_connected(db: Session) -> bool:
    """Run a trivial query to verify the database is reachable."""
    try:
        db.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        return False
