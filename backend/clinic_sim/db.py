import logging
from pathlib import Path

from fastapi import Request
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, Session

BASE_DIR = Path(__file__).resolve().parent
DB_PATH = BASE_DIR / "practice.db"
DB_URL = f"sqlite:///{DB_PATH}"

logger = logging.getLogger(__name__)


def make_engine(url: str = DB_URL) -> Engine:
    """
    SQLite engine for the practice store. An in-memory url ("sqlite://")
    gets a single shared connection so every session sees the same data.
    """
    if url == "sqlite://":
        return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    return create_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        connect_args={"check_same_thread": False, "timeout": 30},
    )


engine = make_engine()


def create_db_and_tables(bind: Engine = engine) -> None:
    SQLModel.metadata.create_all(bind)


def verify_connection(bind: Engine = engine) -> None:
    """Fail fast if the practice database cannot be reached."""
    try:
        with bind.connect() as conn:
            conn.exec_driver_sql("SELECT 1")
    except OperationalError:
        logger.exception("Database connectivity check failed for %s", bind.url)
        raise


def get_session(request: Request):
    # the app owns its engine so tests can point it at a throwaway database
    with Session(request.app.state.engine) as session:
        yield session
