"""SQLite connection and session management."""

from pathlib import Path

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker

from cvevault.core.config import settings


def ensure_sqlite_parent_dir(database_url: str) -> None:
    """Create the directory holding the SQLite file so the driver can create the file."""
    database = make_url(database_url).database
    if not database or database == ":memory:":
        return
    Path(database).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Build an engine for a SQLite URL.

    check_same_thread is disabled because store calls run in worker threads
    (asyncio.to_thread) rather than on the thread that opened the connection.
    """
    ensure_sqlite_parent_dir(database_url)
    return create_engine(
        database_url,
        connect_args={"check_same_thread": False},
        pool_pre_ping=True,
        echo=echo,
    )


engine = create_db_engine(settings.DATABASE_URL, echo=settings.DEBUG)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def check_db_connected(db: Session) -> bool:
    """Run a trivial query to verify the database is reachable."""
    try:
        db.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
