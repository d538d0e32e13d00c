"""
Database setup and session management.
Uses SQLite with WAL mode for concurrency stability.
"""
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from config import DATA_DIR, DATABASE_URL
from models import Base

is_sqlite = DATABASE_URL.startswith("sqlite")

if is_sqlite:
    DATA_DIR.mkdir(parents=True, exist_ok=True)

# Create engine with SQLite optimizations
engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if is_sqlite else {},  # Required for SQLite with FastAPI
    echo=False,
)


if is_sqlite:

    # Enable WAL mode for better concurrency
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()


# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db():
    """Create all tables."""
    Base.metadata.create_all(bind=engine)


def get_db():
    """Dependency for FastAPI to get DB session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
