"""
Database configuration and the notes table using SQLAlchemy.
Supports SQLite (default) or PostgreSQL.

The capture pipeline only ever writes one row here: the autosaved note.
"""

import os
import uuid
import logging
from datetime import datetime
from sqlalchemy import create_engine, Column, String, Text, DateTime, event
from sqlalchemy.orm import declarative_base, sessionmaker

from engine.errors import PersistenceFailure

logger = logging.getLogger(__name__)

# Database URL - defaults to SQLite, can use PostgreSQL
DATABASE_URL = os.environ.get(
    "DATABASE_URL",
    "sqlite:///./data/voice_capture.db"
)

# Handle PostgreSQL URL format from some cloud providers
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)


def make_engine(url: str):
    """Create an engine; SQLite gets WAL mode and cross-thread access."""
    if not url.startswith("sqlite"):
        return create_engine(url)

    engine = create_engine(url, connect_args={"check_same_thread": False})

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    return engine


engine = make_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


# ============================================================================
# MODELS
# ============================================================================

class Note(Base):
    """A note created from a voice capture in autosave mode."""
    __tablename__ = "notes"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(200), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    content = Column(Text, nullable=False)
    category = Column(String(100))
    source = Column(String(50), default="voice_capture")
    created_at = Column(DateTime, default=datetime.utcnow)


# ============================================================================
# DATABASE HELPERS
# ============================================================================

def init_db(bind=None):
    """Initialize database tables."""
    bind = bind or engine
    # Ensure the data directory exists for file-backed SQLite
    if bind.url.drivername.startswith("sqlite") and bind.url.database:
        directory = os.path.dirname(bind.url.database)
        if directory:
            os.makedirs(directory, exist_ok=True)
    Base.metadata.create_all(bind=bind)


class SqlNoteStore:
    """Note store backed by the notes table.

    Implements the engine's NoteStore interface: insert_note(row) -> id.
    """

    def __init__(self, session_factory=SessionLocal):
        self._session_factory = session_factory

    def insert_note(self, row: dict) -> str:
        db = self._session_factory()
        try:
            note = Note(
                user_id=row["user_id"],
                title=row["title"],
                content=row["content"],
                category=row.get("category"),
            )
            db.add(note)
            db.commit()
            db.refresh(note)
            logger.debug(f"Inserted note {note.id} for user {note.user_id}")
            return note.id
        except Exception as e:
            db.rollback()
            raise PersistenceFailure(f"Failed to insert note: {e}") from e
        finally:
            db.close()
