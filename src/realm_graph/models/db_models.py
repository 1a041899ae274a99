"""SQLAlchemy database models for the Realm Graph engine."""
import datetime

from sqlalchemy import (Boolean, Column, DateTime, Float, ForeignKey, Integer,
                        String, Text, UniqueConstraint, create_engine, event)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from realm_graph.config import config
from realm_graph.models.schema import RelationshipType

# Create base class for SQLAlchemy models
Base = declarative_base()


class DBNote(Base):
    """Database model for a note."""
    __tablename__ = "notes"
    id = Column(String(255), primary_key=True, index=True)
    owner_id = Column(String(255), nullable=False, index=True)
    title = Column(String(255), nullable=False, index=True)
    content = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, default=datetime.datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.datetime.utcnow, nullable=False, index=True)
    version = Column(Integer, default=0, nullable=False)

    # Relationships
    tag_links = relationship(
        "DBNoteTag",
        back_populates="note",
        order_by="DBNoteTag.position",
        cascade="all, delete-orphan",
    )
    outgoing = relationship(
        "DBRelationship",
        foreign_keys="DBRelationship.source_id",
        back_populates="source",
        order_by="DBRelationship.position",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        """Return string representation of note."""
        return f"<Note(id='{self.id}', owner='{self.owner_id}', title='{self.title}')>"


class DBTag(Base):
    """Database model for a tag."""
    __tablename__ = "tags"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), unique=True, nullable=False)

    def __repr__(self) -> str:
        """Return string representation of tag."""
        return f"<Tag(id={self.id}, name='{self.name}')>"


class DBNoteTag(Base):
    """Association between a note and a tag, keeping tag order."""
    __tablename__ = "note_tags"
    note_id = Column(String(255), ForeignKey("notes.id"), primary_key=True)
    tag_id = Column(Integer, ForeignKey("tags.id"), primary_key=True)
    position = Column(Integer, nullable=False, default=0)

    note = relationship("DBNote", back_populates="tag_links")
    tag = relationship("DBTag", lazy="joined")


class DBRelationship(Base):
    """Database model for a typed relationship between notes."""
    __tablename__ = "relationships"
    id = Column(String(255), primary_key=True)
    source_id = Column(String(255), ForeignKey("notes.id"), nullable=False, index=True)
    target_id = Column(String(255), ForeignKey("notes.id"), nullable=False, index=True)
    relationship_type = Column(
        String(50), default=RelationshipType.REFERENCES.value, nullable=False, index=True
    )
    context = Column(Text, nullable=True)
    strength = Column(Float, default=1.0, nullable=False)
    is_inferred = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.datetime.utcnow, nullable=False)
    traversal_count = Column(Integer, default=0, nullable=False)
    last_traversed_at = Column(DateTime, nullable=True)
    # Insertion order within the source note's outgoing list
    position = Column(Integer, nullable=False, default=0)

    source = relationship(
        "DBNote", foreign_keys=[source_id], back_populates="outgoing"
    )

    # At most one relationship of a given type per ordered pair
    __table_args__ = (
        UniqueConstraint('source_id', 'target_id', 'relationship_type',
                         name='unique_relationship_type'),
    )

    def __repr__(self) -> str:
        """Return string representation of relationship."""
        return (
            f"<Relationship(id='{self.id}', source='{self.source_id}', "
            f"target='{self.target_id}', type='{self.relationship_type}')>"
        )


def init_db(in_memory: bool = None, db_url: str = None):
    """Initialize the database and return the engine.

    File databases get the SQLite hardening settings:
    - WAL (Write-Ahead Logging) mode for atomic writes
    - NORMAL synchronous mode
    - QueuePool with pre-ping to detect stale connections

    In-memory databases use a single shared connection (StaticPool) so every
    session sees the same data.

    Args:
        in_memory: Force an in-memory database. Defaults to config.in_memory_db.
        db_url: Explicit database URL, overrides both the config and in_memory.
    """
    if in_memory is None:
        in_memory = config.in_memory_db

    if db_url is None and in_memory:
        db_url = "sqlite:///:memory:"
    url = db_url or config.get_db_url()

    if ":memory:" in url:
        engine = create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=5,
            max_overflow=10,
            pool_timeout=30,
            pool_recycle=3600,
            pool_pre_ping=True,
            connect_args={"check_same_thread": False},
        )

        # Apply WAL mode and other PRAGMA settings on every connection
        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute("PRAGMA cache_size=-64000")  # 64MB cache
            cursor.close()

    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine=None):
    """Get a session factory for the database."""
    if engine is None:
        engine = init_db()
    return sessionmaker(bind=engine, expire_on_commit=False)
