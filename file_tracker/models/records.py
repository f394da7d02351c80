"""Database models for master files, file records and scans.

A FileRecord is one tracked document. It may belong to a MasterFile (a
binder/folder grouping) and owns any number of Scans, whose bytes live in the
blob store under ``Scan.filepath``.
"""

from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, DDL, event
from sqlalchemy.orm import relationship

from file_tracker.db.database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, the format stored in every timestamp column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Millisecond precision keeps "most recently updated first" stable.
SQLITE_NOW = "strftime('%Y-%m-%d %H:%M:%f', 'now')"


def touch_trigger_sql(table: str) -> str:
    """
    Trigger that refreshes updated_at after an UPDATE.

    Statements that set updated_at themselves (snapshot import) are left alone.
    """
    return (
        f"CREATE TRIGGER IF NOT EXISTS update_{table}_updated_at "
        f"AFTER UPDATE ON {table} "
        f"FOR EACH ROW WHEN NEW.updated_at IS OLD.updated_at "
        f"BEGIN "
        f"UPDATE {table} SET updated_at = {SQLITE_NOW} WHERE id = NEW.id; "
        f"END"
    )


class MasterFile(Base):
    """A named grouping that file records may optionally belong to."""

    __tablename__ = "master_files"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, unique=True)
    description = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    files = relationship("FileRecord", back_populates="master_file", passive_deletes=True)

    def __repr__(self):
        return f"<MasterFile(id={self.id}, name='{self.name}')>"


class FileRecord(Base):
    """
    A tracked document with descriptive metadata.

    ``tags`` is a free-text delimited string, not a normalized set.
    ``master_file_id`` is nulled out when its master file is deleted.
    """

    __tablename__ = "files"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(Text, nullable=False)
    reference_number = Column(Text, nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    date_received = Column(Text, nullable=False, default="")  # YYYY-MM-DD, compared as text
    date_sent = Column(Text, nullable=False, default="")
    tags = Column(Text, nullable=False, default="")
    master_file_id = Column(
        Integer,
        ForeignKey("master_files.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    master_file = relationship("MasterFile", back_populates="files")
    scans = relationship(
        "Scan",
        back_populates="file",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    def __repr__(self):
        return f"<FileRecord(id={self.id}, title='{self.title}')>"


class Scan(Base):
    """A stored attachment belonging to exactly one file record."""

    __tablename__ = "scans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    file_id = Column(Integer, ForeignKey("files.id", ondelete="CASCADE"), nullable=False, index=True)
    filename = Column(Text, nullable=False)  # Original display name
    filepath = Column(Text, nullable=False)  # Blob store key
    mimetype = Column(String(255), nullable=False)
    size = Column(Integer, nullable=False)
    uploaded_at = Column(DateTime, nullable=False, default=utcnow)

    file = relationship("FileRecord", back_populates="scans")

    def __repr__(self):
        return f"<Scan(id={self.id}, file_id={self.file_id}, filepath='{self.filepath}')>"


# Fresh stores get their triggers from create_all; upgraded stores from 001.
for _table in (MasterFile.__table__, FileRecord.__table__):
    event.listen(
        _table,
        "after_create",
        # DDL applies %-formatting to its statement
        DDL(touch_trigger_sql(_table.name).replace("%", "%%")).execute_if(dialect="sqlite")
    )
