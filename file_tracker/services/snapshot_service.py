"""
Snapshot export/import for the record store.

A snapshot is a JSON document holding every row of master_files, files and
scans. Import merges a snapshot into the live store under a skip-or-replace
conflict policy, one SAVEPOINT per row, and rewrites foreign keys through
old-to-new id maps so links survive when ids have to change.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy import insert, select, update
from sqlalchemy.orm import Session

from file_tracker.db.database import Database
from file_tracker.errors import FileTrackerError, ValidationError
from file_tracker.models.records import FileRecord, MasterFile, Scan, utcnow
from file_tracker.repositories.queries import row_to_dict

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = "1.0"

FILE_TEXT_FIELDS = ("reference_number", "description", "date_received", "date_sent", "tags")


class SnapshotValidationError(ValidationError):
    """Snapshot payload is malformed or missing its version marker."""
    pass


class SnapshotImportError(FileTrackerError):
    """Import aborted and rolled back as a whole."""
    pass


class EntityCounts(BaseModel):
    imported: int = 0
    skipped: int = 0
    errors: int = 0


class ImportResults(BaseModel):
    """Per-table tallies of an import."""

    master_files: EntityCounts = Field(default_factory=EntityCounts)
    files: EntityCounts = Field(default_factory=EntityCounts)
    scans: EntityCounts = Field(default_factory=EntityCounts)


def parse_timestamp(value: Any) -> datetime:
    """
    Read a snapshot timestamp as naive UTC; missing values become now.

    Accepts ``YYYY-MM-DD HH:MM:SS[.fff]`` and ISO-8601 with or without offset.
    """
    if value is None or value == "":
        return utcnow()
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _ref(value: Any) -> Optional[int]:
    """Snapshot id usable as a map key: a plain int, otherwise None."""
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def _rows(snapshot: Dict[str, Any], key: str) -> List[Any]:
    rows = snapshot.get(key)
    if rows is None:
        return []
    if not isinstance(rows, list):
        raise SnapshotValidationError(f"Snapshot field '{key}' must be a list")
    return rows


class SnapshotService:
    """Export the record store to a snapshot and merge snapshots back in."""

    def __init__(self, database: Database):
        self.database = database

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def _file_columns(self) -> list:
        columns = [c for c in FileRecord.__table__.c if c.name != "master_file_id"]
        if self.database.master_link_enabled:
            columns.append(FileRecord.__table__.c.master_file_id)
        return columns

    def export_snapshot(self) -> Dict[str, Any]:
        """
        Dump every table, rows in ascending id order.

        Returns:
            {"version", "exported_at", "master_files", "files", "scans"}
        """
        with self.database.session() as db:
            master_files = [
                row_to_dict(row) for row in db.execute(
                    select(*MasterFile.__table__.c).order_by(MasterFile.id)
                )
            ]
            files = []
            for row in db.execute(select(*self._file_columns()).order_by(FileRecord.id)):
                data = row_to_dict(row)
                data.setdefault("master_file_id", None)
                files.append(data)
            scans = [
                row_to_dict(row) for row in db.execute(
                    select(*Scan.__table__.c).order_by(Scan.id)
                )
            ]

        logger.info(
            f"Exported snapshot: {len(master_files)} master files, "
            f"{len(files)} files, {len(scans)} scans"
        )
        return {
            "version": SNAPSHOT_VERSION,
            "exported_at": datetime.now(timezone.utc).isoformat(),
            "master_files": master_files,
            "files": files,
            "scans": scans,
        }

    def write_snapshot_file(self, path: Path) -> Path:
        """Export and write the snapshot as indented UTF-8 JSON."""
        path = Path(path)
        snapshot = self.export_snapshot()
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(snapshot, f, indent=2, ensure_ascii=False)
        logger.debug(f"Wrote snapshot to: {path}")
        return path

    def read_snapshot_file(self, path: Path) -> Dict[str, Any]:
        """
        Raises:
            SnapshotValidationError: If the file is not valid JSON
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise SnapshotValidationError(f"Invalid JSON in {Path(path).name}: {e}") from e

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def import_snapshot(self, snapshot: Any, overwrite: bool = False) -> ImportResults:
        """
        Merge a snapshot into the store.

        Rows are processed master_files, then files, then scans. A row that
        conflicts with an existing one (same master file name; same file
        title and reference number; same scan filepath) is skipped, or with
        ``overwrite`` replaced in place keeping the existing id. Snapshot ids
        are reused when free.

        Args:
            snapshot: Parsed snapshot document
            overwrite: Replace conflicting rows instead of skipping them

        Returns:
            ImportResults

        Raises:
            SnapshotValidationError: Not a dict or no version (nothing written)
            SnapshotImportError: Unexpected failure (everything rolled back)
        """
        if not isinstance(snapshot, dict):
            raise SnapshotValidationError("Snapshot must be a JSON object")
        if not snapshot.get("version"):
            raise SnapshotValidationError("Invalid data format: missing version")

        master_rows = _rows(snapshot, "master_files")
        file_rows = _rows(snapshot, "files")
        scan_rows = _rows(snapshot, "scans")

        results = ImportResults()
        master_link = self.database.master_link_enabled

        logger.info(
            f"Importing snapshot version {snapshot.get('version')} "
            f"(overwrite: {overwrite}): {len(master_rows)} master files, "
            f"{len(file_rows)} files, {len(scan_rows)} scans"
        )

        with self.database.session() as db:
            try:
                master_map = self._import_rows(
                    db, "master_files", master_rows, results.master_files,
                    lambda row: self._import_master_file(db, row, overwrite)
                )
                file_map = self._import_rows(
                    db, "files", file_rows, results.files,
                    lambda row: self._import_file(db, row, overwrite, master_map, master_link)
                )
                self._import_rows(
                    db, "scans", scan_rows, results.scans,
                    lambda row: self._import_scan(db, row, overwrite, file_map)
                )
                db.commit()
            except Exception as e:
                db.rollback()
                logger.error(f"Snapshot import failed, rolled back: {e}", exc_info=True)
                raise SnapshotImportError(f"Failed to import data: {e}") from e

        logger.info(
            f"Import complete: master_files={results.master_files.model_dump()}, "
            f"files={results.files.model_dump()}, scans={results.scans.model_dump()}"
        )
        return results

    def _import_rows(
        self,
        db: Session,
        table: str,
        rows: List[Any],
        counts: EntityCounts,
        handler: Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]
    ) -> Dict[Any, int]:
        """
        Run ``handler`` for every row inside its own SAVEPOINT.

        ``handler`` returns {"id": target_id, "skipped": bool}.

        Returns:
            Map of snapshot id to target id for rows that landed or matched
        """
        id_map: Dict[int, int] = {}
        for index, row in enumerate(rows):
            old_id = row.get("id") if isinstance(row, dict) else None
            key = _ref(old_id)
            try:
                if not isinstance(row, dict):
                    raise SnapshotValidationError(f"Row {index} is not an object")
                with db.begin_nested():
                    outcome = handler(row)
            except Exception as e:
                counts.errors += 1
                logger.error(f"Error importing {table} row {old_id if old_id is not None else index}: {e}")
                continue

            if outcome["skipped"]:
                counts.skipped += 1
                logger.debug(f"Skipped existing {table} row {old_id} (matches id {outcome['id']})")
            else:
                counts.imported += 1
            if key is not None:
                id_map[key] = outcome["id"]
        return id_map

    def _free_id(self, db: Session, model, snapshot_id: Any) -> Optional[int]:
        """The snapshot id if it is a usable integer not taken in the target."""
        if isinstance(snapshot_id, bool) or not isinstance(snapshot_id, int) or snapshot_id < 1:
            return None
        taken = db.query(model.id).filter(model.id == snapshot_id).first()
        return None if taken else snapshot_id

    def _insert(self, db: Session, model, snapshot_id: Any, values: Dict[str, Any]) -> int:
        free_id = self._free_id(db, model, snapshot_id)
        if free_id is not None:
            values = {"id": free_id, **values}
        result = db.execute(insert(model.__table__).values(**values))
        return result.inserted_primary_key[0]

    def _replace(self, db: Session, model, target_id: int, values: Dict[str, Any]) -> None:
        table = model.__table__
        db.execute(update(table).where(table.c.id == target_id).values(**values))
        stamp = values.get("updated_at")
        if stamp is not None:
            # the touch trigger fires when updated_at was written unchanged
            db.execute(
                update(table)
                .where(table.c.id == target_id, table.c.updated_at != stamp)
                .values(updated_at=stamp)
            )

    def _import_master_file(self, db: Session, row: Dict[str, Any], overwrite: bool) -> Dict[str, Any]:
        name = row.get("name")
        if not name:
            raise SnapshotValidationError("Master file row has no name")

        values = {
            "name": name,
            "description": _text(row.get("description")),
            "created_at": parse_timestamp(row.get("created_at")),
            "updated_at": parse_timestamp(row.get("updated_at")),
        }

        existing = db.query(MasterFile.id).filter(MasterFile.name == name).first()
        if existing:
            if not overwrite:
                return {"id": existing.id, "skipped": True}
            self._replace(db, MasterFile, existing.id, values)
            return {"id": existing.id, "skipped": False}

        return {"id": self._insert(db, MasterFile, row.get("id"), values), "skipped": False}

    def _import_file(
        self,
        db: Session,
        row: Dict[str, Any],
        overwrite: bool,
        master_map: Dict[Any, int],
        master_link: bool
    ) -> Dict[str, Any]:
        title = row.get("title")
        reference_number = _text(row.get("reference_number"))

        values = {"title": title}
        for name in FILE_TEXT_FIELDS:
            values[name] = _text(row.get(name))
        values["created_at"] = parse_timestamp(row.get("created_at"))
        values["updated_at"] = parse_timestamp(row.get("updated_at"))

        if master_link:
            old_master = row.get("master_file_id")
            new_master = master_map.get(_ref(old_master)) if old_master is not None else None
            if old_master is not None and new_master is None:
                logger.warning(
                    f"File '{title}' references unknown master file {old_master}; link dropped"
                )
            values["master_file_id"] = new_master

        existing = (
            db.query(FileRecord.id)
            .filter(FileRecord.title == title, FileRecord.reference_number == reference_number)
            .first()
        )
        if existing:
            if not overwrite:
                return {"id": existing.id, "skipped": True}
            self._replace(db, FileRecord, existing.id, values)
            return {"id": existing.id, "skipped": False}

        return {"id": self._insert(db, FileRecord, row.get("id"), values), "skipped": False}

    def _import_scan(
        self,
        db: Session,
        row: Dict[str, Any],
        overwrite: bool,
        file_map: Dict[Any, int]
    ) -> Dict[str, Any]:
        filepath = row.get("filepath")
        if not filepath:
            raise SnapshotValidationError("Scan row has no filepath")

        existing = db.query(Scan.id).filter(Scan.filepath == filepath).first()
        if existing and not overwrite:
            return {"id": existing.id, "skipped": True}

        old_file = row.get("file_id")
        if _ref(old_file) not in file_map:
            raise SnapshotValidationError(f"Scan {filepath} references unknown file {old_file}")

        values = {
            "file_id": file_map[_ref(old_file)],
            "filename": _text(row.get("filename")) or filepath,
            "filepath": filepath,
            "mimetype": _text(row.get("mimetype")) or "application/octet-stream",
            "size": int(row.get("size") or 0),
            "uploaded_at": parse_timestamp(row.get("uploaded_at")),
        }

        if existing:
            db.execute(update(Scan.__table__).where(Scan.__table__.c.id == existing.id).values(**values))
            return {"id": existing.id, "skipped": False}

        return {"id": self._insert(db, Scan, row.get("id"), values), "skipped": False}
