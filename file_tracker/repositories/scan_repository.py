"""Repository for scan (attachment) rows."""

import logging
from typing import Any, Dict, List, Optional
from sqlalchemy import delete, insert
from sqlalchemy.orm import Session

from file_tracker.models.records import Scan
from .queries import row_to_dict

logger = logging.getLogger(__name__)


class ScanRepository:
    """Handle database operations for scans. Blob bytes are not touched here."""

    def __init__(self, db: Session):
        self.db = db
        self.table = Scan.__table__

    def _columns(self) -> list:
        return [
            Scan.id,
            Scan.file_id,
            Scan.filename,
            Scan.filepath,
            Scan.mimetype,
            Scan.size,
            Scan.uploaded_at,
        ]

    def list_by_file(self, file_id: int) -> List[Dict[str, Any]]:
        """Scans of one file record, newest upload first."""
        rows = (
            self.db.query(*self._columns())
            .filter(Scan.file_id == file_id)
            .order_by(Scan.uploaded_at.desc(), Scan.id.desc())
            .all()
        )
        return [row_to_dict(row) for row in rows]

    def get(self, scan_id: int) -> Optional[Dict[str, Any]]:
        row = self.db.query(*self._columns()).filter(Scan.id == scan_id).first()
        return row_to_dict(row) if row else None

    def create(
        self,
        file_id: int,
        filename: str,
        filepath: str,
        mimetype: str,
        size: int
    ) -> Dict[str, Any]:
        """
        Insert a scan row.

        Raises:
            sqlalchemy.exc.IntegrityError: If the owning file record does not exist
        """
        try:
            result = self.db.execute(
                insert(self.table).values(
                    file_id=file_id,
                    filename=filename,
                    filepath=filepath,
                    mimetype=mimetype,
                    size=size
                )
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        scan_id = result.inserted_primary_key[0]
        logger.debug(f"Created scan {scan_id} for file {file_id} -> {filepath}")
        return self.get(scan_id)

    def delete(self, scan_id: int) -> bool:
        result = self.db.execute(delete(self.table).where(self.table.c.id == scan_id))
        self.db.commit()
        return result.rowcount > 0

    def list_all_filepaths(self) -> List[str]:
        """Every blob key referenced by a scan row."""
        return [row.filepath for row in self.db.query(Scan.filepath).all()]
