"""Repository for file record operations."""

import logging
from typing import Any, Dict, List, Optional, Union
from sqlalchemy import String, cast, delete, false, func, insert, null, or_, update
from sqlalchemy.orm import Session

from file_tracker.config.models import PaginationConfig
from file_tracker.models.records import FileRecord, MasterFile, Scan
from .queries import (
    FileQuery,
    LIKE_ESCAPE,
    SHOW_ALL,
    build_pagination,
    like_pattern,
    row_to_dict,
)

logger = logging.getLogger(__name__)

TEXT_FIELDS = ("reference_number", "description", "date_received", "date_sent", "tags")


class FileRecordRepository:
    """
    Handle database operations for file records.

    When the master link migration is missing (``master_link=False``) every
    record reads as unassigned and writes ignore ``master_file_id``.
    """

    def __init__(
        self,
        db: Session,
        master_link: bool = True,
        pagination: Optional[PaginationConfig] = None
    ):
        self.db = db
        self.master_link = master_link
        self.pagination = pagination or PaginationConfig()
        self.table = FileRecord.__table__

    def _columns(self) -> list:
        master_col = (
            FileRecord.master_file_id if self.master_link
            else null().label("master_file_id")
        )
        return [
            FileRecord.id,
            FileRecord.title,
            FileRecord.reference_number,
            FileRecord.description,
            FileRecord.date_received,
            FileRecord.date_sent,
            FileRecord.tags,
            master_col,
            FileRecord.created_at,
            FileRecord.updated_at,
        ]

    def _with_master_name(self, query):
        if self.master_link:
            return query.outerjoin(MasterFile, FileRecord.master_file_id == MasterFile.id)
        return query

    def _master_name_column(self):
        if self.master_link:
            return MasterFile.name.label("master_file_name")
        return null().label("master_file_name")

    def _conditions(self, query: FileQuery) -> list:
        conditions = []

        if query.search:
            pattern = like_pattern(query.search)
            searchable = [
                FileRecord.title,
                FileRecord.reference_number,
                FileRecord.description,
                FileRecord.tags,
                FileRecord.date_received,
                FileRecord.date_sent,
                cast(FileRecord.created_at, String),
                cast(FileRecord.updated_at, String),
            ]
            conditions.append(or_(*(col.like(pattern, escape=LIKE_ESCAPE) for col in searchable)))

        if query.date_from:
            conditions.append(FileRecord.date_received >= query.date_from)

        if query.date_to:
            conditions.append(FileRecord.date_received <= query.date_to)

        if query.tags:
            conditions.append(FileRecord.tags.like(like_pattern(query.tags), escape=LIKE_ESCAPE))

        if query.master_file_id is not None and query.master_file_id != SHOW_ALL:
            if self.master_link:
                conditions.append(FileRecord.master_file_id == query.master_file_id)
            else:
                conditions.append(false())

        return conditions

    def list(self, params: Union[FileQuery, Dict[str, Any], None] = None) -> Dict[str, Any]:
        """
        List file records, most recently updated first.

        Args:
            params: FileQuery or mapping with search, dateFrom, dateTo, tags,
                masterFileId, page and limit

        Returns:
            {"data": [...], "pagination": {...}}; each row carries
            master_file_name and scan_count
        """
        query = FileQuery.parse(params)
        limit, show_all = query.resolve_limit(self.pagination.default_limit)
        conditions = self._conditions(query)

        total = self.db.query(func.count(FileRecord.id)).filter(*conditions).scalar()

        rows_query = (
            self.db.query(
                *self._columns(),
                self._master_name_column(),
                func.count(Scan.id).label("scan_count")
            )
            .select_from(FileRecord)
        )
        rows_query = (
            self._with_master_name(rows_query)
            .outerjoin(Scan, Scan.file_id == FileRecord.id)
            .filter(*conditions)
            .group_by(FileRecord.id)
            .order_by(FileRecord.updated_at.desc(), FileRecord.id.desc())
        )

        if not show_all:
            rows_query = rows_query.limit(limit).offset((query.page - 1) * limit)

        data = [row_to_dict(row) for row in rows_query.all()]

        return {
            "data": data,
            "pagination": build_pagination(query.page, limit, total, show_all),
        }

    def get(self, record_id: int) -> Optional[Dict[str, Any]]:
        """
        Get a file record joined with its master file name.

        Returns:
            Record dict or None if not found
        """
        query = self.db.query(*self._columns(), self._master_name_column()).select_from(FileRecord)
        row = self._with_master_name(query).filter(FileRecord.id == record_id).first()
        return row_to_dict(row) if row else None

    def exists(self, record_id: int) -> bool:
        return self.db.query(FileRecord.id).filter(FileRecord.id == record_id).first() is not None

    def _values(self, data: Dict[str, Any]) -> Dict[str, Any]:
        values = {"title": data.get("title")}
        for name in TEXT_FIELDS:
            value = data.get(name)
            values[name] = "" if value is None else str(value)
        if self.master_link:
            values["master_file_id"] = data.get("master_file_id") or None
        return values

    def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a file record.

        Title presence is checked by the caller; the NOT NULL constraint
        is the only guard here.

        Returns:
            The persisted record including its assigned id
        """
        result = self.db.execute(insert(self.table).values(**self._values(data)))
        self.db.commit()
        record_id = result.inserted_primary_key[0]
        logger.debug(f"Created file record {record_id}")
        return self.get(record_id)

    def update(self, record_id: int, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Replace a file record's fields; omitted optional fields become empty.

        Returns:
            Updated record or None if not found
        """
        result = self.db.execute(
            update(self.table)
            .where(self.table.c.id == record_id)
            .values(**self._values(data))
        )
        self.db.commit()
        if result.rowcount == 0:
            return None
        return self.get(record_id)

    def delete(self, record_id: int) -> bool:
        """
        Delete a file record (the store cascades to its scan rows).

        Scan blobs are not touched.

        Returns:
            True if deleted, False if not found
        """
        result = self.db.execute(delete(self.table).where(self.table.c.id == record_id))
        self.db.commit()
        return result.rowcount > 0

    def list_ids(self) -> List[int]:
        return [row.id for row in self.db.query(FileRecord.id).order_by(FileRecord.id).all()]
