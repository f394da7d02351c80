"""Repository for master file operations."""

import logging
from typing import Any, Dict, List, Optional, Union
from sqlalchemy import delete, func, insert, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from file_tracker.config.models import PaginationConfig
from file_tracker.errors import ConflictError
from file_tracker.models.records import FileRecord, MasterFile
from .queries import LIKE_ESCAPE, MasterFileQuery, build_pagination, like_pattern, row_to_dict

logger = logging.getLogger(__name__)


class MasterFileRepository:
    """Handle database operations for master files."""

    def __init__(
        self,
        db: Session,
        master_link: bool = True,
        pagination: Optional[PaginationConfig] = None
    ):
        self.db = db
        self.master_link = master_link
        self.pagination = pagination or PaginationConfig()
        self.table = MasterFile.__table__

    def _columns(self) -> list:
        return [
            MasterFile.id,
            MasterFile.name,
            MasterFile.description,
            MasterFile.created_at,
            MasterFile.updated_at,
        ]

    def list(self, params: Union[MasterFileQuery, Dict[str, Any], None] = None) -> Dict[str, Any]:
        """
        List master files ordered by name.

        Args:
            params: MasterFileQuery or mapping with search, page and limit

        Returns:
            {"data": [...], "pagination": {...}}
        """
        query = MasterFileQuery.parse(params)
        limit, show_all = query.resolve_limit(self.pagination.default_limit)

        conditions = []
        if query.search:
            pattern = like_pattern(query.search)
            conditions.append(or_(
                MasterFile.name.like(pattern, escape=LIKE_ESCAPE),
                MasterFile.description.like(pattern, escape=LIKE_ESCAPE)
            ))

        total = self.db.query(func.count(MasterFile.id)).filter(*conditions).scalar()

        rows_query = (
            self.db.query(*self._columns())
            .filter(*conditions)
            .order_by(MasterFile.name.asc(), MasterFile.id.asc())
        )
        if not show_all:
            rows_query = rows_query.limit(limit).offset((query.page - 1) * limit)

        return {
            "data": [row_to_dict(row) for row in rows_query.all()],
            "pagination": build_pagination(query.page, limit, total, show_all),
        }

    def list_all(self) -> List[Dict[str, Any]]:
        """All master files ordered by name (for pickers)."""
        rows = self.db.query(*self._columns()).order_by(MasterFile.name.asc()).all()
        return [row_to_dict(row) for row in rows]

    def get(self, master_file_id: int) -> Optional[Dict[str, Any]]:
        row = self.db.query(*self._columns()).filter(MasterFile.id == master_file_id).first()
        return row_to_dict(row) if row else None

    def get_by_name(self, name: str) -> Optional[Dict[str, Any]]:
        row = self.db.query(*self._columns()).filter(MasterFile.name == name).first()
        return row_to_dict(row) if row else None

    def exists(self, master_file_id: int) -> bool:
        return self.db.query(MasterFile.id).filter(MasterFile.id == master_file_id).first() is not None

    def create(self, name: str, description: Optional[str] = None) -> Dict[str, Any]:
        """
        Create a master file.

        Raises:
            ConflictError: If another master file already has this name
        """
        try:
            result = self.db.execute(
                insert(self.table).values(name=name, description=description or "")
            )
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise ConflictError(f"A master file named '{name}' already exists") from e

        master_file_id = result.inserted_primary_key[0]
        logger.debug(f"Created master file {master_file_id}: {name}")
        return self.get(master_file_id)

    def update(
        self,
        master_file_id: int,
        name: str,
        description: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Rename or re-describe a master file.

        Returns:
            Updated master file or None if not found

        Raises:
            ConflictError: If the new name is taken by another master file
        """
        try:
            result = self.db.execute(
                update(self.table)
                .where(self.table.c.id == master_file_id)
                .values(name=name, description=description or "")
            )
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise ConflictError(f"A master file named '{name}' already exists") from e

        if result.rowcount == 0:
            return None
        return self.get(master_file_id)

    def delete(self, master_file_id: int) -> bool:
        """
        Delete a master file, unassigning every file record that pointed at it.

        Returns:
            True if deleted, False if not found
        """
        if self.master_link:
            # Stores upgraded before foreign keys were enforced may lack ON DELETE SET NULL
            self.db.execute(
                update(FileRecord.__table__)
                .where(FileRecord.__table__.c.master_file_id == master_file_id)
                .values(master_file_id=None)
            )
        result = self.db.execute(delete(self.table).where(self.table.c.id == master_file_id))
        self.db.commit()
        return result.rowcount > 0
