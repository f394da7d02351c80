"""List filters and pagination shared by the repositories."""

import math
from datetime import datetime
from typing import Any, Dict, Literal, Optional, Tuple, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from file_tracker.errors import ValidationError

SHOW_ALL = "all"

LIKE_ESCAPE = "\\"


def row_to_dict(row) -> Dict[str, Any]:
    """Plain dict for a result row, timestamps as ISO-8601 strings."""
    data = dict(row._mapping)
    for key, value in data.items():
        if isinstance(value, datetime):
            data[key] = value.isoformat()
    return data


def like_pattern(term: str) -> str:
    """Substring LIKE pattern matching ``term`` literally."""
    escaped = (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )
    return f"%{escaped}%"


class ListQuery(BaseModel):
    """
    Paging options common to every list call.

    ``limit`` may be ``"all"`` (or an explicit ``None``) to disable paging;
    when omitted the configured default applies.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    search: Optional[str] = None
    page: int = Field(default=1, ge=1)
    limit: Union[int, Literal["all"], None] = None

    @field_validator("page", mode="before")
    @classmethod
    def blank_page_is_first(cls, v):
        return 1 if v == "" else v

    @classmethod
    def parse(cls, params: Union["ListQuery", Dict[str, Any], None]):
        """Build a query from a plain mapping, raising our ValidationError."""
        if isinstance(params, cls):
            return params
        try:
            return cls.model_validate(params or {})
        except PydanticValidationError as e:
            details = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise ValidationError(f"Invalid list parameters: {details}") from e

    def resolve_limit(self, default_limit: int) -> Tuple[Optional[int], bool]:
        """
        Returns:
            (limit, show_all); limit is None when show_all is True
        """
        if self.limit == SHOW_ALL or ("limit" in self.model_fields_set and self.limit is None):
            return None, True
        limit = default_limit if self.limit is None else self.limit
        if limit < 1:
            raise ValidationError(f"limit must be at least 1, got {limit}")
        return limit, False


class MasterFileQuery(ListQuery):
    """Master file listing: search over name and description."""
    pass


class FileQuery(ListQuery):
    """File record listing filters."""

    date_from: Optional[str] = Field(default=None, alias="dateFrom")
    date_to: Optional[str] = Field(default=None, alias="dateTo")
    tags: Optional[str] = None
    master_file_id: Union[int, Literal["all"], None] = Field(default=None, alias="masterFileId")

    @field_validator("master_file_id", mode="before")
    @classmethod
    def blank_master_is_unfiltered(cls, v):
        return None if v == "" else v


def build_pagination(page: int, limit: Optional[int], total: int, show_all: bool) -> Dict[str, Any]:
    """Pagination block returned next to every page of data."""
    if show_all:
        return {
            "page": 1,
            "limit": total,
            "total": total,
            "totalPages": 1,
            "hasNext": False,
            "hasPrev": False,
            "showAll": True,
        }

    total_pages = math.ceil(total / limit)
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": total_pages,
        "hasNext": page < total_pages,
        "hasPrev": page > 1,
        "showAll": False,
    }
