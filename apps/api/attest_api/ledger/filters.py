"""Filter configuration for ledger queries, counts and exports."""

import logging
from datetime import date
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from attest_api.errors import ValidationError

logger = logging.getLogger(__name__)

# Allow-list of sortable columns. Anything else falls back to the default.
ORDERABLE_COLUMNS = ("tenant_id", "username", "uploaded_at", "filename", "user_id")
DEFAULT_ORDER_BY = "uploaded_at"
DEFAULT_DIRECTION = "desc"
DEFAULT_LIMIT = 100


def _blank_to_none(value: Any) -> Any:
    # Admin forms submit "" or 0 for "no filter"
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    if value == 0 or value == "0":
        return None
    return value


class AttestationFilter(BaseModel):
    """Every option recognized by ledger queries, with its default."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    search: str = ""
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    tenant_id: Optional[int] = Field(default=None, gt=0)
    user_id: Optional[int] = Field(default=None, gt=0)
    order_by: str = DEFAULT_ORDER_BY
    direction: str = DEFAULT_DIRECTION
    offset: int = Field(default=0, ge=0)
    limit: Optional[int] = Field(default=DEFAULT_LIMIT, gt=0)

    @field_validator("search", mode="before")
    @classmethod
    def _normalize_search(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value).strip()

    @field_validator("date_from", "date_to", "tenant_id", "user_id", mode="before")
    @classmethod
    def _optional_filters(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("order_by", mode="before")
    @classmethod
    def _allow_listed_order(cls, value: Any) -> str:
        if isinstance(value, str) and value in ORDERABLE_COLUMNS:
            return value
        if value not in (None, ""):
            logger.debug(f"Ignoring unsupported order_by {value!r}")
        return DEFAULT_ORDER_BY

    @field_validator("direction", mode="before")
    @classmethod
    def _allow_listed_direction(cls, value: Any) -> str:
        if isinstance(value, str) and value.strip().lower() in ("asc", "desc"):
            return value.strip().lower()
        return DEFAULT_DIRECTION

    @field_validator("offset", mode="before")
    @classmethod
    def _default_offset(cls, value: Any) -> Any:
        return 0 if value in (None, "") else value

    def unpaginated(self) -> "AttestationFilter":
        """Same predicates and order, every matching row."""
        return self.model_copy(update={"offset": 0, "limit": None})


def build_filter(**options: Any) -> AttestationFilter:
    """Validate raw filter options at the boundary."""
    try:
        return AttestationFilter(**options)
    except PydanticValidationError as e:
        fields = sorted({".".join(str(part) for part in error["loc"]) for error in e.errors()})
        raise ValidationError(
            f"Invalid attestation filter option(s): {', '.join(fields)}",
            code="invalid_filter",
        ) from e
