"""Append-only attestation ledger."""

import logging
import re
from datetime import datetime, time, timedelta, timezone
from typing import Any, Iterator, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from attest_api.errors import StorageError, ValidationError
from attest_api.ledger.filters import AttestationFilter
from attest_api.models import AttestationRecord, FileStatus

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("uid", "tenant_id", "user_id", "username", "filename", "uploaded_at")

_OBJECT_KEY_PREFIX = re.compile(r"^[0-9a-f]{12}-")
_TENANT_KEY = re.compile(r"^/?tenants/(\d+)/")

_ORDER_COLUMNS = {
    "tenant_id": AttestationRecord.tenant_id,
    "username": AttestationRecord.username,
    "uploaded_at": AttestationRecord.uploaded_at,
    "filename": AttestationRecord.filename,
    "user_id": AttestationRecord.user_id,
}


class AttestationDraft(BaseModel):
    """Caller-supplied fields of a new attestation record.

    attestation_status and file_status are not accepted here; the ledger
    writes both on insert.
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True, frozen=True)

    uid: str = Field(min_length=1, max_length=255)
    tenant_id: int = Field(gt=0)
    user_id: int = Field(gt=0)
    username: str = Field(min_length=1, max_length=100)
    filename: str = Field(min_length=1, max_length=255)
    uploaded_at: datetime

    @field_validator("uploaded_at")
    @classmethod
    def _naive_utc(cls, value: datetime) -> datetime:
        # Stored as naive UTC
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class AttestationLedger:
    """Durable, queryable store of attestation records.

    One instance wraps one session (one unit of work). ``insert`` only flushes;
    the caller decides when to ``commit`` so that a failed storage hand-off can
    still roll the row back.
    """

    def __init__(self, db: Session):
        """Initialize ledger around a database session."""
        self.db = db

    def insert(self, draft: Union[AttestationDraft, Mapping[str, Any]]) -> int:
        """Validate and add a record, returning its surrogate id."""
        draft = self._validate_draft(draft)

        record = AttestationRecord(
            uid=draft.uid,
            tenant_id=draft.tenant_id,
            user_id=draft.user_id,
            username=draft.username,
            filename=draft.filename,
            uploaded_at=draft.uploaded_at,
            _attestation_status=True,
            file_status=FileStatus.ACTIVE.value,
        )
        try:
            self.db.add(record)
            self.db.flush()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Ledger rejected duplicate uid {draft.uid}", extra={"uid": draft.uid})
            raise StorageError(
                f"An attestation record with uid {draft.uid} already exists",
                code="duplicate_uid",
            ) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Ledger insert failed for uid {draft.uid}: {e}")
            raise StorageError(
                "The attestation ledger is unavailable; the upload was not recorded",
                code="ledger_unavailable",
            ) from e

        logger.info(
            "Attestation recorded",
            extra={"uid": record.uid, "tenant_id": record.tenant_id, "user_id": record.user_id},
        )
        return record.id

    def _validate_draft(self, draft: Union[AttestationDraft, Mapping[str, Any]]) -> AttestationDraft:
        if isinstance(draft, AttestationDraft):
            return draft

        data = dict(draft)
        missing = [
            field
            for field in REQUIRED_FIELDS
            if data.get(field) is None or (isinstance(data.get(field), str) and not data[field].strip())
        ]
        if missing:
            raise ValidationError(
                f"Missing required attestation field(s): {', '.join(missing)}",
                code="missing_fields",
            )
        try:
            return AttestationDraft.model_validate(data)
        except PydanticValidationError as e:
            fields = sorted({str(error["loc"][0]) for error in e.errors()})
            raise ValidationError(
                f"Invalid attestation field(s): {', '.join(fields)}",
                code="invalid_fields",
            ) from e

    def _filtered(self, filters: AttestationFilter) -> Query:
        query = self.db.query(AttestationRecord)

        if filters.search:
            pattern = f"%{_escape_like(filters.search)}%"
            query = query.filter(
                or_(
                    AttestationRecord.filename.ilike(pattern, escape="\\"),
                    AttestationRecord.username.ilike(pattern, escape="\\"),
                )
            )
        # Calendar-date bounds, inclusive on both ends
        if filters.date_from:
            query = query.filter(
                AttestationRecord.uploaded_at >= datetime.combine(filters.date_from, time.min)
            )
        if filters.date_to:
            query = query.filter(
                AttestationRecord.uploaded_at
                < datetime.combine(filters.date_to + timedelta(days=1), time.min)
            )
        if filters.tenant_id:
            query = query.filter(AttestationRecord.tenant_id == filters.tenant_id)
        if filters.user_id:
            query = query.filter(AttestationRecord.user_id == filters.user_id)
        return query

    def query(self, filters: Optional[AttestationFilter] = None) -> Iterator[AttestationRecord]:
        """Yield matching records. Each call re-executes the query."""
        filters = filters or AttestationFilter()
        column = _ORDER_COLUMNS[filters.order_by]
        if filters.direction == "asc":
            ordering = (column.asc(), AttestationRecord.id.asc())
        else:
            ordering = (column.desc(), AttestationRecord.id.desc())

        query = self._filtered(filters).order_by(*ordering).offset(filters.offset)
        if filters.limit is not None:
            query = query.limit(filters.limit)

        try:
            yield from query
        except SQLAlchemyError as e:
            logger.error(f"Ledger query failed: {e}")
            raise StorageError("The attestation ledger is unavailable", code="ledger_unavailable") from e

    def count(self, filters: Optional[AttestationFilter] = None) -> int:
        """Count records matching the filter predicates."""
        try:
            return self._filtered(filters or AttestationFilter()).count()
        except SQLAlchemyError as e:
            logger.error(f"Ledger count failed: {e}")
            raise StorageError("The attestation ledger is unavailable", code="ledger_unavailable") from e

    def uid_exists(self, uid: str) -> bool:
        """Check whether a uid is already recorded."""
        try:
            found = self.db.query(AttestationRecord.id).filter(AttestationRecord.uid == uid).first()
        except SQLAlchemyError as e:
            logger.error(f"Ledger uid lookup failed: {e}")
            raise StorageError("The attestation ledger is unavailable", code="ledger_unavailable") from e
        return found is not None

    def get_by_uid(self, uid: str) -> Optional[AttestationRecord]:
        """Fetch a single record by uid."""
        try:
            return self.db.query(AttestationRecord).filter(AttestationRecord.uid == uid).first()
        except SQLAlchemyError as e:
            logger.error(f"Ledger uid lookup failed: {e}")
            raise StorageError("The attestation ledger is unavailable", code="ledger_unavailable") from e

    def update_file_status(
        self,
        file_reference: str,
        status: Union[FileStatus, str],
        tenant_id: Optional[int] = None,
    ) -> bool:
        """Record that the stored file was deleted or replaced.

        Matches the most recent record for the file name. The tenant comes
        from ``tenant_id`` or a ``tenants/{id}/`` object key; without either,
        a name recorded under more than one tenant is ambiguous and matches
        nothing. Returns False when no record matches; the file may predate
        tracking or not be a PDF.
        """
        try:
            status = FileStatus(status)
        except ValueError:
            raise ValidationError(
                f"Unknown file status {status!r}; expected one of "
                f"{', '.join(s.value for s in FileStatus)}",
                code="invalid_file_status",
            )

        reference = file_reference.replace("\\", "/").strip()
        filename = reference.rsplit("/", 1)[-1].strip()
        if not filename:
            return False
        # Object keys carry a random prefix in front of the uploaded name
        candidates = {filename, _OBJECT_KEY_PREFIX.sub("", filename)}

        if not tenant_id:
            key_tenant = _TENANT_KEY.match(reference)
            if key_tenant:
                tenant_id = int(key_tenant.group(1))

        try:
            query = self.db.query(AttestationRecord).filter(AttestationRecord.filename.in_(candidates))
            if tenant_id:
                query = query.filter(AttestationRecord.tenant_id == tenant_id)
            elif query.with_entities(AttestationRecord.tenant_id).distinct().count() > 1:
                logger.warning(
                    f"File {filename} is recorded under several tenants; "
                    "storage event without a tenant ignored"
                )
                return False
            record = query.order_by(
                AttestationRecord.uploaded_at.desc(), AttestationRecord.id.desc()
            ).first()
            if record is None:
                logger.debug(f"No attestation record for file {filename}")
                return False

            record.file_status = status.value
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"File status update failed for {filename}: {e}")
            raise StorageError("The attestation ledger is unavailable", code="ledger_unavailable") from e

        logger.info(
            f"File status of {record.uid} set to {status.value}",
            extra={"uid": record.uid, "tenant_id": record.tenant_id},
        )
        return True

    def tenant_ids(self) -> list[int]:
        """Distinct tenants that have at least one record."""
        return self._distinct(AttestationRecord.tenant_id)

    def user_ids(self) -> list[int]:
        """Distinct uploaders that have at least one record."""
        return self._distinct(AttestationRecord.user_id)

    def _distinct(self, column) -> list[int]:
        try:
            rows = self.db.query(column).distinct().order_by(column).all()
        except SQLAlchemyError as e:
            logger.error(f"Ledger facet query failed: {e}")
            raise StorageError("The attestation ledger is unavailable", code="ledger_unavailable") from e
        return [row[0] for row in rows]

    def commit(self) -> None:
        """Commit the current unit of work."""
        self.db.commit()

    def rollback(self) -> None:
        """Discard uncommitted records of the current unit of work."""
        self.db.rollback()
