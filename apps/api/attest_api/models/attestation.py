"""Attestation ledger model."""

import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Integer,
    String,
    UniqueConstraint,
    event,
    func,
    inspect,
    true,
)

from attest_api.db.base import Base
from attest_api.errors import ImmutableRecordError

ATTESTATION_TABLE = "pdf_attestations"

# SQLite only autoincrements INTEGER PRIMARY KEY columns
_BigId = BigInteger().with_variant(Integer, "sqlite")


class FileStatus(str, enum.Enum):
    """Lifecycle of the stored file an attestation refers to."""

    ACTIVE = "active"
    DELETED = "deleted"
    REPLACED = "replaced"


class AttestationRecord(Base):
    """Append-only record of one attested PDF upload."""

    __tablename__ = ATTESTATION_TABLE

    id = Column(_BigId, primary_key=True, autoincrement=True)
    uid = Column(String(255), nullable=False)
    tenant_id = Column(BigInteger, nullable=False, index=True)
    user_id = Column(BigInteger, nullable=False, index=True)
    username = Column(String(100), nullable=False)
    filename = Column(String(255), nullable=False)
    uploaded_at = Column(DateTime, nullable=False, index=True)
    _attestation_status = Column(
        "attestation_status", Boolean, nullable=False, default=True, server_default=true()
    )
    file_status = Column(
        String(50),
        nullable=False,
        default=FileStatus.ACTIVE.value,
        server_default=FileStatus.ACTIVE.value,
    )
    created_at = Column(
        DateTime, nullable=False, default=datetime.utcnow, server_default=func.now(), index=True
    )

    __table_args__ = (UniqueConstraint("uid", name="uq_pdf_attestations_uid"),)

    @property
    def attestation_status(self) -> bool:
        """Whether the uploader attested. Written only by the ledger insert path."""
        return bool(self._attestation_status)

    def __repr__(self) -> str:
        return f"<AttestationRecord id={self.id} uid={self.uid!r} file_status={self.file_status!r}>"


# Everything except file_status is write-once.
IMMUTABLE_FIELDS = (
    "uid",
    "tenant_id",
    "user_id",
    "username",
    "filename",
    "uploaded_at",
    "created_at",
    "_attestation_status",
)


@event.listens_for(AttestationRecord, "before_update")
def _reject_immutable_changes(mapper, connection, target):
    state = inspect(target)
    changed = [
        name.lstrip("_") for name in IMMUTABLE_FIELDS if state.attrs[name].history.has_changes()
    ]
    if changed:
        raise ImmutableRecordError(
            f"Attestation record {target.uid} is append-only; "
            f"refusing to change: {', '.join(changed)}"
        )


@event.listens_for(AttestationRecord, "before_delete")
def _reject_delete(mapper, connection, target):
    raise ImmutableRecordError(
        f"Attestation record {target.uid} is permanent and cannot be deleted"
    )
