"""Storage lifecycle notifications."""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from attest_api.auth.principal import Principal
from attest_api.dependencies import get_ledger, require_audit
from attest_api.ledger.service import AttestationLedger
from attest_api.utils.metrics import file_status_updates

router = APIRouter(prefix="/v1", tags=["storage-events"])


class StorageEvent(BaseModel):
    """A stored file was deleted or replaced."""

    file_reference: str = Field(..., min_length=1, description="Storage key, path or file name")
    status: str = Field(..., description="deleted, replaced or active")
    tenant_id: Optional[int] = Field(None, gt=0)


class StorageEventResult(BaseModel):
    matched: bool
    status: str


@router.post("/storage-events", response_model=StorageEventResult)
def storage_event(
    event: StorageEvent,
    ledger: AttestationLedger = Depends(get_ledger),
    principal: Principal = Depends(require_audit),
):
    """Apply a storage event to the matching attestation record, if any."""
    matched = ledger.update_file_status(event.file_reference, event.status, tenant_id=event.tenant_id)
    file_status_updates.labels(status=event.status, matched=str(matched).lower()).inc()
    return StorageEventResult(matched=matched, status=event.status)
