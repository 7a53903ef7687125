"""Attested PDF upload endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from attest_api.auth.principal import Principal
from attest_api.dependencies import get_intake_gate, get_ledger, get_principal
from attest_api.intake.gate import IntakeGate
from attest_api.intake.uploads import IncomingUpload
from attest_api.ledger.filters import build_filter
from attest_api.ledger.service import AttestationLedger
from attest_api.routes.attestations import AttestationResponse
from attest_api.settings import get_settings

router = APIRouter(prefix="/v1/pdf-uploads", tags=["intake"])

_TRUTHY = frozenset({"true", "1", "yes", "on"})


class IntakeResponse(BaseModel):
    """Result of a successful attested upload."""

    record_id: int
    uid: str
    filename: str
    attestation_status: bool
    storage: dict


def parse_attested(value: Optional[str]) -> Optional[bool]:
    """Checkbox-style form value to a flag. None when absent."""
    if value is None:
        return None
    return value.strip().lower() in _TRUTHY


@router.post("", response_model=IntakeResponse, status_code=status.HTTP_201_CREATED)
async def upload_pdf(
    file: Optional[list[UploadFile]] = File(None, description="Exactly one PDF"),
    attested: Optional[str] = Form(None, description="Accessibility attestation, must be true"),
    principal: Principal = Depends(get_principal),
    gate: IntakeGate = Depends(get_intake_gate),
):
    """Upload one PDF together with its accessibility attestation."""
    uploads = []
    for part in file or []:
        content = await part.read()
        uploads.append(IncomingUpload.build(part.filename, content, part.content_type))

    result = await run_in_threadpool(gate.submit, principal, uploads, parse_attested(attested))
    return IntakeResponse(
        record_id=result.record_id,
        uid=result.uid,
        filename=result.storage_ref.filename,
        attestation_status=True,
        storage=result.storage_ref.to_dict(),
    )


@router.get("/recent", response_model=list[AttestationResponse])
def recent_uploads(
    principal: Principal = Depends(get_principal),
    ledger: AttestationLedger = Depends(get_ledger),
):
    """The caller's most recent attested uploads on its current tenant."""
    filters = build_filter(
        tenant_id=principal.tenant_id,
        user_id=principal.user_id,
        limit=get_settings().recent_uploads_limit,
    )
    return [AttestationResponse.model_validate(record) for record in ledger.query(filters)]
