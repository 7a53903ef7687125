"""Audit routes: list, inspect and export attestation records."""

import io
import math
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, ConfigDict

from attest_api.auth.principal import Principal
from attest_api.dependencies import get_ledger, get_tenant_directory, require_audit
from attest_api.ledger.export import export_filename, export_rows, write_csv
from attest_api.ledger.filters import build_filter
from attest_api.ledger.service import AttestationLedger
from attest_api.settings import get_settings
from attest_api.tenants.directory import TenantDirectory

router = APIRouter(prefix="/v1/attestations", tags=["attestations"])


class AttestationResponse(BaseModel):
    """Attestation record as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    uid: str
    tenant_id: int
    user_id: int
    username: str
    filename: str
    uploaded_at: datetime
    attestation_status: bool
    file_status: str
    created_at: datetime


class AttestationPage(BaseModel):
    """One page of filtered attestation records."""

    items: list[AttestationResponse]
    total: int
    page: int
    page_size: int
    pages: int


class TenantFacet(BaseModel):
    id: int
    label: str


class AttestationFacets(BaseModel):
    """Filter choices for the audit view."""

    tenants: list[TenantFacet]
    users: list[int]


def _filter_options(
    search: Optional[str] = Query(None, description="Substring of filename or username"),
    date_from: Optional[str] = Query(None, description="First upload date, YYYY-MM-DD"),
    date_to: Optional[str] = Query(None, description="Last upload date, YYYY-MM-DD"),
    tenant_id: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None),
    order_by: Optional[str] = Query(None),
    direction: Optional[str] = Query(None, description="asc or desc"),
) -> dict:
    return {
        "search": search,
        "date_from": date_from,
        "date_to": date_to,
        "tenant_id": tenant_id,
        "user_id": user_id,
        "order_by": order_by,
        "direction": direction,
    }


@router.get("", response_model=AttestationPage)
def list_attestations(
    options: dict = Depends(_filter_options),
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1, le=1000),
    ledger: AttestationLedger = Depends(get_ledger),
    principal: Principal = Depends(require_audit),
):
    """List attestation records matching the filters, one page at a time."""
    page_size = page_size or get_settings().default_page_size
    filters = build_filter(**options, offset=(page - 1) * page_size, limit=page_size)

    total = ledger.count(filters)
    items = [AttestationResponse.model_validate(record) for record in ledger.query(filters)]
    return AttestationPage(
        items=items,
        total=total,
        page=page,
        page_size=page_size,
        pages=math.ceil(total / page_size),
    )


@router.get("/facets", response_model=AttestationFacets)
def attestation_facets(
    ledger: AttestationLedger = Depends(get_ledger),
    tenants: TenantDirectory = Depends(get_tenant_directory),
    principal: Principal = Depends(require_audit),
):
    """Tenants and uploaders that have at least one record."""
    return AttestationFacets(
        tenants=[
            TenantFacet(id=tenant_id, label=tenants.tenant_label(tenant_id))
            for tenant_id in ledger.tenant_ids()
        ],
        users=ledger.user_ids(),
    )


@router.get("/export")
def export_attestations(
    options: dict = Depends(_filter_options),
    ledger: AttestationLedger = Depends(get_ledger),
    tenants: TenantDirectory = Depends(get_tenant_directory),
    principal: Principal = Depends(require_audit),
):
    """Download every matching record as CSV."""
    filters = build_filter(**options)
    buffer = io.StringIO()
    written = write_csv(export_rows(ledger, tenants, filters), buffer)
    if written == 0:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No records found to export.",
        )

    return Response(
        content=buffer.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{export_filename()}"'},
    )


@router.get("/{uid}", response_model=AttestationResponse)
def get_attestation(
    uid: str,
    ledger: AttestationLedger = Depends(get_ledger),
    principal: Principal = Depends(require_audit),
):
    """Get a single attestation record."""
    record = ledger.get_by_uid(uid)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Attestation {uid} not found",
        )
    return AttestationResponse.model_validate(record)
