"""Tabular export of attestation records for compliance audits."""

import csv
from datetime import datetime
from typing import Iterable, Iterator, NamedTuple, Optional, TextIO

from attest_api.ledger.filters import AttestationFilter
from attest_api.ledger.service import AttestationLedger
from attest_api.tenants.directory import TenantDirectory

EXPORT_HEADER = (
    "UID",
    "Site",
    "Tenant ID",
    "Username",
    "User ID",
    "Filename",
    "Upload Date",
    "Attestation Status",
    "Created At",
)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class ExportRow(NamedTuple):
    """One exported attestation."""

    uid: str
    tenant_label: str
    tenant_id: int
    username: str
    user_id: int
    filename: str
    uploaded_at: str
    status_text: str
    created_at: str


def status_text(attested: bool) -> str:
    """Human-readable attestation status."""
    return "Attested" if attested else "Not Attested"


def _format_timestamp(value: Optional[datetime]) -> str:
    return value.strftime(TIMESTAMP_FORMAT) if value else ""


def export_rows(
    ledger: AttestationLedger,
    tenants: TenantDirectory,
    filters: Optional[AttestationFilter] = None,
) -> Iterator[ExportRow]:
    """Yield every record matching the filter, ignoring pagination."""
    filters = (filters or AttestationFilter()).unpaginated()
    labels: dict[int, str] = {}
    for record in ledger.query(filters):
        if record.tenant_id not in labels:
            labels[record.tenant_id] = tenants.tenant_label(record.tenant_id)
        yield ExportRow(
            uid=record.uid,
            tenant_label=labels[record.tenant_id],
            tenant_id=record.tenant_id,
            username=record.username,
            user_id=record.user_id,
            filename=record.filename,
            uploaded_at=_format_timestamp(record.uploaded_at),
            status_text=status_text(record.attestation_status),
            created_at=_format_timestamp(record.created_at),
        )


def write_csv(rows: Iterable[ExportRow], stream: TextIO) -> int:
    """Write header and rows as CSV. Returns the number of data rows."""
    writer = csv.writer(stream)
    writer.writerow(EXPORT_HEADER)
    written = 0
    for row in rows:
        writer.writerow(row)
        written += 1
    return written


def export_filename(now: Optional[datetime] = None) -> str:
    """Download name for an export generated at ``now`` (UTC)."""
    now = now or datetime.utcnow()
    return f"pdf-attestations-{now.strftime('%Y-%m-%d-%H%M%S')}.csv"
