"""Database models - import all models here for schema discovery."""

from attest_api.models.attestation import ATTESTATION_TABLE, AttestationRecord, FileStatus

__all__ = [
    "ATTESTATION_TABLE",
    "AttestationRecord",
    "FileStatus",
]
