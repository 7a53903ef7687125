"""Error taxonomy for the attestation service.

Every error carries a stable ``code`` and a user-facing message that names the
precondition which failed. HTTP adapters render them via ``status_code``.
"""

from typing import Optional


class AttestError(Exception):
    """Base class for all service errors."""

    status_code = 400
    default_code = "attest_error"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def to_dict(self) -> dict:
        """Serialize for an API response body."""
        return {"error_code": self.code, "detail": self.message}


class ValidationError(AttestError):
    """Malformed or missing input (file count, MIME mismatch, missing fields)."""

    status_code = 422
    default_code = "validation_failed"


class AttestationRequiredError(AttestError):
    """The accessibility attestation flag was absent or false."""

    status_code = 422
    default_code = "attestation_required"


class PermissionDeniedError(AttestError):
    """The principal lacks the capability required for the operation."""

    status_code = 403
    default_code = "permission_denied"


class BlockedError(AttestError):
    """A PDF arrived through an ingress other than the intake gate."""

    status_code = 403
    default_code = "pdf_blocked"


class StorageError(AttestError):
    """Ledger or file storage backend failure, including uniqueness races."""

    status_code = 503
    default_code = "storage_unavailable"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message, code)
        if self.code == "duplicate_uid":
            self.status_code = 409


class ImmutableRecordError(AttestError):
    """An attempt was made to change or delete an immutable ledger field."""

    status_code = 409
    default_code = "record_immutable"


class SchemaError(AttestError):
    """Table creation or migration failed. Fatal at startup."""

    status_code = 500
    default_code = "schema_unavailable"
