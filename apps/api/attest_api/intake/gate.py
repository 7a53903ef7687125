"""Intake gate: the single authorized path for a PDF into storage.

A request moves through these states, failing closed at any step::

    received -> validated -> attested -> identified -> persisted -> stored -> succeeded

The ledger row is written before the file is stored and committed only after
storage succeeded. If storage fails, or the request is abandoned in between,
the uncommitted row is rolled back, so a record never exists without its file
and a gated PDF never exists without its record.
"""

import enum
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from attest_api.auth.principal import Authorizer, Principal
from attest_api.errors import (
    AttestError,
    AttestationRequiredError,
    PermissionDeniedError,
    StorageError,
    ValidationError,
)
from attest_api.intake.interceptor import Ingress, UploadInterceptor
from attest_api.intake.uploads import IncomingUpload
from attest_api.ledger.service import AttestationLedger
from attest_api.provenance.token import ProvenanceTokenService
from attest_api.provenance.uid import UIDGenerator
from attest_api.storage.service import StorageBackend, StorageRef
from attest_api.tenants.directory import TenantDirectory
from attest_api.utils.metrics import intake_duration, intake_requests, ledger_compensations

logger = logging.getLogger(__name__)

MAX_FILENAME_LENGTH = 255


class IntakeState(str, enum.Enum):
    """Progress of a single intake request."""

    RECEIVED = "received"
    VALIDATED = "validated"
    ATTESTED = "attested"
    IDENTIFIED = "identified"
    PERSISTED = "persisted"
    STORED = "stored"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class IntakeResult:
    """Outcome of a successful intake."""

    record_id: int
    uid: str
    storage_ref: StorageRef
    state: IntakeState = IntakeState.SUCCEEDED
    history: list = field(default_factory=list)


class IntakeGate:
    """Validate, attest, record and store one PDF upload."""

    def __init__(
        self,
        ledger: AttestationLedger,
        uid_generator: UIDGenerator,
        storage: StorageBackend,
        tokens: ProvenanceTokenService,
        interceptor: UploadInterceptor,
        tenants: TenantDirectory,
        authorizer: Authorizer,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        """Initialize gate with its collaborators."""
        self.ledger = ledger
        self.uid_generator = uid_generator
        self.storage = storage
        self.tokens = tokens
        self.interceptor = interceptor
        self.tenants = tenants
        self.authorizer = authorizer
        self.clock = clock

    def submit(
        self,
        principal: Principal,
        files: Sequence[IncomingUpload],
        attested: Optional[bool],
    ) -> IntakeResult:
        """Run one intake request to completion or raise a typed error."""
        history = [IntakeState.RECEIVED]
        started = time.perf_counter()
        log_context = {"tenant_id": principal.tenant_id, "user_id": principal.user_id}

        try:
            upload = self._validate(principal, files)
            history.append(IntakeState.VALIDATED)

            self._require_attestation(attested)
            history.append(IntakeState.ATTESTED)

            tenant_name = self.tenants.tenant_label(principal.tenant_id)
            uid = self._identify(principal, tenant_name, upload.filename)
            history.append(IntakeState.IDENTIFIED)
            log_context["uid"] = uid

            record_id = self.ledger.insert(
                {
                    "uid": uid,
                    "tenant_id": principal.tenant_id,
                    "user_id": principal.user_id,
                    "username": principal.username,
                    "filename": upload.filename,
                    "uploaded_at": self.clock(),
                }
            )
            history.append(IntakeState.PERSISTED)

            storage_ref = self._store(upload, principal, log_context)
            history.append(IntakeState.STORED)

            self._commit(storage_ref, log_context)
            history.append(IntakeState.SUCCEEDED)
        except AttestError as e:
            history.append(IntakeState.FAILED)
            intake_requests.labels(outcome=e.code).inc()
            logger.warning(
                f"PDF intake failed after {history[-2].value}: {e.message}",
                extra={**log_context, "error_code": e.code},
            )
            raise
        finally:
            intake_duration.observe(time.perf_counter() - started)

        intake_requests.labels(outcome="succeeded").inc()
        logger.info(f"PDF intake succeeded for {upload.filename!r}", extra=log_context)
        return IntakeResult(record_id=record_id, uid=uid, storage_ref=storage_ref, history=history)

    def _validate(self, principal: Principal, files: Sequence[IncomingUpload]) -> IncomingUpload:
        if not self.authorizer.can_upload(principal):
            raise PermissionDeniedError(
                "You do not have permission to upload PDFs.", code="upload_capability_required"
            )
        if len(files) == 0:
            raise ValidationError("Please select a PDF file to upload.", code="no_file")
        if len(files) > 1:
            raise ValidationError(
                "You can only upload one PDF at a time. Please select a single file and try again.",
                code="multiple_files",
            )

        upload = files[0]
        if not upload.filename:
            raise ValidationError("The uploaded file has no name.", code="missing_filename")
        if len(upload.filename) > MAX_FILENAME_LENGTH:
            raise ValidationError(
                f"The file name is too long. Please use a name of at most {MAX_FILENAME_LENGTH} characters.",
                code="filename_too_long",
            )
        if upload.size == 0:
            raise ValidationError("The uploaded file is empty.", code="empty_file")
        if not upload.is_pdf_content():
            raise ValidationError(
                "Only PDF files are allowed. Please select a valid PDF.", code="not_a_pdf"
            )
        return upload

    def _require_attestation(self, attested: Optional[bool]) -> None:
        if attested is not True:
            raise AttestationRequiredError(
                "You must attest to the accessibility of this file before uploading."
            )

    def _identify(self, principal: Principal, tenant_name: str, filename: str) -> str:
        try:
            return self.uid_generator.generate(
                principal.tenant_id, tenant_name, principal.username, filename
            )
        except SQLAlchemyError as e:
            logger.error(f"UID generation failed: {e}")
            raise StorageError(
                "The attestation ledger is unavailable; the upload was not recorded",
                code="ledger_unavailable",
            ) from e

    def _store(self, upload: IncomingUpload, principal: Principal, log_context: dict) -> StorageRef:
        try:
            token = self.tokens.issue(upload.digest)
            self.interceptor.screen(upload, token, Ingress.GATE)
            return self.storage.store(
                upload.content,
                upload.filename,
                content_type=upload.content_type,
                tenant_id=principal.tenant_id,
            )
        except AttestError:
            self._compensate(log_context)
            raise
        except Exception as e:
            self._compensate(log_context)
            logger.error(f"Storage hand-off failed: {e}", extra=log_context)
            raise StorageError(
                "The PDF could not be stored; no attestation was recorded.",
                code="file_storage_failed",
            ) from e
        except BaseException:
            # Cancelled between insert and storage: discard the row, then let it propagate
            self._compensate(log_context)
            raise

    def _commit(self, storage_ref: StorageRef, log_context: dict) -> None:
        try:
            self.ledger.commit()
        except (SQLAlchemyError, AttestError) as e:
            self._compensate(log_context)
            removed = self.storage.remove(storage_ref)
            logger.error(
                f"Ledger commit failed after storage; stored file removed={removed}: {e}",
                extra=log_context,
            )
            raise StorageError(
                "The attestation record could not be saved; the upload was discarded.",
                code="ledger_unavailable",
            ) from e
        except BaseException:
            self._compensate(log_context)
            self.storage.remove(storage_ref)
            raise

    def _compensate(self, log_context: dict) -> None:
        ledger_compensations.inc()
        try:
            self.ledger.rollback()
        except SQLAlchemyError as e:
            logger.error(f"Ledger rollback failed: {e}", extra=log_context)
        logger.info("Discarded uncommitted attestation record", extra=log_context)
