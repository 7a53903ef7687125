"""Upload interceptor: the one policy every upload ingress consults.

Non-PDF uploads pass through unchanged. A PDF is only admitted when it carries
a valid provenance token issued by the intake gate for exactly that payload;
everything else is rejected with a BlockedError that tells the user where PDFs
must go instead.
"""

import enum
import logging
from typing import Optional

from attest_api.errors import BlockedError
from attest_api.intake.uploads import IncomingUpload
from attest_api.provenance.token import ProvenanceTokenService
from attest_api.utils.metrics import interceptor_decisions

logger = logging.getLogger(__name__)


class Ingress(str, enum.Enum):
    """Upload entry points the platform exposes."""

    GATE = "gate"
    MEDIA = "media"
    ATTACHMENTS = "attachments"


BLOCK_MESSAGES = {
    Ingress.MEDIA: (
        "PDF uploads are not allowed through the standard media upload. "
        "Please use the PDF upload tool (POST /v1/pdf-uploads) and attest to the file's accessibility."
    ),
    Ingress.ATTACHMENTS: (
        "PDF uploads are not allowed through the attachments API. "
        "Please use the PDF upload tool (POST /v1/pdf-uploads)."
    ),
}
DEFAULT_BLOCK_MESSAGE = (
    "This PDF did not pass through the attested PDF upload tool and was rejected."
)


class UploadInterceptor:
    """Reject PDFs that lack intake gate provenance."""

    def __init__(self, tokens: ProvenanceTokenService):
        """Initialize interceptor."""
        self.tokens = tokens

    def screen(
        self,
        upload: IncomingUpload,
        provenance_token: Optional[str],
        ingress: Ingress,
    ) -> IncomingUpload:
        """Return the upload unchanged if it may proceed to storage."""
        ingress = Ingress(ingress)
        if not upload.looks_like_pdf():
            interceptor_decisions.labels(ingress=ingress.value, decision="pass").inc()
            return upload

        if self.tokens.consume(provenance_token, upload.digest):
            interceptor_decisions.labels(ingress=ingress.value, decision="admitted").inc()
            return upload

        interceptor_decisions.labels(ingress=ingress.value, decision="blocked").inc()
        logger.warning(
            f"Blocked PDF {upload.filename!r} without intake provenance",
            extra={"ingress": ingress.value, "has_token": bool(provenance_token)},
        )
        raise BlockedError(BLOCK_MESSAGES.get(ingress, DEFAULT_BLOCK_MESSAGE), code="pdf_blocked")
