"""Incoming upload payloads and content type detection."""

import mimetypes
from dataclasses import dataclass, field
from typing import Optional

from attest_api.provenance.token import content_digest

PDF_CONTENT_TYPE = "application/pdf"
PDF_CONTENT_TYPES = frozenset({"application/pdf", "application/x-pdf"})

# The PDF header may be preceded by junk bytes, but must start within the first KiB
_PDF_HEADER_WINDOW = 1024

_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"PK\x03\x04", "application/zip"),
)


def sniff_content_type(content: bytes) -> Optional[str]:
    """Detect a content type from magic bytes. None if unrecognized."""
    if b"%PDF-" in content[:_PDF_HEADER_WINDOW]:
        return PDF_CONTENT_TYPE
    for signature, content_type in _SIGNATURES:
        if content.startswith(signature):
            return content_type
    return None


def clean_filename(filename: Optional[str]) -> str:
    """Basename of a client-supplied file name."""
    if not filename:
        return ""
    return filename.replace("\\", "/").rsplit("/", 1)[-1].strip()


def _normalize_type(content_type: Optional[str]) -> Optional[str]:
    if not content_type:
        return None
    return content_type.split(";", 1)[0].strip().lower() or None


@dataclass(frozen=True)
class IncomingUpload:
    """One file as received by an ingress."""

    filename: str
    content: bytes = field(repr=False)
    declared_type: Optional[str] = None

    @classmethod
    def build(cls, filename: Optional[str], content: bytes, declared_type: Optional[str] = None):
        return cls(clean_filename(filename), content, _normalize_type(declared_type))

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def digest(self) -> str:
        return content_digest(self.content)

    @property
    def sniffed_type(self) -> Optional[str]:
        return sniff_content_type(self.content)

    @property
    def guessed_type(self) -> Optional[str]:
        guessed, _ = mimetypes.guess_type(self.filename)
        return guessed

    @property
    def content_type(self) -> str:
        """Best available type: sniffed, then declared, then guessed from the name."""
        return self.sniffed_type or self.declared_type or self.guessed_type or "application/octet-stream"

    def is_pdf_content(self) -> bool:
        """True only if the bytes themselves are a PDF."""
        return self.sniffed_type == PDF_CONTENT_TYPE

    def looks_like_pdf(self) -> bool:
        """True if any signal (bytes, declared type, extension) says PDF."""
        return (
            self.is_pdf_content()
            or self.declared_type in PDF_CONTENT_TYPES
            or self.guessed_type in PDF_CONTENT_TYPES
            or self.filename.lower().endswith(".pdf")
        )
