"""Human-readable unique identifiers for attestation records."""

import logging
import os
import re
import secrets
import string
from datetime import datetime
from typing import Callable, Optional

from attest_api.ledger.service import AttestationLedger
from attest_api.utils.metrics import uid_collisions, uid_exhausted

logger = logging.getLogger(__name__)

SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
SUFFIX_LENGTH = 8
TENANT_LABEL_LENGTH = 15
FILE_LABEL_LENGTH = 50
DEFAULT_MAX_ATTEMPTS = 5

_LABEL_STRIP = re.compile(r"[^a-z0-9\s-]")
_USER_STRIP = re.compile(r"[^a-z0-9]")
_WHITESPACE = re.compile(r"\s+")


def random_suffix() -> str:
    """Eight lower-case alphanumeric characters."""
    return "".join(secrets.choice(SUFFIX_ALPHABET) for _ in range(SUFFIX_LENGTH))


def _slug(value: str) -> str:
    value = _LABEL_STRIP.sub("", value.lower())
    return _WHITESPACE.sub("-", value)


def tenant_label(name: str) -> str:
    """Tenant display name reduced to at most 15 slug characters."""
    return _slug(name)[:TENANT_LABEL_LENGTH].rstrip("-")


def user_label(username: str) -> str:
    """Username reduced to lower-case letters and digits."""
    return _USER_STRIP.sub("", username.lower())


def file_label(filename: str) -> str:
    """File name without extension reduced to at most 50 slug characters."""
    stem, _ = os.path.splitext(filename)
    return _slug(stem)[:FILE_LABEL_LENGTH]


class UIDGenerator:
    """Generate collision-checked attestation UIDs.

    Format::

        PDF-{YYYY-MM-DD}-tenantid_{id}_{tenant}-{user}-{file}-{suffix}

    Only the random suffix changes between attempts. If every attempt
    collides the last candidate is returned anyway and the ledger's unique
    constraint rejects it on insert.
    """

    def __init__(
        self,
        ledger: AttestationLedger,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        suffix_factory: Callable[[], str] = random_suffix,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        """Initialize UID generator."""
        self.ledger = ledger
        self.max_attempts = max(0, max_attempts)
        self.suffix_factory = suffix_factory
        self.clock = clock

    def compose(
        self,
        tenant_id: int,
        tenant_name: str,
        username: str,
        filename: str,
        suffix: str,
        when: Optional[datetime] = None,
    ) -> str:
        """Build a UID from its parts without checking uniqueness."""
        when = when or self.clock()
        return (
            f"PDF-{when.strftime('%Y-%m-%d')}"
            f"-tenantid_{int(tenant_id)}_{tenant_label(tenant_name)}"
            f"-{user_label(username)}"
            f"-{file_label(filename)}"
            f"-{suffix}"
        )

    def generate(self, tenant_id: int, tenant_name: str, username: str, filename: str) -> str:
        """Generate a UID not yet present in the ledger (best effort)."""
        when = self.clock()
        uid = self.compose(tenant_id, tenant_name, username, filename, self.suffix_factory(), when)

        retries = 0
        while self.ledger.uid_exists(uid):
            uid_collisions.inc()
            if retries >= self.max_attempts:
                uid_exhausted.inc()
                logger.warning(
                    f"UID still colliding after {retries} retries; relying on the unique constraint",
                    extra={"uid": uid, "tenant_id": tenant_id},
                )
                break
            uid = self.compose(tenant_id, tenant_name, username, filename, self.suffix_factory(), when)
            retries += 1

        return uid
