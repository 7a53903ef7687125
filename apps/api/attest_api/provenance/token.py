"""Single-use provenance tokens proving an upload passed the intake gate.

A token is ``{nonce}.{expires}.{signature}`` where the signature is an
HMAC-SHA256 over the nonce, the expiry and the SHA-256 digest of the file
content. A token is therefore bound to one exact payload, expires after a
short TTL and is accepted only once: its nonce is claimed in a nonce store
on first use.
"""

import hashlib
import hmac
import logging
import secrets
import threading
import time
from typing import Callable, Optional, Protocol

import redis

from attest_api.errors import StorageError

logger = logging.getLogger(__name__)


class NonceStore(Protocol):
    """Records consumed nonces."""

    def claim(self, nonce: str, ttl_seconds: int) -> bool:
        """Mark nonce used. Returns False if it was already used."""
        ...

    def ping(self) -> bool:
        ...


class RedisNonceStore:
    """Nonce store backed by Redis ``SET NX EX``."""

    def __init__(self, client: redis.Redis, prefix: str = "provenance:nonce:"):
        self.client = client
        self.prefix = prefix

    def claim(self, nonce: str, ttl_seconds: int) -> bool:
        try:
            return bool(
                self.client.set(f"{self.prefix}{nonce}", b"1", nx=True, ex=max(1, ttl_seconds))
            )
        except redis.RedisError as e:
            logger.error(f"Nonce store unavailable: {e}")
            raise StorageError(
                "The provenance store is unavailable; PDF uploads cannot be verified",
                code="provenance_unavailable",
            ) from e

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError as e:
            logger.error(f"Nonce store check failed: {e}")
            return False


class MemoryNonceStore:
    """In-process nonce store for development and tests."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._expiry: dict[str, float] = {}
        self._lock = threading.Lock()

    def claim(self, nonce: str, ttl_seconds: int) -> bool:
        now = self.clock()
        with self._lock:
            for stale in [key for key, expires in self._expiry.items() if expires <= now]:
                del self._expiry[stale]
            if nonce in self._expiry:
                return False
            self._expiry[nonce] = now + max(1, ttl_seconds)
            return True

    def ping(self) -> bool:
        return True


def content_digest(content: bytes) -> str:
    """Hex SHA-256 of an upload payload."""
    return hashlib.sha256(content).hexdigest()


class ProvenanceTokenService:
    """Issue and consume provenance tokens."""

    def __init__(
        self,
        secret: str,
        nonce_store: NonceStore,
        ttl_seconds: int = 300,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize token service."""
        if not secret:
            raise ValueError("Provenance secret must not be empty")
        self.secret = secret.encode()
        self.nonce_store = nonce_store
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    def _sign(self, nonce: str, expires: int, digest: str) -> str:
        message = f"{nonce}.{expires}.{digest}".encode()
        return hmac.new(self.secret, message, hashlib.sha256).hexdigest()

    def issue(self, digest: str) -> str:
        """Issue a token for the payload with the given content digest."""
        nonce = secrets.token_urlsafe(16)
        expires = int(self.clock()) + self.ttl_seconds
        return f"{nonce}.{expires}.{self._sign(nonce, expires, digest)}"

    def consume(self, token: Optional[str], digest: str) -> bool:
        """Validate a token against a payload digest and burn it."""
        if not token:
            return False
        parts = token.split(".")
        if len(parts) != 3:
            return False
        nonce, expires_raw, signature = parts
        try:
            expires = int(expires_raw)
        except ValueError:
            return False

        if not hmac.compare_digest(signature, self._sign(nonce, expires, digest)):
            return False
        remaining = expires - int(self.clock())
        if remaining <= 0:
            logger.info("Rejected expired provenance token")
            return False
        if not self.nonce_store.claim(nonce, remaining):
            logger.warning("Rejected replayed provenance token")
            return False
        return True
