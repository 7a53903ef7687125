"""Tests for single-use provenance tokens."""

from unittest.mock import MagicMock

import pytest
import redis

from attest_api.errors import StorageError
from attest_api.provenance.token import (
    MemoryNonceStore,
    ProvenanceTokenService,
    RedisNonceStore,
    content_digest,
)


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(clock):
    return ProvenanceTokenService("secret", MemoryNonceStore(clock), ttl_seconds=60, clock=clock)


def test_token_accepted_once(service):
    digest = content_digest(b"%PDF-1.4 payload")
    token = service.issue(digest)

    assert service.consume(token, digest) is True
    assert service.consume(token, digest) is False


def test_token_bound_to_content(service):
    token = service.issue(content_digest(b"original"))
    assert service.consume(token, content_digest(b"swapped")) is False


def test_expired_token_rejected(service, clock):
    digest = content_digest(b"payload")
    token = service.issue(digest)
    clock.now += 61
    assert service.consume(token, digest) is False


def test_token_from_other_secret_rejected(service, clock):
    digest = content_digest(b"payload")
    forged = ProvenanceTokenService("other", MemoryNonceStore(clock), clock=clock).issue(digest)
    assert service.consume(forged, digest) is False


def test_tampered_expiry_rejected(service):
    digest = content_digest(b"payload")
    nonce, expires, signature = service.issue(digest).split(".")
    tampered = f"{nonce}.{int(expires) + 3600}.{signature}"
    assert service.consume(tampered, digest) is False


@pytest.mark.parametrize("token", [None, "", "garbage", "a.b.c", "a.b", "a.1.b.c"])
def test_malformed_tokens_rejected(service, token):
    assert service.consume(token, content_digest(b"payload")) is False


def test_empty_secret_refused():
    with pytest.raises(ValueError):
        ProvenanceTokenService("", MemoryNonceStore())


def test_memory_store_forgets_expired_nonces(clock):
    store = MemoryNonceStore(clock)
    assert store.claim("n1", 10) is True
    assert store.claim("n1", 10) is False
    clock.now += 11
    assert store.claim("n1", 10) is True


class TestRedisNonceStore:
    """Redis-backed nonce claims."""

    def test_claim_uses_set_nx_ex(self):
        client = MagicMock()
        client.set.side_effect = [True, None]
        store = RedisNonceStore(client)

        assert store.claim("abc", 30) is True
        assert store.claim("abc", 30) is False
        client.set.assert_called_with("provenance:nonce:abc", b"1", nx=True, ex=30)

    def test_unavailable_redis_fails_closed(self):
        client = MagicMock()
        client.set.side_effect = redis.ConnectionError("refused")
        store = RedisNonceStore(client)

        with pytest.raises(StorageError) as exc_info:
            store.claim("abc", 30)
        assert exc_info.value.code == "provenance_unavailable"

    def test_ping(self):
        client = MagicMock()
        client.ping.side_effect = redis.ConnectionError("refused")
        assert RedisNonceStore(client).ping() is False
