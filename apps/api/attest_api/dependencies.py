"""FastAPI dependency providers wiring services to request scope."""

from functools import lru_cache

import redis
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from attest_api.auth.principal import Authorizer, CapabilityAuthorizer, Principal
from attest_api.db.session import get_db
from attest_api.errors import PermissionDeniedError
from attest_api.intake.gate import IntakeGate
from attest_api.intake.interceptor import UploadInterceptor
from attest_api.ledger.service import AttestationLedger
from attest_api.provenance.token import (
    MemoryNonceStore,
    NonceStore,
    ProvenanceTokenService,
    RedisNonceStore,
)
from attest_api.provenance.uid import UIDGenerator
from attest_api.settings import get_settings
from attest_api.storage.service import StorageBackend, get_storage_service
from attest_api.tenants.directory import ConfiguredTenantDirectory, TenantDirectory


@lru_cache()
def get_nonce_store() -> NonceStore:
    """Get nonce store selected by settings."""
    settings = get_settings()
    if settings.provenance_nonce_backend == "memory":
        return MemoryNonceStore()
    if settings.provenance_nonce_backend == "redis":
        return RedisNonceStore(redis.from_url(settings.redis_url))
    raise ValueError(f"Unknown PROVENANCE_NONCE_BACKEND: {settings.provenance_nonce_backend}")


@lru_cache()
def get_token_service() -> ProvenanceTokenService:
    """Get the process-wide provenance token service."""
    settings = get_settings()
    return ProvenanceTokenService(
        settings.provenance_secret,
        get_nonce_store(),
        ttl_seconds=settings.provenance_token_ttl_seconds,
    )


@lru_cache()
def get_tenant_directory() -> TenantDirectory:
    return ConfiguredTenantDirectory(get_settings().tenant_labels)


@lru_cache()
def get_authorizer() -> Authorizer:
    return CapabilityAuthorizer()


def get_storage() -> StorageBackend:
    return get_storage_service()


def get_interceptor(
    tokens: ProvenanceTokenService = Depends(get_token_service),
) -> UploadInterceptor:
    return UploadInterceptor(tokens)


def get_ledger(db: Session = Depends(get_db)) -> AttestationLedger:
    return AttestationLedger(db)


def get_principal(request: Request) -> Principal:
    """Principal forwarded by the platform, set by AuthMiddleware."""
    principal = getattr(request.state, "principal", None)
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authenticated principal.",
        )
    return principal


def require_audit(
    principal: Principal = Depends(get_principal),
    authorizer: Authorizer = Depends(get_authorizer),
) -> Principal:
    """Only principals with the audit capability may read the ledger."""
    if not authorizer.can_audit(principal):
        raise PermissionDeniedError(
            "You do not have permission to view PDF attestations.",
            code="audit_capability_required",
        )
    return principal


def get_intake_gate(
    ledger: AttestationLedger = Depends(get_ledger),
    storage: StorageBackend = Depends(get_storage),
    tokens: ProvenanceTokenService = Depends(get_token_service),
    interceptor: UploadInterceptor = Depends(get_interceptor),
    tenants: TenantDirectory = Depends(get_tenant_directory),
    authorizer: Authorizer = Depends(get_authorizer),
) -> IntakeGate:
    """Build an intake gate for one request."""
    uid_generator = UIDGenerator(ledger, max_attempts=get_settings().uid_max_attempts)
    return IntakeGate(
        ledger=ledger,
        uid_generator=uid_generator,
        storage=storage,
        tokens=tokens,
        interceptor=interceptor,
        tenants=tenants,
        authorizer=authorizer,
    )
