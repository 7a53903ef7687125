"""Pytest configuration and fixtures."""

import os
import tempfile

# Settings are read at import time; point them at throwaway backends first.
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ.setdefault("LOCAL_STORAGE_ROOT", tempfile.mkdtemp(prefix="attest-storage-"))
os.environ.setdefault("PROVENANCE_NONCE_BACKEND", "memory")
os.environ.setdefault("PROVENANCE_SECRET", "test-provenance-secret")
os.environ.setdefault("TENANT_LABELS", '{"1": "Main Campus", "2": "Library"}')

from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from attest_api.auth.principal import AUDIT_CAPABILITY, UPLOAD_CAPABILITY, CapabilityAuthorizer, Principal
from attest_api.db.schema import ensure_schema
from attest_api.intake.gate import IntakeGate
from attest_api.intake.interceptor import UploadInterceptor
from attest_api.intake.uploads import IncomingUpload
from attest_api.ledger.service import AttestationLedger
from attest_api.provenance.token import MemoryNonceStore, ProvenanceTokenService
from attest_api.provenance.uid import UIDGenerator
from attest_api.storage.service import LocalStorage
from attest_api.tenants.directory import ConfiguredTenantDirectory

PDF_BYTES = b"%PDF-1.7\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n<< /Root 1 0 R >>\n%%EOF\n"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


@pytest.fixture(scope="function")
def engine():
    """In-memory SQLite engine with the ledger table in place."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    ensure_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db(session_factory) -> Session:
    """Create a test database session."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def ledger(db) -> AttestationLedger:
    return AttestationLedger(db)


@pytest.fixture
def make_record(ledger):
    """Insert and commit a record, returning it."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        fields = {
            "uid": f"PDF-test-{counter['n']}",
            "tenant_id": 1,
            "user_id": 7,
            "username": "jdoe",
            "filename": f"document-{counter['n']}.pdf",
            "uploaded_at": datetime(2024, 5, 1, 12, 0, 0),
        }
        fields.update(overrides)
        ledger.insert(fields)
        ledger.commit()
        return ledger.get_by_uid(fields["uid"])

    return _make


@pytest.fixture
def storage(tmp_path) -> LocalStorage:
    return LocalStorage(str(tmp_path / "storage"))


@pytest.fixture
def nonce_store() -> MemoryNonceStore:
    return MemoryNonceStore()


@pytest.fixture
def tokens(nonce_store) -> ProvenanceTokenService:
    return ProvenanceTokenService("test-provenance-secret", nonce_store, ttl_seconds=60)


@pytest.fixture
def interceptor(tokens) -> UploadInterceptor:
    return UploadInterceptor(tokens)


@pytest.fixture
def tenants() -> ConfiguredTenantDirectory:
    return ConfiguredTenantDirectory({1: "Main Campus", 2: "Library"})


@pytest.fixture
def gate(ledger, storage, tokens, interceptor, tenants) -> IntakeGate:
    return IntakeGate(
        ledger=ledger,
        uid_generator=UIDGenerator(ledger),
        storage=storage,
        tokens=tokens,
        interceptor=interceptor,
        tenants=tenants,
        authorizer=CapabilityAuthorizer(),
    )


@pytest.fixture
def uploader() -> Principal:
    return Principal(
        tenant_id=1,
        user_id=7,
        username="jdoe",
        capabilities=frozenset({UPLOAD_CAPABILITY}),
    )


@pytest.fixture
def pdf_upload() -> IncomingUpload:
    return IncomingUpload.build("Annual Report.pdf", PDF_BYTES, "application/pdf")


def stored_files(storage: LocalStorage) -> list:
    if not storage.root.exists():
        return []
    return [path for path in storage.root.rglob("*") if path.is_file()]


def principal_headers(tenant_id=1, user_id=7, username="jdoe", capabilities=(UPLOAD_CAPABILITY,)) -> dict:
    return {
        "x-tenant-id": str(tenant_id),
        "x-user-id": str(user_id),
        "x-username": username,
        "x-capabilities": ",".join(capabilities),
    }


AUDITOR_HEADERS = principal_headers(user_id=1, username="admin", capabilities=(AUDIT_CAPABILITY,))


@pytest.fixture
def client(session_factory, storage, tokens):
    """TestClient wired to the per-test database, storage and token service."""
    from attest_api.db.session import get_db
    from attest_api.dependencies import get_storage, get_token_service
    from attest_api.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_token_service] = lambda: tokens
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
