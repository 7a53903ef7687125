"""Authenticated principals and the authorization collaborator."""

from dataclasses import dataclass, field
from typing import Protocol

UPLOAD_CAPABILITY = "upload_files"
AUDIT_CAPABILITY = "manage_network"


@dataclass(frozen=True)
class Principal:
    """An already-authenticated caller, as forwarded by the platform."""

    tenant_id: int
    user_id: int
    username: str
    capabilities: frozenset = field(default_factory=frozenset)


class Authorizer(Protocol):
    """Decides what a principal may do."""

    def can_upload(self, principal: Principal) -> bool:
        ...

    def can_audit(self, principal: Principal) -> bool:
        ...


class CapabilityAuthorizer:
    """Authorize from the capabilities the platform granted the principal."""

    def __init__(self, upload_capability: str = UPLOAD_CAPABILITY, audit_capability: str = AUDIT_CAPABILITY):
        self.upload_capability = upload_capability
        self.audit_capability = audit_capability

    def can_upload(self, principal: Principal) -> bool:
        return self.upload_capability in principal.capabilities

    def can_audit(self, principal: Principal) -> bool:
        return self.audit_capability in principal.capabilities
