"""Tenant directory collaborator."""

from typing import Mapping, Optional, Protocol


class TenantDirectory(Protocol):
    """Resolves a tenant id to its display name."""

    def tenant_label(self, tenant_id: int) -> str:
        ...


class ConfiguredTenantDirectory:
    """Tenant names supplied by configuration, with a generated fallback."""

    def __init__(self, labels: Optional[Mapping[int, str]] = None, fallback: str = "Site {tenant_id}"):
        self.labels = dict(labels or {})
        self.fallback = fallback

    def tenant_label(self, tenant_id: int) -> str:
        label = self.labels.get(tenant_id)
        if label:
            return label
        return self.fallback.format(tenant_id=tenant_id)
