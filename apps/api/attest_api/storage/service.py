"""File storage collaborator.

Stored files are addressed by object keys built from the tenant, the upload
month and a random prefix, never by client-supplied paths.
"""

import hashlib
import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from io import BytesIO
from pathlib import Path
from typing import Optional, Protocol

from minio import Minio
from minio.error import S3Error

from attest_api.errors import StorageError
from attest_api.settings import get_settings

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True)
class StorageRef:
    """Reference to a stored file, returned to callers."""

    key: str
    filename: str
    size: int
    content_type: str
    sha256: str

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "filename": self.filename,
            "size": self.size,
            "content_type": self.content_type,
            "hash": f"sha256:{self.sha256}",
        }


class StorageBackend(Protocol):
    """Media storage consumed by the intake gate and upload ingresses."""

    def store(
        self,
        content: bytes,
        filename: str,
        content_type: str = "application/octet-stream",
        tenant_id: Optional[int] = None,
    ) -> StorageRef:
        ...

    def remove(self, ref: StorageRef) -> bool:
        ...

    def ping(self) -> bool:
        ...


def build_object_key(filename: str, tenant_id: Optional[int] = None, now: Optional[datetime] = None) -> str:
    """Build object key for a stored upload.

    Format: tenants/{tenant_id}/{YYYY}/{MM}/{random}-{safe filename}
    """
    now = now or datetime.utcnow()
    safe_name = _UNSAFE_KEY_CHARS.sub("-", filename).strip(".-") or "upload"
    tenant_part = f"tenants/{int(tenant_id)}" if tenant_id else "shared"
    return f"{tenant_part}/{now:%Y}/{now:%m}/{uuid.uuid4().hex[:12]}-{safe_name}"


class MinioStorage:
    """S3-compatible object storage."""

    def __init__(self, client: Optional[Minio] = None, bucket: Optional[str] = None):
        """Initialize storage with a MinIO client."""
        settings = get_settings()
        self.bucket = bucket or settings.minio_bucket
        self.client = client or Minio(
            settings.minio_endpoint,
            access_key=settings.minio_access_key,
            secret_key=settings.minio_secret_key,
            secure=settings.minio_use_ssl,
        )
        self._bucket_checked = False

    def _ensure_bucket(self):
        if self._bucket_checked:
            return
        if not self.client.bucket_exists(self.bucket):
            self.client.make_bucket(self.bucket)
            logger.info(f"Created bucket: {self.bucket}")
        self._bucket_checked = True

    def store(
        self,
        content: bytes,
        filename: str,
        content_type: str = "application/octet-stream",
        tenant_id: Optional[int] = None,
    ) -> StorageRef:
        """Upload a file and return its reference."""
        object_key = build_object_key(filename, tenant_id)
        try:
            self._ensure_bucket()
            self.client.put_object(
                self.bucket,
                object_key,
                BytesIO(content),
                length=len(content),
                content_type=content_type,
            )
        except S3Error as e:
            logger.error(f"Failed to upload object {object_key}: {e}")
            raise StorageError(f"File storage rejected {filename}", code="file_storage_failed") from e
        except Exception as e:
            logger.error(f"Object storage unreachable while uploading {object_key}: {e}")
            raise StorageError("File storage is unavailable", code="file_storage_unavailable") from e

        logger.debug(f"Uploaded object: {object_key} ({len(content)} bytes)")
        return StorageRef(
            key=object_key,
            filename=filename,
            size=len(content),
            content_type=content_type,
            sha256=hashlib.sha256(content).hexdigest(),
        )

    def remove(self, ref: StorageRef) -> bool:
        """Delete a stored object. False if it could not be removed."""
        try:
            self.client.remove_object(self.bucket, ref.key)
            return True
        except Exception as e:
            logger.error(f"Failed to remove object {ref.key}: {e}")
            return False

    def ping(self) -> bool:
        """Check bucket reachability."""
        try:
            return bool(self.client.bucket_exists(self.bucket))
        except Exception as e:
            logger.error(f"Object storage check failed: {e}")
            return False


class LocalStorage:
    """Filesystem storage for development and tests."""

    def __init__(self, root: str):
        """Initialize storage rooted at a directory."""
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise StorageError(f"Refusing storage key outside root: {key}", code="invalid_storage_key")
        return path

    def store(
        self,
        content: bytes,
        filename: str,
        content_type: str = "application/octet-stream",
        tenant_id: Optional[int] = None,
    ) -> StorageRef:
        """Write a file under the storage root."""
        key = build_object_key(filename, tenant_id)
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        except OSError as e:
            logger.error(f"Failed to write {path}: {e}")
            raise StorageError("File storage is unavailable", code="file_storage_unavailable") from e

        return StorageRef(
            key=key,
            filename=filename,
            size=len(content),
            content_type=content_type,
            sha256=hashlib.sha256(content).hexdigest(),
        )

    def remove(self, ref: StorageRef) -> bool:
        """Delete a stored file. False if it did not exist."""
        try:
            self._path(ref.key).unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error(f"Failed to remove {ref.key}: {e}")
            return False

    def ping(self) -> bool:
        """Check that the storage root is usable."""
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            return True
        except OSError as e:
            logger.error(f"Local storage check failed: {e}")
            return False


@lru_cache()
def get_storage_service() -> StorageBackend:
    """Get storage backend selected by settings."""
    settings = get_settings()
    if settings.storage_backend == "local":
        return LocalStorage(settings.local_storage_root)
    if settings.storage_backend == "minio":
        return MinioStorage()
    raise ValueError(f"Unknown STORAGE_BACKEND: {settings.storage_backend}")
