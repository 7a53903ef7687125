"""Generic upload ingresses guarded by the upload interceptor.

Neither route knows anything about attestations. Both hand every upload to
the interceptor before storage, which lets ordinary files through and turns
away PDFs that did not come from the intake gate.
"""

import logging
import re
from typing import Optional

from fastapi import APIRouter, Depends, File, Header, Request, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from attest_api.auth.principal import Principal
from attest_api.dependencies import get_interceptor, get_principal, get_storage
from attest_api.errors import ValidationError
from attest_api.intake.interceptor import Ingress, UploadInterceptor
from attest_api.intake.uploads import IncomingUpload
from attest_api.storage.service import StorageBackend

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["media"])

_DISPOSITION_FILENAME = re.compile(r'filename\*?=(?:UTF-8\'\')?"?([^";]+)"?', re.IGNORECASE)


class StoredFileResponse(BaseModel):
    """Reference to a stored upload."""

    key: str
    filename: str
    size: int
    content_type: str
    hash: str


def disposition_filename(header: Optional[str]) -> Optional[str]:
    """File name from a Content-Disposition header."""
    if not header:
        return None
    match = _DISPOSITION_FILENAME.search(header)
    return match.group(1).strip() if match else None


def _store(
    upload: IncomingUpload,
    provenance_token: Optional[str],
    ingress: Ingress,
    principal: Principal,
    interceptor: UploadInterceptor,
    storage: StorageBackend,
) -> StoredFileResponse:
    if not upload.filename or upload.size == 0:
        raise ValidationError("A named, non-empty file is required.", code="empty_file")

    interceptor.screen(upload, provenance_token, ingress)
    ref = storage.store(
        upload.content,
        upload.filename,
        content_type=upload.content_type,
        tenant_id=principal.tenant_id,
    )
    logger.info(
        f"Stored {ingress.value} upload {ref.key}",
        extra={"tenant_id": principal.tenant_id, "user_id": principal.user_id},
    )
    return StoredFileResponse(**ref.to_dict())


@router.post("/media", response_model=StoredFileResponse, status_code=status.HTTP_201_CREATED)
async def upload_media(
    file: UploadFile = File(...),
    x_provenance_token: Optional[str] = Header(None),
    principal: Principal = Depends(get_principal),
    interceptor: UploadInterceptor = Depends(get_interceptor),
    storage: StorageBackend = Depends(get_storage),
):
    """Upload a file to the media library."""
    content = await file.read()
    upload = IncomingUpload.build(file.filename, content, file.content_type)
    return await run_in_threadpool(
        _store, upload, x_provenance_token, Ingress.MEDIA, principal, interceptor, storage
    )


@router.post("/attachments", response_model=StoredFileResponse, status_code=status.HTTP_201_CREATED)
async def upload_attachment(
    request: Request,
    content_type: Optional[str] = Header(None),
    content_disposition: Optional[str] = Header(None),
    x_provenance_token: Optional[str] = Header(None),
    principal: Principal = Depends(get_principal),
    interceptor: UploadInterceptor = Depends(get_interceptor),
    storage: StorageBackend = Depends(get_storage),
):
    """Upload a raw request body as an attachment."""
    content = await request.body()
    upload = IncomingUpload.build(disposition_filename(content_disposition), content, content_type)
    return await run_in_threadpool(
        _store, upload, x_provenance_token, Ingress.ATTACHMENTS, principal, interceptor, storage
    )
