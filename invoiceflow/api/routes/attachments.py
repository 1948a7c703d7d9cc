"""Attachment upload routes.

Clients either request a presigned POST policy and upload directly to object
storage, or send the file through the API as multipart form data. Both
return the object key to pass to ``POST /invoices/process``.
"""

import logging
import re
import uuid

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from invoiceflow.api import metrics
from invoiceflow.api.dependencies import ServiceContainer, get_services
from invoiceflow.api.schemas import (
    ALLOWED_ATTACHMENT_CONTENT_TYPES,
    MAX_UPLOAD_SIZE_BYTES,
    PresignRequest,
    PresignResponse,
    UploadResponse,
)
from invoiceflow.extraction.service import normalize_content_type

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/attachments", tags=["Attachments"])

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def sanitize_filename(filename: str) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("_", filename)[-200:]


def build_object_key(filename: str) -> str:
    """Object key for a new attachment: ``attachments/<uuid>-<sanitized name>``."""
    return f"attachments/{uuid.uuid4()}-{sanitize_filename(filename)}"


def _require_storage(services: ServiceContainer) -> None:
    if not services.storage.is_available():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Attachment storage is not configured",
        )


@router.post("/presign", response_model=PresignResponse)
def presign_upload(
    body: PresignRequest,
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> PresignResponse:
    """Create a presigned POST policy for a direct attachment upload.

    Storage enforces the declared content type and a size of at most
    ``size`` (or 25MB when omitted).
    """
    _require_storage(services)

    object_key = build_object_key(body.filename)
    result = services.storage.get_presigned_upload_url(
        object_key,
        content_type=body.content_type,
        max_size=body.size or MAX_UPLOAD_SIZE_BYTES,
    )
    if not result.success or not result.url or result.fields is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create upload URL",
        )

    logger.info(f"Created presigned upload policy for {object_key}")
    return PresignResponse(
        key=object_key,
        upload_url=result.url,
        fields=result.fields,
        expires_in=result.expires_in_seconds or services.settings.presign_upload_ttl_seconds,
    )


@router.post("/upload", response_model=UploadResponse, response_model_exclude_none=True)
async def upload_attachment(
    file: UploadFile = File(..., description="Invoice attachment (PDF, PNG, JPEG)"),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> UploadResponse:
    """Upload an attachment through the API.

    ## Requirements

    - **File Types**: PDF, PNG, JPEG, HEIC, HEIF
    - **Max Size**: 25MB

    ## Error Handling

    - Returns 400 if the file is empty, too large or of an unsupported type
    - Returns 503 if attachment storage is not configured
    - Returns 500 if the upload to storage fails
    """
    _require_storage(services)

    content_type = normalize_content_type(file.content_type or "")
    if content_type not in ALLOWED_ATTACHMENT_CONTENT_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported content type: {file.content_type}",
        )

    content = await file.read()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty file")
    if len(content) > MAX_UPLOAD_SIZE_BYTES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Attachment too large")

    metrics.attachment_upload_size_bytes.observe(len(content))

    filename = file.filename or "attachment"
    object_key = build_object_key(filename)
    stored = services.storage.upload_bytes(
        data=content, object_name=object_key, content_type=content_type
    )
    if not stored.success:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store attachment",
        )

    download = services.storage.get_presigned_url(object_key)
    return UploadResponse(
        key=object_key,
        filename=filename,
        content_type=content_type,
        size=len(content),
        url=download.url if download.success else None,
    )
