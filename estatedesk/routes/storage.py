# Media upload endpoints backed by Cloudinary.
import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from .. import models, schemas, storage
from .auth import get_current_agent
from ..rate_limit import rate_limit

router = APIRouter()
logger = logging.getLogger("estatedesk.storage")

MAX_UPLOAD_BYTES = 20 * 1024 * 1024


@router.post(
    "/upload-url",
    response_model=schemas.UploadUrlResponse,
    dependencies=[Depends(rate_limit("write"))],
)
def create_upload_url(
    payload: schemas.UploadUrlRequest,
    agent: models.Agent = Depends(get_current_agent),
) -> schemas.UploadUrlResponse:
    """Signed parameters for uploading straight from the browser."""
    signed = storage.signed_upload(payload.file_name, payload.file_type)
    logger.info("storage.signed", extra={"agent_id": agent.id, "public_id": signed["public_id"]})
    return schemas.UploadUrlResponse(**signed)


@router.post(
    "/upload",
    response_model=schemas.UploadResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("write"))],
)
def upload_file(
    file: UploadFile = File(...),
    agent: models.Agent = Depends(get_current_agent),
) -> schemas.UploadResponse:
    content = file.file.read()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded file is empty")
    if len(content) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="File too large")

    try:
        result = storage.upload_bytes(content, file.filename or "upload")
    except RuntimeError as exc:
        logger.error("storage.upload_failed", extra={"agent_id": agent.id, "error": str(exc)})
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to upload file") from exc
    return schemas.UploadResponse(**result)
