# Media storage on Cloudinary: signed direct-upload parameters and server-side uploads.
from __future__ import annotations

import os
import re
import time
import uuid
from typing import Dict, Optional

import cloudinary
import cloudinary.uploader
import cloudinary.utils

from .errors import StorageNotConfiguredError

CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME", "").strip()
CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY", "").strip()
CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET", "").strip()
UPLOAD_FOLDER = os.getenv("CLOUDINARY_UPLOAD_FOLDER", "estatedesk")

_configured = False


def storage_enabled() -> bool:
    return bool(CLOUDINARY_CLOUD_NAME and CLOUDINARY_API_KEY and CLOUDINARY_API_SECRET)


def _ensure_configured() -> None:
    global _configured
    if not storage_enabled():
        raise StorageNotConfiguredError("Media storage is not configured")
    if not _configured:
        cloudinary.config(
            cloud_name=CLOUDINARY_CLOUD_NAME,
            api_key=CLOUDINARY_API_KEY,
            api_secret=CLOUDINARY_API_SECRET,
            secure=True,
        )
        _configured = True


def build_public_id(file_name: str, folder: Optional[str] = None) -> str:
    """Unique object id under the upload folder; keeps a sanitized stem of the original name."""
    stem = file_name.rsplit(".", 1)[0] if "." in file_name else file_name
    stem = re.sub(r"[^A-Za-z0-9_-]+", "-", stem).strip("-").lower()[:60] or "file"
    return f"{folder or UPLOAD_FOLDER}/{int(time.time())}-{uuid.uuid4().hex[:8]}-{stem}"


def _resource_type(file_type: Optional[str]) -> str:
    if file_type and file_type.startswith("image/"):
        return "image"
    if file_type and file_type.startswith("video/"):
        return "video"
    return "raw"


def signed_upload(file_name: str, file_type: Optional[str] = None) -> Dict[str, object]:
    """
    Parameters for a browser to upload straight to Cloudinary.

    The client POSTs the file plus `params` (which include the signature) as
    multipart form fields to `upload_url`.
    """
    _ensure_configured()
    public_id = build_public_id(file_name)
    params = {"public_id": public_id, "timestamp": int(time.time())}
    signature = cloudinary.utils.api_sign_request(params, CLOUDINARY_API_SECRET)
    upload_url = cloudinary.utils.cloudinary_api_url("upload", resource_type=_resource_type(file_type))
    return {
        "upload_url": upload_url,
        "public_id": public_id,
        "params": {**params, "signature": signature, "api_key": CLOUDINARY_API_KEY},
    }


def upload_bytes(content: bytes, file_name: str) -> Dict[str, str]:
    """Upload a file through the server and return its id and HTTPS URL."""
    _ensure_configured()
    public_id = build_public_id(file_name)
    try:
        result = cloudinary.uploader.upload(content, public_id=public_id, resource_type="auto")
    except Exception as exc:
        raise RuntimeError(f"Failed to upload file: {exc}") from exc
    return {"public_id": result["public_id"], "url": result["secure_url"]}
