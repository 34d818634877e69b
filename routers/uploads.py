import mimetypes
import os
import uuid

from fastapi import APIRouter, File, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool

from constants import UPLOAD_MAX_BYTES
from logging_config import get_logger
from schemas.rooms import UploadImageResponse

logger = get_logger(__name__)


def _write_file(path: str, data: bytes):
    with open(path, "wb") as f:
        f.write(data)


uploads_router = APIRouter(prefix="/api", tags=["uploads"])

UPLOADS_URL_PREFIX = "/uploads"


@uploads_router.post("/upload-image", response_model=UploadImageResponse)
async def upload_image(request: Request, image: UploadFile = File(...)):
    """
    Store a custom room image and return its URL.

    The URL is opaque to the rooms API: clients pass it back as
    `customImageUrl` when joining.
    """
    content_type = image.content_type or ""
    if not content_type.startswith("image/"):
        logger.warning(f"Upload rejected: content type {content_type!r} is not an image")
        raise HTTPException(status_code=400, detail="Only image files can be uploaded")

    max_bytes = getattr(request.app.state, "upload_max_bytes", UPLOAD_MAX_BYTES)
    data = await image.read(max_bytes + 1)
    if not data:
        raise HTTPException(status_code=400, detail="No image selected")
    if len(data) > max_bytes:
        logger.warning(f"Upload rejected: file larger than {max_bytes} bytes")
        raise HTTPException(status_code=413, detail=f"Image cannot exceed {max_bytes // (1024 * 1024)} MB")

    extension = mimetypes.guess_extension(content_type) or ""
    filename = f"{uuid.uuid4().hex}{extension}"
    upload_dir = request.app.state.upload_dir
    try:
        await run_in_threadpool(_write_file, os.path.join(upload_dir, filename), data)
    except OSError as e:
        logger.error(f"Error saving upload {filename}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to upload image")

    logger.info(f"Stored uploaded image {filename} ({len(data)} bytes)")
    return UploadImageResponse(image_url=f"{UPLOADS_URL_PREFIX}/{filename}")
