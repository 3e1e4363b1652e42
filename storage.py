"""
Product image storage

Images live in a GridFS bucket next to the catalog; the public URL handed to
clients points back at GET /api/images/{filename}.
"""

import os
import secrets
import time
from typing import Optional, Tuple

import gridfs
from gridfs.errors import NoFile
import structlog
from fastapi import HTTPException
from starlette.datastructures import UploadFile
from pymongo.database import Database

logger = structlog.get_logger(__name__)

BUCKET_NAME = "product-images"
ALLOWED_EXTENSIONS = {"jpeg", "jpg", "png", "gif", "webp"}
MAX_IMAGE_BYTES = 5 * 1024 * 1024


def filename_from_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    return url.rstrip("/").split("/")[-1] or None


def new_filename(original: str) -> str:
    ext = os.path.splitext(original or "")[1].lstrip(".").lower() or "bin"
    return f"product-{int(time.time() * 1000)}-{secrets.token_hex(4)}.{ext}"


async def read_image(upload: UploadFile) -> Tuple[bytes, str, str]:
    """Validate an uploaded image and return (data, original filename, content type)."""
    ext = os.path.splitext(upload.filename or "")[1].lstrip(".").lower()
    content_type = upload.content_type or ""
    if ext not in ALLOWED_EXTENSIONS or content_type.split("/")[-1] not in ALLOWED_EXTENSIONS:
        raise HTTPException(status_code=400, detail="File upload error: only image files are allowed (jpeg, jpg, png, gif, webp)")
    data = await upload.read()
    if len(data) > MAX_IMAGE_BYTES:
        raise HTTPException(status_code=400, detail="File upload error: image larger than 5MB")
    return data, upload.filename, content_type


class ImageStore:
    def __init__(self, db: Database, public_url: str, bucket_name: str = BUCKET_NAME):
        self.bucket = gridfs.GridFSBucket(db, bucket_name=bucket_name)
        self.public_url = public_url.rstrip("/")

    def url_for(self, filename: str) -> str:
        return f"{self.public_url}/api/images/{filename}"

    def upload(self, data: bytes, original_name: str, content_type: str) -> str:
        """Store the image and return its public URL."""
        filename = new_filename(original_name)
        self.bucket.upload_from_stream(filename, data, metadata={"contentType": content_type})
        logger.info("image_uploaded", filename=filename, size=len(data))
        return self.url_for(filename)

    def open(self, filename: str) -> Optional[Tuple[bytes, str]]:
        try:
            grid_out = self.bucket.open_download_stream_by_name(filename)
        except NoFile:
            return None
        content_type = (grid_out.metadata or {}).get("contentType") or "application/octet-stream"
        return grid_out.read(), content_type

    def remove(self, filename: str) -> None:
        for grid_file in self.bucket.find({"filename": filename}):
            self.bucket.delete(grid_file._id)
        logger.info("image_deleted", filename=filename)


def remove_quietly(images, url: Optional[str]) -> None:
    """Best-effort delete of a stored image; failures are logged, never raised."""
    filename = filename_from_url(url)
    if not filename:
        return
    try:
        images.remove(filename)
    except Exception as e:
        logger.warning("image_delete_failed", filename=filename, error=str(e))
