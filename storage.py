"""Product image storage in MongoDB GridFS."""
import os
import secrets
import time
from typing import Optional, Tuple

import gridfs

import database
from errors import DatabaseNotConfiguredError, InvalidImageError

PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000")
MAX_IMAGE_BYTES = 4 * 1024 * 1024
BUCKET = "products"


def _bucket() -> gridfs.GridFS:
    if database.db is None:
        raise DatabaseNotConfiguredError()
    return gridfs.GridFS(database.db, collection=BUCKET)


def validate_image(content_type: Optional[str], size: int) -> None:
    if not content_type or not content_type.startswith("image/"):
        raise InvalidImageError("Please upload only image files")
    if size > MAX_IMAGE_BYTES:
        raise InvalidImageError("Image must be less than 4MB")


def unique_filename(original: Optional[str]) -> str:
    ext = original.rsplit(".", 1)[-1].lower() if original and "." in original else "bin"
    return f"{int(time.time() * 1000)}-{secrets.token_hex(4)}.{ext}"


def public_url(file_id: str) -> str:
    return f"{PUBLIC_BASE_URL.rstrip('/')}/images/{file_id}"


def save_image(data: bytes, filename: Optional[str], content_type: Optional[str]) -> str:
    """Store an uploaded image and return the public URL used as Product.image."""
    validate_image(content_type, len(data))
    file_id = _bucket().put(data, filename=unique_filename(filename), metadata={"content_type": content_type})
    return public_url(str(file_id))


def load_image(file_id: str) -> Optional[Tuple[bytes, str]]:
    oid = database.parse_object_id(file_id)
    if oid is None:
        return None
    try:
        grid_out = _bucket().get(oid)
    except gridfs.NoFile:
        return None
    content_type = (grid_out.metadata or {}).get("content_type")
    return grid_out.read(), content_type or "application/octet-stream"
