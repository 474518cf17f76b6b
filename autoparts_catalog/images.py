# File: autoparts_catalog/images.py
import logging
import os
import secrets
from typing import List, Optional, Tuple

import cloudinary.uploader
from fastapi import UploadFile

from . import config
from .errors import InternalError, ValidationError

logger = logging.getLogger(__name__)


def _extension(filename: Optional[str]) -> str:
    ext = os.path.splitext(filename or "")[1].lstrip(".").lower()
    return ext if ext.isalnum() else "jpg"


def check_image(file: UploadFile, contents: bytes) -> Optional[str]:
    """Returns why the file is refused, or None when it is acceptable."""
    if not (file.content_type or "").startswith("image/"):
        return f"{file.filename}: not an image ({file.content_type})"
    if len(contents) > config.MAX_IMAGE_BYTES:
        return f"{file.filename}: larger than {config.MAX_IMAGE_BYTES // (1024 * 1024)}MB"
    return None


def upload_image_to_cloudinary(contents: bytes) -> str:
    opts = {"folder": config.CLOUDINARY_UPLOAD_FOLDER, "resource_type": "image", "unique_filename": True}
    try:
        res = cloudinary.uploader.upload(contents, **opts)
    except Exception as e:
        logger.error(f"Cloudinary upload failed: {e}")
        raise InternalError("Image upload failed.")
    url = res.get("secure_url")
    if not url:
        raise InternalError("Image upload failed (no URL returned).")
    logger.info(f"Upload OK: {url}")
    return url


def save_image_locally(contents: bytes, filename: Optional[str], upload_dir: Optional[str] = None) -> str:
    """Writes the image under a random name and returns its public URI."""
    upload_dir = upload_dir or config.UPLOAD_DIR
    unique_name = f"{secrets.token_hex(16)}.{_extension(filename)}"
    try:
        os.makedirs(upload_dir, exist_ok=True)
        with open(os.path.join(upload_dir, unique_name), "wb") as f:
            f.write(contents)
    except OSError as e:
        logger.error(f"Cannot write uploaded image to {upload_dir}: {e}")
        raise InternalError("Image upload failed.")
    return f"{config.UPLOAD_URL_PREFIX.rstrip('/')}/{unique_name}"


async def store_part_images(files: List[UploadFile], upload_dir: Optional[str] = None,
                            already_stored: int = 0) -> Tuple[List[str], List[str]]:
    """Stores every acceptable file. Returns (uploaded URIs, rejection reasons).

    Only accepted files count towards the per-part cap, and nothing is stored when it is exceeded.
    """
    accepted, rejected = [], []
    for file in files:
        contents = await file.read()
        reason = check_image(file, contents)
        if reason:
            logger.info(f"Skipping upload {reason}")
            rejected.append(reason)
            continue
        accepted.append((file.filename, contents))
    if already_stored + len(accepted) > config.MAX_IMAGES_PER_PART:
        raise ValidationError(f"A part holds at most {config.MAX_IMAGES_PER_PART} images.")

    urls = []
    for filename, contents in accepted:
        if config.cloudinary_configured:
            urls.append(upload_image_to_cloudinary(contents))
        else:
            urls.append(save_image_locally(contents, filename, upload_dir))
    return urls, rejected
