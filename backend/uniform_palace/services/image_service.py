# Overview: Product image pipeline (validate, resize, thumbnail, store) built on Pillow.

from __future__ import annotations

import io
import os
import secrets
from dataclasses import dataclass

from flask import current_app
from PIL import Image, ImageOps, UnidentifiedImageError

from .notification_service import DependencyError
from uniform_palace.time_utils import utcnow

MAIN_MAX_SIZE = (800, 800)
MAIN_QUALITY = 80
THUMB_SIZE = (200, 200)
THUMB_QUALITY = 70
OUTPUT_FORMAT = "WEBP"


class ImageProcessingError(DependencyError):
    """Upload rejected or the image codec failed; aborts only the upload request."""


@dataclass(frozen=True)
class UploadedImage:
    filename: str
    mimetype: str | None
    data: bytes


@dataclass(frozen=True)
class ProcessedImage:
    main: bytes
    thumbnail: bytes
    width: int
    height: int


@dataclass(frozen=True)
class StoredImage:
    url: str
    thumbnail_url: str
    storage_path: str


def validate_uploads(uploads: list[UploadedImage]) -> None:
    max_files = int(current_app.config.get("MAX_IMAGES_PER_UPLOAD", 5))
    max_bytes = int(current_app.config.get("MAX_IMAGE_BYTES", 10 * 1024 * 1024))

    if not uploads:
        raise ImageProcessingError("No images uploaded")
    if len(uploads) > max_files:
        raise ImageProcessingError(f"Too many files. Maximum is {max_files} files.")
    for upload in uploads:
        if not (upload.mimetype or "").startswith("image/"):
            raise ImageProcessingError(f"{upload.filename}: only image files are allowed")
        if len(upload.data) > max_bytes:
            raise ImageProcessingError(f"{upload.filename}: file too large. Maximum size is {max_bytes // (1024 * 1024)}MB.")


def _encode(img: Image.Image, quality: int) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format=OUTPUT_FORMAT, quality=quality)
    return buf.getvalue()


def process_image(data: bytes) -> ProcessedImage:
    """
    Produce the main asset (fits inside 800x800, never enlarged) and a
    200x200 centre-cropped thumbnail, both re-encoded as WebP.
    """
    try:
        with Image.open(io.BytesIO(data)) as source:
            img = ImageOps.exif_transpose(source)
            img = img.convert("RGBA" if img.mode in ("RGBA", "LA", "P") else "RGB")

            main = img.copy()
            main.thumbnail(MAIN_MAX_SIZE, Image.Resampling.LANCZOS)
            thumb = ImageOps.fit(img, THUMB_SIZE, method=Image.Resampling.LANCZOS, centering=(0.5, 0.5))

            return ProcessedImage(
                main=_encode(main, MAIN_QUALITY),
                thumbnail=_encode(thumb, THUMB_QUALITY),
                width=main.width,
                height=main.height,
            )
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise ImageProcessingError(f"Could not process image: {exc}") from exc


def upload_root() -> str:
    folder = current_app.config.get("UPLOAD_FOLDER", "uploads")
    if not os.path.isabs(folder):
        folder = os.path.join(current_app.instance_path, folder)
    return folder


def store_product_image(product_id: int, processed: ProcessedImage) -> StoredImage:
    relative_dir = os.path.join("products", str(product_id))
    target_dir = os.path.join(upload_root(), relative_dir)

    name = f"{int(utcnow().timestamp() * 1000)}-{secrets.token_hex(4)}.webp"
    thumb_name = f"thumb_{name}"
    try:
        os.makedirs(target_dir, exist_ok=True)
        with open(os.path.join(target_dir, name), "wb") as fh:
            fh.write(processed.main)
        with open(os.path.join(target_dir, thumb_name), "wb") as fh:
            fh.write(processed.thumbnail)
    except OSError as exc:
        raise ImageProcessingError(f"Could not store image: {exc}") from exc

    url_dir = f"/uploads/products/{product_id}"
    return StoredImage(
        url=f"{url_dir}/{name}",
        thumbnail_url=f"{url_dir}/{thumb_name}",
        storage_path=os.path.join(relative_dir, name),
    )


def process_and_store(product_id: int, uploads: list[UploadedImage]) -> list[StoredImage]:
    """Validate the whole batch first, then process and write each file."""
    validate_uploads(uploads)
    processed = [process_image(u.data) for u in uploads]
    return [store_product_image(product_id, p) for p in processed]


def remove_stored_image(storage_path: str | None) -> None:
    """Delete a stored image and its thumbnail; missing files are ignored."""
    if not storage_path:
        return
    root = upload_root()
    directory, name = os.path.split(storage_path)
    for candidate in (name, f"thumb_{name}"):
        path = os.path.join(root, directory, candidate)
        try:
            os.remove(path)
        except FileNotFoundError:
            continue
        except OSError:
            current_app.logger.warning("Could not remove image file %s", path, exc_info=True)
