import io
import logging
import os
import uuid
from dataclasses import dataclass
from typing import Optional

import aiofiles
from fastapi import UploadFile
from PIL import Image, UnidentifiedImageError

from app.core.config import ALLOWED_IMAGE_FORMATS, MAX_FILE_SIZE, MAX_IMAGE_PIXELS, UPLOAD_PATH
from app.core.exceptions import StorageError, ValidationError

logger = logging.getLogger(__name__)

PHOTO_SUBDIR = "attendance_photos"
PHOTO_URL_PREFIX = f"/uploads/{PHOTO_SUBDIR}/"
MAX_PHOTO_DIMENSIONS = (1280, 1280)


@dataclass
class PhotoUpload:
    """Validated photo payload, not yet written anywhere"""
    contents: bytes
    extension: str
    image_format: str


class PhotoStore:
    """Stores check-in photos on local disk"""

    def __init__(self, upload_path: str = UPLOAD_PATH, max_file_size: int = MAX_FILE_SIZE,
                 max_image_pixels: int = MAX_IMAGE_PIXELS):
        self.directory = os.path.join(upload_path, PHOTO_SUBDIR)
        self.max_file_size = max_file_size
        self.max_image_pixels = max_image_pixels
        self.allowed_extensions = {f".{fmt}" for fmt in ALLOWED_IMAGE_FORMATS}

    async def read_and_validate(self, file: Optional[UploadFile]) -> PhotoUpload:
        """
        Validate an uploaded check-in photo

        Raises:
            ValidationError: photo missing, not an image, or over the byte or pixel ceiling
        """
        if file is None or not file.filename:
            raise ValidationError({"photo": "Photo is required"})

        if file.content_type and not file.content_type.startswith("image/"):
            raise ValidationError({"photo": "Only image files are allowed"})

        file_extension = os.path.splitext(file.filename)[1].lower()
        if file_extension not in self.allowed_extensions:
            raise ValidationError({
                "photo": f"Invalid file type. Allowed: {', '.join(sorted(self.allowed_extensions))}"
            })

        # one byte past the ceiling is enough to detect oversize
        contents = await file.read(self.max_file_size + 1)
        if not contents:
            raise ValidationError({"photo": "Photo is required"})
        if len(contents) > self.max_file_size:
            raise ValidationError(
                {"photo": f"File size too large. Maximum size is {self.max_file_size // (1024 * 1024)}MB."},
                "File size too large"
            )

        try:
            with Image.open(io.BytesIO(contents)) as image:
                image_format = image.format or ""
                width, height = image.size
                image.verify()
        except Image.DecompressionBombError:
            raise ValidationError({"photo": "Image dimensions are too large"})
        except (UnidentifiedImageError, OSError, SyntaxError):
            raise ValidationError({"photo": "Uploaded file is not a valid image"})

        # header only; nothing has been decoded yet
        if width * height > self.max_image_pixels:
            raise ValidationError({"photo": "Image dimensions are too large"})

        return PhotoUpload(contents=contents, extension=file_extension, image_format=image_format)

    async def save(self, photo: PhotoUpload, user_id: int) -> str:
        """
        Normalise the photo to JPEG and write it to disk

        Returns:
            Photo reference, e.g. "/uploads/attendance_photos/user_3_ab12cd34.jpg"
        """
        unique_filename = f"user_{user_id}_{uuid.uuid4().hex[:12]}.jpg"
        file_path = os.path.join(self.directory, unique_filename)

        try:
            image = Image.open(io.BytesIO(photo.contents))
            image.load()

            if image.size[0] > MAX_PHOTO_DIMENSIONS[0] or image.size[1] > MAX_PHOTO_DIMENSIONS[1]:
                image.thumbnail(MAX_PHOTO_DIMENSIONS, Image.Resampling.LANCZOS)

            # RGBA / palette -> RGB
            if image.mode in ("RGBA", "LA", "P"):
                image = image.convert("RGBA")
                background = Image.new("RGB", image.size, (255, 255, 255))
                background.paste(image, mask=image.split()[-1])
                image = background
            elif image.mode != "RGB":
                image = image.convert("RGB")

            buffer = io.BytesIO()
            image.save(buffer, "JPEG", quality=85, optimize=True)
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            logger.error(f"Could not process photo for user {user_id}: {e}")
            raise ValidationError({"photo": "Uploaded file is not a valid image"})

        try:
            os.makedirs(self.directory, exist_ok=True)
            async with aiofiles.open(file_path, "wb") as out:
                await out.write(buffer.getvalue())
        except OSError as e:
            logger.exception(f"Could not write photo {file_path}")
            if os.path.exists(file_path):
                os.remove(file_path)
            raise StorageError("Could not save photo. Please try again.", detail=str(e))

        return f"{PHOTO_URL_PREFIX}{unique_filename}"

    def full_path(self, photo_ref: str) -> Optional[str]:
        """Resolve a photo reference to its file path"""
        if photo_ref and photo_ref.startswith(PHOTO_URL_PREFIX):
            filename = os.path.basename(photo_ref)
            file_path = os.path.join(self.directory, filename)
            if os.path.exists(file_path):
                return file_path
        return None

    async def delete(self, photo_ref: str) -> bool:
        """Orphan photo cleanup; never raises"""
        file_path = self.full_path(photo_ref)
        if not file_path:
            return False
        try:
            os.remove(file_path)
            return True
        except OSError as e:
            logger.warning(f"Could not delete orphaned photo {file_path}: {e}")
            return False


def get_photo_store() -> PhotoStore:
    """FastAPI dependency"""
    return PhotoStore()
