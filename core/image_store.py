"""
Image Store for the ruburu image-board.

Stores uploaded images content-addressed by their md5 digest:
- the original bytes under ``images_dir/<digest>``
- a PNG thumbnail under ``thumbs_dir/<digest>.png``
- an ``images`` row recording the digest

Both files are written before the row is inserted, so a row always implies
both files exist. A crash in between leaves orphan files and no row.
"""

import hashlib
import io
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from PIL import Image, UnidentifiedImageError
from sqlalchemy.exc import SQLAlchemyError

from core.db_manager import DBManager
from core.error_handler import CodecError, StorageFailure, ValidationError


logger = logging.getLogger(__name__)


THUMBNAIL_SIZE = 200
MAX_UPLOAD_SIZE = 10 * 1024 * 1024  # 10 MiB
DEFAULT_FORMATS = ("PNG", "JPEG", "GIF", "WEBP")

# Modes Pillow's PNG encoder writes without conversion
PNG_MODES = {"1", "L", "LA", "I", "I;16", "P", "RGB", "RGBA"}


@dataclass(frozen=True)
class ImageRef:
    """Stable reference to a stored image."""
    hash: str

    @property
    def image_url(self) -> str:
        return f"/images/{self.hash}"

    @property
    def thumbnail_url(self) -> str:
        return f"/thumbs/{self.hash}.png"


class ImageStore:
    """
    Content-addressed store for post images and their thumbnails.

    Responsibilities:
    - Deduplicate uploads by content digest
    - Validate that uploads decode as images
    - Generate bounded PNG thumbnails
    - Keep the files and the ``images`` rows consistent
    """

    def __init__(
        self,
        db_manager: DBManager,
        images_dir: Path,
        thumbs_dir: Path,
        thumbnail_size: int = THUMBNAIL_SIZE,
        max_upload_size: int = MAX_UPLOAD_SIZE,
        allowed_formats: Optional[Sequence[str]] = DEFAULT_FORMATS,
    ):
        """
        Initialize the image store.

        Args:
            db_manager: DBManager instance for the ``images`` table
            images_dir: Directory for original uploads
            thumbs_dir: Directory for PNG thumbnails
            thumbnail_size: Bounding box edge for thumbnails, in pixels
            max_upload_size: Largest accepted upload, in bytes
            allowed_formats: Pillow format names accepted, or None for any
        """
        self.db = db_manager
        self.images_dir = Path(images_dir)
        self.thumbs_dir = Path(thumbs_dir)
        self.thumbnail_size = thumbnail_size
        self.max_upload_size = max_upload_size
        self.allowed_formats = {f.upper() for f in allowed_formats} if allowed_formats else None

        self.images_dir.mkdir(parents=True, exist_ok=True)
        self.thumbs_dir.mkdir(parents=True, exist_ok=True)

        logger.info(f"Image store initialized: {self.images_dir}, {self.thumbs_dir}")

    @staticmethod
    def compute_digest(data: bytes) -> str:
        """Return the 128-bit content digest of ``data`` as 32 hex chars."""
        return hashlib.md5(data).hexdigest()

    def original_path(self, digest: str) -> Path:
        return self.images_dir / digest

    def thumbnail_path(self, digest: str) -> Path:
        return self.thumbs_dir / f"{digest}.png"

    def exists(self, digest: str) -> bool:
        """Return True if an image with this digest has been recorded."""
        try:
            return self.db.image_exists(digest)
        except SQLAlchemyError as e:
            raise StorageFailure(f"Image lookup failed: {e}")

    def ensure_stored(self, data: bytes) -> ImageRef:
        """
        Store an uploaded image if its content is not already stored.

        Storing identical bytes twice returns the same reference and does
        nothing on the second call.

        Args:
            data: Raw uploaded bytes

        Returns:
            ImageRef: Reference keyed by the content digest

        Raises:
            ValidationError: If the upload is empty or too large
            CodecError: If the content is not a decodable image
            StorageFailure: If writing files or the record fails
        """
        if not data:
            raise ValidationError("Empty files are not allowed")
        if len(data) > self.max_upload_size:
            raise ValidationError(
                f"Upload of {len(data)} bytes exceeds maximum {self.max_upload_size} bytes"
            )

        digest = self.compute_digest(data)
        if self.exists(digest):
            logger.debug(f"Image {digest} already stored")
            return ImageRef(digest)

        thumbnail = self._make_thumbnail(data)

        try:
            self._write_atomic(self.original_path(digest), data)
            self._write_atomic(self.thumbnail_path(digest), thumbnail)
        except OSError as e:
            raise StorageFailure(f"Failed to write image {digest}: {e}")

        try:
            inserted = self.db.save_image(digest)
        except SQLAlchemyError as e:
            raise StorageFailure(f"Failed to record image {digest}: {e}")

        if inserted:
            logger.info(f"Stored image {digest} ({len(data)} bytes)")
        else:
            logger.debug(f"Image {digest} was recorded by a concurrent upload")
        return ImageRef(digest)

    def _make_thumbnail(self, data: bytes) -> bytes:
        """
        Decode an image and encode a PNG that fits the thumbnail box.

        Aspect ratio is preserved; images already inside the box keep their size.

        Raises:
            CodecError: If the data cannot be decoded
        """
        try:
            with Image.open(io.BytesIO(data)) as img:
                if self.allowed_formats is not None and img.format not in self.allowed_formats:
                    raise CodecError(f"Image format not supported: {img.format}")
                img.load()
                thumb = img.copy()
        except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
            raise CodecError(f"Content is not a decodable image: {e}")

        if thumb.mode not in PNG_MODES:
            thumb = thumb.convert("RGBA")

        size = self.thumbnail_size
        thumb.thumbnail((size, size), Image.Resampling.LANCZOS)

        buf = io.BytesIO()
        thumb.save(buf, format="PNG")
        return buf.getvalue()

    def _write_atomic(self, path: Path, data: bytes) -> None:
        """Write ``data`` to ``path`` durably, replacing any existing file."""
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise
