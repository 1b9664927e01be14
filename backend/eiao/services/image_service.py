"""
Everything Is An Ordeal: Image Pipeline
==========================================

What:  Turns an uploaded file into the processed image an ordeal displays,
       and removes that image again when the ordeal is deleted.
How:   Stage raw bytes on disk (aiofiles) → decode and shrink with Pillow in
       a worker thread → save the result into the public uploads directory.
Who:   Called by OrdealService on create and delete, and by the CLI sweep.

File lifecycle for one create request:

    upload "a.png" for key "cats"
        │
        ▼
    staging_dir/cats1718000000000.png          raw bytes, never public
        │  Pillow: exif_transpose + thumbnail(500, 500)
        ▼
    public/uploads/p-cats1718000000000.png     the stored imageName
        │
        ▼
    staged file removed (success or failure)

Naming:
    <base><epoch-millis><ext>, prefixed with RESIZED_PREFIX once processed.
    `base` is the ordeal key (or the upload's own base name for the empty
    key), cut so the whole name fits in 255 UTF-8 bytes. Formats Pillow can
    read but not write are stored as PNG with a .png extension. Two uploads
    for the same key within the same millisecond collide.
"""

import logging
import os
import time
from io import BytesIO
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import aiofiles
from PIL import Image, ImageOps
from starlette.concurrency import run_in_threadpool

from eiao.exceptions import FileStorageError, ValidationError

logger = logging.getLogger(__name__)

MISSING_IMAGE_MESSAGE = "Please attach an image to create an ordeal."
UNREADABLE_IMAGE_MESSAGE = "The uploaded file is not an image we can read."

# Linux filesystems cap a single file name at 255 bytes
MAX_NAME_BYTES = 255
MAX_EXTENSION_BYTES = 16

# Written in place of a format Pillow can decode but not encode
FALLBACK_FORMAT = "PNG"

# Pillow formats that cannot carry an alpha channel or palette as-is
_RGB_ONLY_FORMATS = {"JPEG"}

# Modes the PNG encoder accepts without conversion
_PNG_MODES = {"1", "L", "LA", "I", "I;16", "P", "RGB", "RGBA"}


class ImageService:
    """
    Stores, resizes, and deletes ordeal images.

    Args:
        uploads_dir:   Public directory processed images are written to.
        staging_dir:   Private directory for raw uploads awaiting processing.
        max_dimension: Longest allowed side of a processed image, in pixels.
        max_file_size: Largest accepted upload, in bytes.
        prefix:        Prefix marking processed images.
    """

    def __init__(
        self,
        uploads_dir: Path,
        staging_dir: Path,
        max_dimension: int = 500,
        max_file_size: int = 10_485_760,
        prefix: str = "p-",
    ):
        self.uploads_dir = Path(uploads_dir).resolve()
        self.staging_dir = Path(staging_dir).resolve()
        self.max_dimension = max_dimension
        self.max_file_size = max_file_size
        self.prefix = prefix
        logger.info(
            "ImageService initialized (uploads=%s, staging=%s, max=%dpx)",
            self.uploads_dir, self.staging_dir, self.max_dimension,
        )

    def ensure_directories(self) -> None:
        """
        Create the uploads and staging directories.

        Called on application startup. Constructing the service touches no
        disk, so importing the app (uvicorn, the CLI) has no side effects.
        stage() and process() also create their directory on demand.
        """
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        self.staging_dir.mkdir(parents=True, exist_ok=True)

    # ── Validation ────────────────────────────────────────────────────────

    def validate_upload(self, filename: Optional[str], content: Optional[bytes]) -> None:
        """
        Reject a create request that carries no usable file.

        A browser form submitted without a file still sends an empty part
        with an empty filename, so both "no part" and "empty part" count as
        missing.
        """
        if not filename or not content:
            raise ValidationError(message=MISSING_IMAGE_MESSAGE, field="image")

        if len(content) > self.max_file_size:
            max_mb = self.max_file_size / (1024 * 1024)
            raise ValidationError(
                message=f"Image is too large. The maximum size is {max_mb:.0f}MB.",
                field="image",
                context={"actual_size": len(content), "max_size": self.max_file_size},
            )

    # ── Naming ────────────────────────────────────────────────────────────

    def staged_name(self, key: str, filename: str) -> str:
        """
        <base><epoch-millis><ext> for the raw upload.

        Keys have no length limit but file names do, so the base is cut to
        whatever fits in MAX_NAME_BYTES once the prefix, timestamp and
        extension are counted. The cut is by UTF-8 bytes and never splits a
        character.
        """
        original = Path(filename)
        ext = original.suffix.lower()
        if len(ext.encode("utf-8")) > MAX_EXTENSION_BYTES:
            ext = ""
        stamp = str(int(time.time() * 1000))
        budget = MAX_NAME_BYTES - len(self.prefix.encode("utf-8")) - len(stamp) - len(ext.encode("utf-8"))
        base = (key or original.stem).encode("utf-8")[:budget].decode("utf-8", errors="ignore")
        return f"{base}{stamp}{ext}"

    def image_path(self, image_name: str) -> Path:
        """Absolute location of a processed image."""
        return self.uploads_dir / image_name

    # ── Store ─────────────────────────────────────────────────────────────

    async def stage(self, name: str, content: bytes) -> Path:
        """Write the raw upload to the staging directory."""
        path = self.staging_dir / name
        try:
            self.staging_dir.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to stage upload at %s: %s", path, str(e))
            raise FileStorageError(
                message="Failed to save uploaded image. Please try again.",
                context={"path": str(path), "os_error": str(e)},
            )
        logger.debug("Upload staged: %s (%d bytes)", name, len(content))
        return path

    def _resize(self, source: Path) -> Tuple[bytes, bool]:
        """
        Decode `source` and return it shrunk to fit max_dimension, encoded.

        Runs in a worker thread. Image.thumbnail() keeps the aspect ratio and
        never enlarges. The source format is kept when Pillow can write it;
        formats without alpha support get an RGB conversion first.

        Returns:
            (encoded bytes, True if FALLBACK_FORMAT was used instead of the
            source format)
        """
        with Image.open(source) as im:
            fmt = im.format or FALLBACK_FORMAT
            # Pillow decodes some formats (Sun raster, PSD) it cannot encode
            converted = fmt not in Image.SAVE
            if converted:
                fmt = FALLBACK_FORMAT
            im = ImageOps.exif_transpose(im)
            im.thumbnail((self.max_dimension, self.max_dimension), Image.LANCZOS)
            if fmt in _RGB_ONLY_FORMATS and im.mode not in ("RGB", "L"):
                im = im.convert("RGB")
            elif converted and im.mode not in _PNG_MODES:
                im = im.convert("RGBA")
            buffer = BytesIO()
            im.save(buffer, format=fmt)
        return buffer.getvalue(), converted

    async def process(self, staged: Path) -> str:
        """
        Produce the processed image for a staged upload.

        Returns:
            The processed file name (relative to uploads_dir).

        Raises:
            ValidationError: the staged bytes are not a decodable image.
            FileStorageError: the processed image could not be written.
        """
        try:
            data, converted = await run_in_threadpool(self._resize, staged)
        except (Image.DecompressionBombError, SyntaxError, ValueError, KeyError, OSError) as e:
            # Truncated or corrupt data surfaces as OSError (UnidentifiedImageError
            # included), SyntaxError or ValueError depending on the decoder;
            # KeyError comes from a mode or format with no encoder
            logger.warning("Could not decode upload %s: %s", staged.name, str(e))
            raise ValidationError(
                message=UNREADABLE_IMAGE_MESSAGE,
                field="image",
                context={"error_type": type(e).__name__},
            )
        image_name = f"{self.prefix}{staged.name}"
        if converted:
            image_name = f"{self.prefix}{staged.stem}.{FALLBACK_FORMAT.lower()}"
            logger.info("Upload %s re-encoded as %s", staged.name, FALLBACK_FORMAT)
        target = self.image_path(image_name)
        try:
            self.uploads_dir.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(target, "wb") as f:
                await f.write(data)
        except OSError as e:
            logger.error("Failed to write processed image %s: %s", target, str(e))
            await self.cleanup_file(target)
            raise FileStorageError(
                message="Failed to save processed image. Please try again.",
                context={"path": str(target), "os_error": str(e)},
            )
        logger.info("Image stored: %s", image_name)
        return image_name

    async def store(self, key: str, filename: Optional[str], content: Optional[bytes]) -> str:
        """
        Complete pipeline: validate → stage → resize → clean up staging.

        The staged raw upload is removed whether or not processing succeeded,
        so a failed create leaves nothing behind on disk.

        Returns:
            The processed image name to record on the ordeal.
        """
        self.validate_upload(filename, content)
        staged = await self.stage(self.staged_name(key, filename), content)
        try:
            return await self.process(staged)
        finally:
            await self.cleanup_file(staged)

    # ── Removal ───────────────────────────────────────────────────────────

    async def cleanup_file(self, file_path: Path) -> None:
        """
        Remove a file if it exists. Best-effort: errors are logged, not raised.
        """
        try:
            path = Path(file_path)
            if path.exists():
                os.remove(path)
                logger.debug("Cleaned up file: %s", path.name)
        except OSError as e:
            logger.warning("Failed to clean up file %s: %s", file_path, str(e))

    async def delete_image(self, image_name: str) -> bool:
        """
        Remove the processed image of a deleted ordeal.

        Returns:
            True if a file was removed. A missing file or an OS error is
            logged and reported as False; the record deletion that preceded
            this call is never undone.
        """
        path = self.image_path(image_name)
        if path.parent != self.uploads_dir:
            logger.error("Refusing to delete %r: outside the uploads directory", image_name)
            return False
        try:
            os.remove(path)
        except FileNotFoundError:
            logger.warning("Image %s was already gone", image_name)
            return False
        except OSError as e:
            logger.error("Failed to delete image %s: %s", image_name, str(e))
            return False
        logger.info("Image deleted: %s", image_name)
        return True

    async def sweep_orphans(self, referenced: Iterable[str], dry_run: bool = False) -> List[str]:
        """
        Remove processed images no ordeal references.

        Catches files left behind when an image deletion failed after its
        record was already gone. Only files carrying the processed-image
        prefix are considered; anything else in the uploads directory is
        left alone.

        Returns:
            Names of the orphaned files (removed unless dry_run).
        """
        if not self.uploads_dir.is_dir():
            logger.info("Orphan sweep: no uploads directory at %s", self.uploads_dir)
            return []
        keep = set(referenced)
        orphans = sorted(
            entry.name
            for entry in self.uploads_dir.iterdir()
            if entry.is_file() and entry.name.startswith(self.prefix) and entry.name not in keep
        )
        if not dry_run:
            for name in orphans:
                await self.delete_image(name)
        logger.info("Orphan sweep: %d file(s)%s", len(orphans), " (dry run)" if dry_run else "")
        return orphans
