from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from uuid import uuid4

from PIL import Image, UnidentifiedImageError

from mosaic_studio.core.errors import ImageDecodeError, ImageNotFound, StorageError

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp"}
LEGACY_PREFIX = "uploads/"


def normalize_reference(reference: str) -> str:
    """Return the canonical form of a stored image path.

    Canonical paths are relative to the uploads root, use "/" and carry no
    leading separator or ``uploads/`` prefix. Older rows may still hold any of
    those shapes, so the read side runs them through here too.
    """
    ref = reference.strip().replace("\\", "/")
    ref = ref.lstrip("/")
    while ref.startswith("./"):
        ref = ref[2:]
    if ref.startswith(LEGACY_PREFIX):
        ref = ref[len(LEGACY_PREFIX):]
    ref = posixpath.normpath(ref) if ref else ""
    if not ref or ref == "." or ref == ".." or ref.startswith("../"):
        raise ValueError(f"Invalid image reference: {reference!r}")
    return ref


@dataclass
class StoredImage:
    path: str
    filename: str
    width: int
    height: int
    format: str


class ImageStore:
    """Filesystem-backed access to everything under the uploads root."""

    def __init__(self, root_dir: str | Path):
        self.root = Path(root_dir)

    def resolve(self, reference: str) -> Path:
        try:
            relative = normalize_reference(reference)
        except ValueError as exc:
            raise ImageNotFound(str(exc)) from exc
        path = self.root / relative
        if not path.is_file():
            raise ImageNotFound(f"Image not found: {reference}")
        return path

    def open(self, reference: str) -> Image.Image:
        path = self.resolve(reference)
        try:
            im = Image.open(path)
        except FileNotFoundError as exc:
            raise ImageNotFound(f"Image not found: {reference}") from exc
        except (UnidentifiedImageError, Image.DecompressionBombError) as exc:
            raise ImageDecodeError(f"Cannot decode image {reference}: {exc}") from exc
        except OSError as exc:
            raise StorageError(f"Cannot read image {reference}: {exc}") from exc
        with im:
            try:
                return im.convert("RGBA")
            except (OSError, ValueError) as exc:
                raise ImageDecodeError(f"Cannot decode image {reference}: {exc}") from exc

    def ensure_dir(self, relative: str) -> Path:
        target = self.root / relative
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to create directory {relative}: {exc}") from exc
        return target

    def relative_path(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    def save_upload(
        self,
        user_id: int,
        project_id: int | None,
        kind: str,
        filename: str,
        data: bytes,
    ) -> StoredImage:
        ext = Path(filename or "").suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise ImageDecodeError("Invalid image format")
        try:
            with Image.open(BytesIO(data)) as im:
                width, height = im.size
                fmt = (im.format or ext.lstrip(".")).lower()
                im.verify()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError, SyntaxError) as exc:
            raise ImageDecodeError(f"Cannot decode uploaded image: {exc}") from exc

        directory = f"user_{user_id}"
        if project_id is not None:
            directory = f"{directory}/project_{project_id}"
        stored_name = f"{kind}_{uuid4()}{ext}"
        target = self.ensure_dir(directory) / stored_name
        try:
            target.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Failed to save image: {exc}") from exc

        reference = normalize_reference(f"{directory}/{stored_name}")
        logger.info(f"Stored {kind} image {reference} ({width}x{height})")
        return StoredImage(path=reference, filename=filename, width=width, height=height, format=fmt)
