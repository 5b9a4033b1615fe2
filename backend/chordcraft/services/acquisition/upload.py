from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Iterable

from chordcraft.core.errors import ValidationError

_LOG = logging.getLogger(__name__)

# Content types browsers and mobile clients actually send for the accepted formats.
CONTENT_TYPES: dict[str, set[str]] = {
    "mp3": {"audio/mpeg", "audio/mp3", "audio/mpeg3", "audio/x-mpeg-3"},
    "wav": {"audio/wav", "audio/x-wav", "audio/wave", "audio/vnd.wave"},
    "ogg": {"audio/ogg", "application/ogg", "audio/vorbis"},
    "m4a": {"audio/mp4", "audio/x-m4a", "audio/m4a", "audio/aac"},
    "flac": {"audio/flac", "audio/x-flac"},
}
_GENERIC_CONTENT_TYPES = {"application/octet-stream", "binary/octet-stream"}


def file_extension(name: str | None) -> str:
    return Path(str(name or "")).suffix.lower().lstrip(".")


def validate_format(
    original_name: str | None,
    content_type: str | None,
    allowed: Iterable[str],
) -> str:
    """Return the normalized extension or raise ValidationError."""
    allowed = tuple(allowed)
    ext = file_extension(original_name)
    if not ext or ext not in allowed:
        raise ValidationError(
            f"Unsupported file format '{ext or '?'}'. Allowed: {', '.join(allowed)}"
        )

    if content_type:
        ctype = content_type.split(";", 1)[0].strip().lower()
        if ctype not in _GENERIC_CONTENT_TYPES and ctype not in CONTENT_TYPES.get(ext, set()):
            raise ValidationError(f"Content type '{ctype}' does not match a .{ext} file")
    return ext


def validate_size(size_bytes: int, max_bytes: int) -> None:
    if size_bytes <= 0:
        raise ValidationError("Uploaded file is empty")
    if size_bytes > max_bytes:
        raise ValidationError(
            f"File exceeds {max_bytes // (1024 * 1024)} MB limit",
            status_code=413,
        )


def validate_upload(
    local_path: str | Path,
    original_name: str | None,
    *,
    content_type: str | None = None,
    allowed: Iterable[str],
    max_bytes: int,
) -> str:
    """
    Check format and size of an uploaded file before any processing starts.
    Returns the normalized extension.
    """
    path = Path(local_path)
    ext = validate_format(original_name or path.name, content_type, allowed)
    if not path.is_file():
        raise ValidationError(f"Uploaded file not found: {path.name}")
    validate_size(path.stat().st_size, max_bytes)
    return ext


def take_upload(local_path: str | Path, dest_dir: Path, ext: str, *, consume: bool) -> Path:
    """Place the uploaded file in the job's scratch directory as its raw audio."""
    src = Path(local_path)
    dest_dir.mkdir(parents=True, exist_ok=True)
    dest = dest_dir / f"raw.{ext}"
    if consume:
        shutil.move(str(src), str(dest))
    else:
        shutil.copyfile(src, dest)
    _LOG.info("Upload %s placed at %s", src.name, dest)
    return dest
