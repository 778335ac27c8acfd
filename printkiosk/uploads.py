"""
Temp upload storage.

Uploaded photos land in TEMP_UPLOAD_DIR as <timestamp>_<sanitized-name>,
the name the kiosk UI stores as a photo's fileName. HEIC photos are
converted to JPEG on arrival. Files older than the retention window are
removed by sweep_temp_uploads, whatever the state of their order.
"""

import io
import re
import time
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from loguru import logger

from .errors import FileTooLargeError, InvalidImageFormatError, UnsupportedImageError
from .pipeline import decode

HEIC_EXTENSIONS = {'.heic', '.heif'}
SECONDS_PER_DAY = 24 * 60 * 60

_UNSAFE_CHARS = re.compile(r'[^a-zA-Z0-9.-]')


def sanitize_upload_name(name: str) -> str:
    """Replace everything except letters, digits, dots and dashes with '_'."""
    return _UNSAFE_CHARS.sub('_', Path(name or 'photo').name) or 'photo'


def convert_heic_to_jpeg(data: bytes, filename: str, quality: int = 95) -> bytes:
    """Re-encode HEIC bytes as JPEG, keeping EXIF so orientation survives."""
    try:
        image = decode(data, filename)
    except UnsupportedImageError as e:
        raise InvalidImageFormatError(filename, detected_type='heic') from e

    buffer = io.BytesIO()
    save_kwargs = {'quality': quality}
    exif = image.info.get('exif')
    if exif:
        save_kwargs['exif'] = exif
    image.convert('RGB').save(buffer, 'JPEG', **save_kwargs)
    return buffer.getvalue()


def save_upload(data: bytes,
                original_name: str,
                temp_dir,
                allowed_extensions: Sequence[str] = ('.jpg', '.jpeg', '.png', '.heic', '.heif'),
                max_size: Optional[int] = None,
                clock: Callable[[], float] = time.time) -> str:
    """
    Store an uploaded photo in temp_dir and return its generated file name.

    Raises InvalidImageFormatError / FileTooLargeError for rejected uploads.
    """
    safe_name = sanitize_upload_name(original_name)
    extension = Path(safe_name).suffix.lower()
    if extension not in {ext.lower() for ext in allowed_extensions}:
        raise InvalidImageFormatError(original_name, detected_type=extension or None)

    if max_size is not None and len(data) > max_size:
        raise FileTooLargeError(original_name, len(data) / (1024 * 1024), max_size / (1024 * 1024))

    if extension in HEIC_EXTENSIONS:
        data = convert_heic_to_jpeg(data, original_name)
        safe_name = f"{Path(safe_name).stem}.jpg"

    temp_path = Path(temp_dir)
    temp_path.mkdir(parents=True, exist_ok=True)

    file_name = f"{int(clock() * 1000)}_{safe_name}"
    target = temp_path / file_name
    # Same millisecond and same name: bump the stamp until it is free
    while target.exists():
        clock_ms = int(file_name.split('_', 1)[0]) + 1
        file_name = f"{clock_ms}_{safe_name}"
        target = temp_path / file_name

    target.write_bytes(data)
    logger.info(f"Stored upload {original_name} as {file_name} ({len(data)} bytes)")
    return file_name


def sweep_temp_uploads(temp_dir, max_age_days: float = 3.0,
                       now: Optional[float] = None) -> List[Path]:
    """Delete files in temp_dir older than max_age_days; return what was removed."""
    temp_path = Path(temp_dir)
    if not temp_path.exists():
        logger.debug(f"Temp upload folder {temp_path} does not exist, nothing to sweep")
        return []

    cutoff = (now if now is not None else time.time()) - max_age_days * SECONDS_PER_DAY
    removed = []
    for path in temp_path.iterdir():
        if not path.is_file():
            continue
        try:
            if path.stat().st_mtime < cutoff:
                path.unlink()
                removed.append(path)
        except OSError as e:
            logger.warning(f"Could not remove expired upload {path}: {e}")

    logger.info(f"Retention sweep removed {len(removed)} files from {temp_path}")
    return removed
