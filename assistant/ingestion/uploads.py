"""Temporary-file staging for uploaded documents and audio."""

import contextlib
import logging
import os
import tempfile
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from fastapi import UploadFile

from shared.errors import ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StagedFile:
    path: Path
    filename: str
    content_type: str
    size: int


async def read_upload(upload: UploadFile | None, max_bytes: int, label: str = "file") -> bytes:
    """Read an upload, enforcing presence and the size cap.

    Raises:
        ValidationError: If nothing was uploaded, the upload is empty, or it
            exceeds ``max_bytes``.
    """
    if upload is None or not upload.filename:
        raise ValidationError(f"No {label} uploaded")
    # One extra byte tells us the cap was exceeded without reading it all
    data = await upload.read(max_bytes + 1)
    if not data:
        raise ValidationError(f"Uploaded {label} is empty")
    if len(data) > max_bytes:
        raise ValidationError(f"File too large (max {max_bytes // (1024 * 1024)}MB)")
    return data


@contextlib.contextmanager
def staged_file(data: bytes, filename: str, content_type: str = "application/octet-stream") -> Iterator[StagedFile]:
    """Write ``data`` to a temp file for the duration of the block.

    The file is removed on every exit path, including exceptions raised
    inside the block.
    """
    suffix = Path(filename).suffix
    with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as tmp_file:
        tmp_file.write(data)
        tmp_path = Path(tmp_file.name)

    try:
        yield StagedFile(path=tmp_path, filename=filename, content_type=content_type, size=len(data))
    finally:
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
        logger.debug(f"[UPLOAD] Removed staged file {tmp_path.name}")
