import logging
import os
import shutil
import time

from fastapi import UploadFile

logger = logging.getLogger(__name__)


def ensure_uploads_dir(uploads_dir: str) -> str:
    os.makedirs(uploads_dir, exist_ok=True)
    return uploads_dir


def _millis() -> int:
    return int(time.time() * 1000)


def local_name(original: str | None, prefix: str | None = None) -> str:
    base = os.path.basename(original or "upload")
    if prefix:
        _, ext = os.path.splitext(base)
        return f"{prefix}_{_millis()}{ext.lower()}"
    return f"{_millis()}_{base}"


def save_upload(upload: UploadFile, uploads_dir: str, prefix: str | None = None) -> str:
    """Copy an uploaded file to disk and return its path."""
    ensure_uploads_dir(uploads_dir)
    path = os.path.join(uploads_dir, local_name(upload.filename, prefix))

    upload.file.seek(0)
    with open(path, "wb") as out:
        shutil.copyfileobj(upload.file, out)

    logger.info("Saved upload %s (%d bytes)", path, os.path.getsize(path))
    return path


def delete_local_file(path: str | None) -> bool:
    if not path:
        return False
    try:
        os.remove(path)
        return True
    except FileNotFoundError:
        return False
    except OSError as exc:
        logger.warning("Could not delete local file %s: %s", path, exc)
        return False


def public_path(path: str) -> str:
    """URL path under the /uploads static mount."""
    return f"/uploads/{os.path.basename(path)}"
