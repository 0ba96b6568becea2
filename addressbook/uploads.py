"""Storage of uploaded contact pictures on the local filesystem."""

import logging
import shutil
import uuid
from pathlib import Path

from fastapi import APIRouter, HTTPException, UploadFile, status
from fastapi.responses import FileResponse

from .core import get_settings
from .errors import StorageError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/images", tags=["images"])


def store_image(upload: UploadFile | None, directory: str | Path) -> str | None:
    """
    Save an uploaded image and return the filename it was stored under.

    The stored name is random; only the original extension is kept.

    Args:
        upload (UploadFile | None): File from a multipart form.
        directory (str | Path): Destination directory, created if needed.

    Raises:
        StorageError: If the file cannot be written.

    Returns:
        str | None: Stored filename, or ``None`` when nothing was uploaded.
    """
    if upload is None or not upload.filename:
        return None

    filename = uuid.uuid4().hex + Path(upload.filename).suffix.lower()
    target = Path(directory) / filename
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("wb") as out:
            shutil.copyfileobj(upload.file, out)
    except OSError as e:
        raise StorageError(f"couldn't store the image {upload.filename}: {e}") from e

    logger.info("stored image %s as %s", upload.filename, filename)
    return filename


def discard_image(filename: str | None, directory: str | Path) -> None:
    """
    Remove a stored image that no contact points to any more.

    A failed removal is logged and left behind; the database row is
    already correct at this point.
    """
    if not filename:
        return
    try:
        (Path(directory) / Path(filename).name).unlink(missing_ok=True)
    except OSError:
        logger.warning("couldn't remove image %s", filename, exc_info=True)
        return
    logger.info("removed image %s", filename)


@router.get("/{filename}")
def read_image(filename: str):
    """
    Serve a stored contact picture.

    Raises:
        HTTPException: If no such image is stored.
    """
    path = Path(get_settings().UPLOAD_DIR) / filename
    if Path(filename).name != filename or not path.is_file():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"image {filename} not found",
        )
    return FileResponse(path)
