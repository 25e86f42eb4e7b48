"""
Media storage

Uploaded files are written under the upload directory, which the app serves
at MEDIA_BASE_URL. The stored URL is the durable reference kept on documents.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

import av
from bson import ObjectId
from fastapi import HTTPException, UploadFile

from config import settings

logger = logging.getLogger(__name__)

IMAGE_TYPES = ("image/",)
VIDEO_TYPES = ("video/",)


class MediaStorageError(Exception):
    pass


@dataclass
class StoredMedia:
    url: str
    duration: Optional[float] = None


def probe_duration(path: str) -> Optional[float]:
    """Length in seconds of the video at `path`, or None if it has no decodable video stream."""
    try:
        with av.open(path) as container:
            if not container.streams.video:
                return None
            if container.duration is not None:
                return container.duration / av.time_base
            stream = container.streams.video[0]
            if stream.duration is not None and stream.time_base is not None:
                return float(stream.duration * stream.time_base)
    except av.error.FFmpegError as e:
        logger.warning("Could not probe %s: %s", path, e)
    return None


class LocalMediaStorage:
    def __init__(self, root: str, base_url: str):
        self.root = root
        self.base_url = base_url.rstrip("/")

    async def save(self, upload: UploadFile, folder: str, probe: bool = False) -> StoredMedia:
        """Write `upload` under `folder`.

        With `probe`, the duration is read from the stored file and files that
        cannot be decoded are removed again and rejected with a 400.
        """
        ext = os.path.splitext(upload.filename or "")[1]
        filename = f"{ObjectId()}{ext}"
        directory = os.path.join(self.root, folder)
        path = os.path.join(directory, filename)
        try:
            os.makedirs(directory, exist_ok=True)
            with open(path, "wb") as f:
                f.write(await upload.read())
        except OSError as e:
            logger.error("Upload of %s failed: %s", upload.filename, e)
            raise MediaStorageError(f"Could not store {upload.filename}") from e

        duration = None
        if probe:
            duration = probe_duration(path)
            if duration is None:
                os.remove(path)
                raise HTTPException(status_code=400, detail=f"{upload.filename} is not a readable media file")
        return StoredMedia(url=f"{self.base_url}/{folder}/{filename}", duration=duration)

    def path_for(self, url: str) -> Optional[str]:
        prefix = self.base_url + "/"
        if not url or not url.startswith(prefix):
            return None
        relative = url[len(prefix):]
        path = os.path.normpath(os.path.join(self.root, relative))
        if not path.startswith(os.path.normpath(self.root) + os.sep):
            return None
        return path

    def delete(self, url: Optional[str]) -> bool:
        """Remove the file behind `url`. Unknown or already missing files are not an error."""
        path = self.path_for(url)
        if path is None:
            return False
        try:
            os.remove(path)
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error("Delete of %s failed: %s", url, e)
            raise MediaStorageError(f"Could not delete {url}") from e
        return True


def check_content_type(upload: UploadFile, prefixes: tuple, label: str) -> None:
    if upload.content_type is None or not upload.content_type.startswith(prefixes):
        raise HTTPException(status_code=400, detail=f"{label} has an unsupported file type")


storage = LocalMediaStorage(settings.UPLOAD_DIR, settings.MEDIA_BASE_URL)


def get_storage() -> LocalMediaStorage:
    return storage
