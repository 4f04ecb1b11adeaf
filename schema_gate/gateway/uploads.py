# Copyright (c) 2026 SchemaGate Contributors. All Rights Reserved.

"""
Image Upload Pipeline — local media reference → durable public URL.

Remote references (http/https) pass through untouched. Anything else is
read from disk, stored under a timestamp-based name in the shared bucket,
and resolved to its public URL. Object names are not tenant-scoped.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import time
import uuid
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import unquote, urlparse

from schema_gate.core.config import settings
from schema_gate.core.errors import BackendError, Result, ValidationError, unexpected
from schema_gate.protocols.schema import UploadResult
from schema_gate.runtime.backend import BackendClient

logger = logging.getLogger("gate.uploads")

DEFAULT_CONTENT_TYPE = "image/jpeg"

Reader = Callable[[str], bytes]


def is_remote_ref(ref: str) -> bool:
    """True for references that already point at a remote resource."""
    return urlparse(ref.strip()).scheme.lower() in ("http", "https")


def local_path(ref: str) -> Path:
    """Filesystem path for a file:// URL or a plain path."""
    parsed = urlparse(ref)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    return Path(ref)


def read_local(ref: str) -> bytes:
    with open(local_path(ref), "rb") as f:
        return f.read()


def object_name(ref: str) -> str:
    """Collision-resistant object name: profile_<epoch ms>_<8 hex><ext>."""
    suffix = local_path(ref).suffix.lower() or ".jpg"
    return f"profile_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}{suffix}"


def content_type_for(ref: str) -> str:
    guessed, _ = mimetypes.guess_type(local_path(ref).name)
    return guessed or DEFAULT_CONTENT_TYPE


class ImageUploader:
    """Uploads profile images to the shared object store."""

    def __init__(
        self,
        backend: BackendClient,
        bucket: Optional[str] = None,
        reader: Optional[Reader] = None,
    ) -> None:
        self._backend = backend
        self._bucket = bucket or settings.PROFILE_IMAGE_BUCKET
        self._reader = reader or read_local

    @property
    def bucket(self) -> str:
        return self._bucket

    async def upload(self, ref: str) -> Result:
        """Return Result(UploadResult, error). Remote refs are returned unchanged."""
        if not ref or not ref.strip():
            return Result.failure(ValidationError("Image reference is empty"))
        if is_remote_ref(ref):
            return Result.success(UploadResult(public_url=ref))

        try:
            # Off the event loop so a slow disk does not stall other tasks
            content = await asyncio.to_thread(self._reader, ref)
        except OSError as exc:
            logger.error("Could not read local image %s: %s", ref, exc)
            return Result.failure(BackendError(
                code="LOCAL_READ_FAILED",
                message=f"Could not read image: {exc}",
            ))
        except Exception as exc:
            return Result.failure(unexpected(exc))

        name = object_name(ref)
        _, error = await self._backend.upload_object(
            self._bucket, name, content, content_type_for(ref),
        )
        if error:
            logger.error("Upload of %s to %s failed: %s", name, self._bucket, error.message)
            return Result.failure(error)

        public_url = self._backend.public_url(self._bucket, name)
        logger.info("Uploaded %d bytes as %s/%s", len(content), self._bucket, name)
        return Result.success(UploadResult(public_url=public_url, path=name))
