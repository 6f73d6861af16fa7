"""
Storage abstraction for S3-compatible object storage and in-memory testing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import boto3
from botocore.config import Config

from aura.errors import StorageError, ValidationError
from shared.constants import MAX_UPLOAD_SIZE_MB

logger = logging.getLogger(__name__)

UPLOAD_FAILED_MESSAGE = "Image upload failed. Please try again."


@dataclass(frozen=True)
class Upload:
    """An uploaded file as received from the client."""

    data: bytes
    content_type: str


class StorageClient(Protocol):
    """Defines the operations the API needs from object storage."""

    def upload_bytes(self, path: str, data: bytes, content_type: str) -> str:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/storage"
    stored_objects: dict = None

    def __post_init__(self):
        if self.stored_objects is None:
            self.stored_objects = {}

    def upload_bytes(self, path: str, data: bytes, content_type: str) -> str:
        self.stored_objects[path] = (bytes(data), content_type)
        return f"{self.base_url}/{path}"


@dataclass
class S3StorageClient:
    """
    S3-compatible storage client. Objects are uploaded with a public-read
    ACL and addressed through `public_base_url` when it is set.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    public_base_url: Optional[str] = None

    def __post_init__(self):
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
            config=config,
        )

    def public_url(self, path: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{path}"
        if self.endpoint:
            return f"{self.endpoint.rstrip('/')}/{self.bucket}/{path}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{path}"

    def upload_bytes(self, path: str, data: bytes, content_type: str) -> str:
        self._client.put_object(
            Bucket=self.bucket,
            Key=path,
            Body=data,
            ContentType=content_type,
            ACL="public-read",
        )
        return self.public_url(path)


def validate_upload(upload: Upload, max_size_mb: int = MAX_UPLOAD_SIZE_MB) -> None:
    if not upload.content_type or not upload.content_type.startswith("image/"):
        raise ValidationError("Only image files are allowed.")
    if len(upload.data) > max_size_mb * 1024 * 1024:
        raise ValidationError(f"File size exceeds {max_size_mb}MB limit.")


def upload_image(
    storage: StorageClient,
    path: str,
    upload: Upload,
    max_size_mb: int = MAX_UPLOAD_SIZE_MB,
) -> str:
    """Validates and stores an image, returning its download URL."""
    validate_upload(upload, max_size_mb)
    try:
        return storage.upload_bytes(path, upload.data, upload.content_type)
    except Exception as exc:
        logger.exception("Upload to %s failed", path)
        raise StorageError(UPLOAD_FAILED_MESSAGE) from exc
