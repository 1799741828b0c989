"""Profile image storage backends.

- `LocalImageStore` writes into the upload directory served at `/uploads`.
- `S3ImageStore` uploads to an S3-compatible bucket (e.g., MinIO) and returns
  a public or pre-signed URL.
"""

import logging
import os
import re
import time
import uuid
from abc import ABC, abstractmethod

import boto3
from botocore.client import Config as BotoConfig

from .config import ALLOWED_IMAGE_TYPES, MAX_FILE_SIZE, Settings, get_settings
from .errors import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def validate_image(content_type: str, size: int) -> None:
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationError("Invalid file type. Only JPEG, PNG, GIF, and WebP are allowed.")
    if size > MAX_FILE_SIZE:
        raise ValidationError("File too large. Maximum size is 5MB.")


def safe_filename(original: str) -> str:
    """Timestamped, path-free name for a stored upload."""
    base = os.path.basename(original or "")
    base = _UNSAFE_CHARS.sub("_", base).strip("._") or f"image-{uuid.uuid4().hex[:8]}"
    return f"{int(time.time() * 1000)}-{base}"


class ImageStore(ABC):
    @abstractmethod
    def save(self, filename: str, content_type: str, data: bytes) -> str:
        """Store the image and return the URL the frontend should use."""


class LocalImageStore(ImageStore):
    def __init__(self, upload_dir: str, url_prefix: str = "/uploads"):
        self.upload_dir = upload_dir
        self.url_prefix = url_prefix.rstrip("/")
        os.makedirs(upload_dir, exist_ok=True)

    def save(self, filename: str, content_type: str, data: bytes) -> str:
        stored_name = safe_filename(filename)
        with open(os.path.join(self.upload_dir, stored_name), "wb") as buffer:
            buffer.write(data)
        logger.info("Profile image stored: %s", stored_name)
        return f"{self.url_prefix}/{stored_name}"


class S3ImageStore(ImageStore):
    """Thin client around boto3 S3 for profile images."""

    def __init__(
        self,
        bucket: str,
        endpoint: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        public_url: str | None = None,
        prefix: str = "profile-images",
    ):
        self.bucket = bucket
        self.public_url = public_url.rstrip("/") if public_url else None
        self.prefix = prefix
        self._client = boto3.client(
            "s3",
            endpoint_url=endpoint,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            config=BotoConfig(signature_version="s3v4"),
            region_name="us-east-1",
        )

    def save(self, filename: str, content_type: str, data: bytes) -> str:
        key = f"{self.prefix}/{safe_filename(filename)}"
        self._client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        logger.info("Profile image uploaded to s3://%s/%s", self.bucket, key)
        if self.public_url:
            return f"{self.public_url}/{key}"
        return self._client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=7 * 24 * 3600,
        )


def build_image_store(settings: Settings) -> ImageStore:
    if settings.image_store == "s3":
        if not settings.s3_bucket:
            raise ConfigurationError("S3_BUCKET must be set when IMAGE_STORE=s3")
        return S3ImageStore(
            bucket=settings.s3_bucket,
            endpoint=settings.s3_endpoint,
            access_key=settings.s3_access_key,
            secret_key=settings.s3_secret_key,
            public_url=settings.s3_public_url,
        )
    return LocalImageStore(settings.upload_dir)


# Global image store instance
image_store = None

def get_image_store() -> ImageStore:
    """Get or create the image store instance"""
    global image_store
    if image_store is None:
        image_store = build_image_store(get_settings())
    return image_store
