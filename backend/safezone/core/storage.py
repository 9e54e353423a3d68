"""Object publisher over multiple storage backends.

Supports: local filesystem, S3, MinIO, Cloudflare R2 and other S3-compatible
storage. Keys are opaque to this module; layout policy belongs to the caller.
"""

import logging
import os
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Optional

from botocore.exceptions import BotoCoreError, ClientError

from safezone.core.config import Settings, settings as default_settings
from safezone.core.errors import StorageError

logger = logging.getLogger(__name__)


@dataclass
class StorageResult:
    """Result of a storage write."""
    success: bool
    key: str
    file_size: int = 0
    etag: Optional[str] = None
    error_message: Optional[str] = None


@dataclass
class StorageConfig:
    """Storage configuration."""
    backend: str  # local, s3, minio, r2
    bucket: str = ""
    region: str = ""
    access_key: str = ""
    secret_key: str = ""
    endpoint_url: Optional[str] = None
    use_ssl: bool = True
    local_path: str = "./storage"
    local_url_prefix: str = "/media"

    @classmethod
    def from_settings(cls, s: Settings) -> "StorageConfig":
        return cls(
            backend=s.STORAGE_BACKEND,
            bucket=s.STORAGE_BUCKET,
            region=s.STORAGE_REGION,
            access_key=s.STORAGE_ACCESS_KEY,
            secret_key=s.STORAGE_SECRET_KEY,
            endpoint_url=s.STORAGE_ENDPOINT_URL,
            use_ssl=s.STORAGE_USE_SSL,
            local_path=s.LOCAL_STORAGE_PATH,
            local_url_prefix=s.LOCAL_MEDIA_URL_PREFIX,
        )


class StorageBackend(ABC):
    """Abstract base class for storage backends."""

    storage_type: str = "other"

    @abstractmethod
    def upload(
        self,
        file_path: str,
        key: str,
        content_type: str = "application/octet-stream",
    ) -> StorageResult:
        """Upload a file to storage."""

    @abstractmethod
    def upload_fileobj(
        self,
        fileobj: BinaryIO,
        key: str,
        content_type: str = "application/octet-stream",
    ) -> StorageResult:
        """Upload a file object to storage."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete an object. Returns False when nothing was deleted."""

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Check if an object exists."""

    @abstractmethod
    def get_url(self, key: str, expires_in: int) -> str:
        """Time-limited read URL for a key."""

    @abstractmethod
    def list_files(self, prefix: str = "") -> list[str]:
        """List keys with given prefix."""


class LocalStorage(StorageBackend):
    """Local filesystem storage backend.

    Read URLs are static paths under ``local_url_prefix``; the API serves the
    storage directory at that prefix.
    """

    storage_type = "local"

    def __init__(self, config: StorageConfig):
        self.base_path = Path(config.local_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.url_prefix = config.local_url_prefix.rstrip("/")

    def _get_full_path(self, key: str) -> Path:
        relative = PurePosixPath(key)
        if relative.is_absolute() or ".." in relative.parts:
            raise StorageError(f"Key escapes storage root: {key}", key=key)
        return self.base_path.joinpath(*relative.parts)

    def upload(
        self,
        file_path: str,
        key: str,
        content_type: str = "application/octet-stream",
    ) -> StorageResult:
        try:
            dest_path = self._get_full_path(key)
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(file_path, dest_path)
            return StorageResult(success=True, key=key, file_size=dest_path.stat().st_size)
        except (OSError, StorageError) as e:
            return StorageResult(success=False, key=key, error_message=str(e))

    def upload_fileobj(
        self,
        fileobj: BinaryIO,
        key: str,
        content_type: str = "application/octet-stream",
    ) -> StorageResult:
        try:
            dest_path = self._get_full_path(key)
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            with open(dest_path, "wb") as f:
                shutil.copyfileobj(fileobj, f)
            return StorageResult(success=True, key=key, file_size=dest_path.stat().st_size)
        except (OSError, StorageError) as e:
            return StorageResult(success=False, key=key, error_message=str(e))

    def delete(self, key: str) -> bool:
        file_path = self._get_full_path(key)
        try:
            file_path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete {key}: {e}", key=key) from e
        return True

    def exists(self, key: str) -> bool:
        return self._get_full_path(key).is_file()

    def get_url(self, key: str, expires_in: int) -> str:
        self._get_full_path(key)
        return f"{self.url_prefix}/{key}"

    def list_files(self, prefix: str = "") -> list[str]:
        if not self.base_path.exists():
            return []
        files = []
        for path in self.base_path.rglob("*"):
            if path.is_file():
                rel_key = path.relative_to(self.base_path).as_posix()
                if rel_key.startswith(prefix):
                    files.append(rel_key)
        return sorted(files)


class S3Storage(StorageBackend):
    """S3/MinIO/R2 compatible storage backend."""

    storage_type = "s3"

    def __init__(self, config: StorageConfig, client=None):
        self.config = config
        self._client = client

    def _get_client(self):
        """Get or create S3 client."""
        if self._client is None:
            import boto3
            from botocore.config import Config as BotoConfig

            client_kwargs = {
                "service_name": "s3",
                "region_name": self.config.region or "us-east-1",
                "aws_access_key_id": self.config.access_key or None,
                "aws_secret_access_key": self.config.secret_key or None,
            }

            # MinIO, R2 and other S3-compatible endpoints
            if self.config.endpoint_url:
                client_kwargs["endpoint_url"] = self.config.endpoint_url
                client_kwargs["config"] = BotoConfig(
                    signature_version="s3v4",
                    s3={"addressing_style": "path"},
                )
                if not self.config.use_ssl:
                    client_kwargs["use_ssl"] = False

            self._client = boto3.client(**client_kwargs)

        return self._client

    def upload(
        self,
        file_path: str,
        key: str,
        content_type: str = "application/octet-stream",
    ) -> StorageResult:
        try:
            client = self._get_client()
            file_size = os.path.getsize(file_path)
            with open(file_path, "rb") as f:
                response = client.put_object(
                    Bucket=self.config.bucket,
                    Key=key,
                    Body=f,
                    ContentType=content_type,
                )
            return StorageResult(
                success=True,
                key=key,
                file_size=file_size,
                etag=response.get("ETag", "").strip('"'),
            )
        except (BotoCoreError, ClientError, OSError) as e:
            return StorageResult(success=False, key=key, error_message=str(e))

    def upload_fileobj(
        self,
        fileobj: BinaryIO,
        key: str,
        content_type: str = "application/octet-stream",
    ) -> StorageResult:
        try:
            client = self._get_client()
            fileobj.seek(0, 2)
            file_size = fileobj.tell()
            fileobj.seek(0)
            response = client.put_object(
                Bucket=self.config.bucket,
                Key=key,
                Body=fileobj,
                ContentType=content_type,
            )
            return StorageResult(
                success=True,
                key=key,
                file_size=file_size,
                etag=response.get("ETag", "").strip('"'),
            )
        except (BotoCoreError, ClientError, OSError) as e:
            return StorageResult(success=False, key=key, error_message=str(e))

    def delete(self, key: str) -> bool:
        try:
            self._get_client().delete_object(Bucket=self.config.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to delete {key}: {e}", key=key) from e
        return True

    def exists(self, key: str) -> bool:
        try:
            self._get_client().head_object(Bucket=self.config.bucket, Key=key)
            return True
        except ClientError:
            return False

    def get_url(self, key: str, expires_in: int) -> str:
        """Presigned GET URL."""
        try:
            return self._get_client().generate_presigned_url(
                "get_object",
                Params={"Bucket": self.config.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to sign URL for {key}: {e}", key=key) from e

    def list_files(self, prefix: str = "") -> list[str]:
        try:
            paginator = self._get_client().get_paginator("list_objects_v2")
            files = []
            for page in paginator.paginate(Bucket=self.config.bucket, Prefix=prefix):
                files.extend(obj["Key"] for obj in page.get("Contents", []))
            return files
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to list {prefix!r}: {e}") from e


class Storage:
    """Object publisher.

    Selects the backend from configuration and turns backend failures into
    ``StorageError`` so callers see one contract for every backend.
    """

    def __init__(
        self,
        config: Optional[StorageConfig] = None,
        backend: Optional[StorageBackend] = None,
    ):
        """Initialize storage with configuration.

        Args:
            config: Storage configuration (uses settings if not provided)
            backend: Pre-built backend, mainly for tests
        """
        self.config = config or StorageConfig.from_settings(default_settings)
        self._backend = backend or self._create_backend(self.config)

    def _create_backend(self, config: StorageConfig) -> StorageBackend:
        backend_type = config.backend.lower()

        if backend_type == "local":
            return LocalStorage(config)
        elif backend_type in ("s3", "minio", "r2", "aws"):
            return S3Storage(config)
        raise ValueError(f"Unsupported storage backend: {backend_type}")

    @property
    def storage_type(self) -> str:
        return self._backend.storage_type

    def put(
        self,
        fileobj: BinaryIO,
        key: str,
        content_type: str = "application/octet-stream",
    ) -> StorageResult:
        """Write a buffer under ``key``.

        Raises:
            StorageError: If the backend rejected the write
        """
        return self._check(self._backend.upload_fileobj(fileobj, key, content_type))

    def put_file(
        self,
        file_path: str,
        key: str,
        content_type: str = "application/octet-stream",
    ) -> StorageResult:
        """Write a local file under ``key``.

        Raises:
            StorageError: If the backend rejected the write
        """
        return self._check(self._backend.upload(file_path, key, content_type))

    def signed_get(self, key: str, ttl: int) -> str:
        """Mint a read URL for ``key`` valid for ``ttl`` seconds.

        Raises:
            StorageError: If the URL could not be produced
        """
        if ttl <= 0:
            raise StorageError(f"Signed URL TTL must be positive, got {ttl}", key=key)
        return self._backend.get_url(key, ttl)

    def delete(self, key: str) -> bool:
        return self._backend.delete(key)

    def exists(self, key: str) -> bool:
        return self._backend.exists(key)

    def list_keys(self, prefix: str = "") -> list[str]:
        return self._backend.list_files(prefix)

    def _check(self, result: StorageResult) -> StorageResult:
        if not result.success:
            logger.warning(
                "Storage write failed",
                extra={"key": result.key, "error": result.error_message},
            )
            raise StorageError(
                f"Failed to write {result.key}: {result.error_message}",
                key=result.key,
            )
        return result
