"""Attachment storage on S3-compatible object storage (MinIO SDK).

Attachments live in a single bucket under ``attachments/<uuid>-<name>``.
Clients normally upload with a presigned POST policy; the extraction pipeline
reads them back through short-lived presigned GET URLs. Every operation
reports failure through its result object. Nothing is retried.

MinIO Python SDK reference:
https://min.io/docs/minio/linux/developers/python/API.html
"""

import io
import logging
from datetime import datetime, timedelta, timezone

from minio import Minio
from minio.datatypes import PostPolicy
from minio.error import S3Error
from pydantic import BaseModel

from invoiceflow.shared.config import Settings

logger = logging.getLogger(__name__)


class StorageResult(BaseModel):
    """Outcome of a server-side attachment upload.

    Attributes:
        success: Whether the object was written
        object_name: Object key
        bucket: Attachment bucket
        error: Failure description
        etag: ETag reported by the backend
        size: Bytes written
    """

    success: bool
    object_name: str | None = None
    bucket: str | None = None
    error: str | None = None
    etag: str | None = None
    size: int | None = None


class PresignedUrlResult(BaseModel):
    """Outcome of signing an attachment URL.

    Upload results also carry the form fields to POST alongside the file.
    """

    success: bool
    url: str | None = None
    fields: dict[str, str] | None = None
    expires_in_seconds: int | None = None
    error: str | None = None


def _describe(error: Exception) -> str:
    if isinstance(error, S3Error):
        return f"S3 error: {error.code} - {error.message}"
    return str(error)


class StorageService:
    """Attachment bucket access for uploads and presigned URLs."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._client: Minio | None = None
        self._bucket_ready = False

    @property
    def bucket(self) -> str:
        return self.settings.storage_bucket

    def _get_client(self) -> Minio:
        """Return the MinIO client, creating it on first use.

        Raises:
            ValueError: If an access or secret key is missing
        """
        if self._client is not None:
            return self._client

        required = {
            "APP_STORAGE_ACCESS_KEY": self.settings.storage_access_key,
            "APP_STORAGE_SECRET_KEY": self.settings.storage_secret_key,
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise ValueError(
                f"Storage credentials not configured. Set {', '.join(missing)} "
                "(storage access key and secret key are both required)."
            )

        self._client = Minio(
            endpoint=self.settings.storage_endpoint,
            access_key=self.settings.storage_access_key,
            secret_key=self.settings.storage_secret_key,
            secure=self.settings.storage_secure,
            region=self.settings.storage_region,
        )
        logger.info(
            f"Attachment storage client ready: endpoint={self.settings.storage_endpoint}, "
            f"bucket={self.bucket}"
        )
        return self._client

    def is_available(self) -> bool:
        """Storage is usable when enabled and both credentials are present."""
        return bool(
            self.settings.storage_enabled
            and self.settings.storage_access_key
            and self.settings.storage_secret_key
        )

    def health_check(self) -> bool:
        """Return True if the attachment bucket can be queried."""
        if not self.is_available():
            return False

        try:
            self._get_client().bucket_exists(self.bucket)
        except Exception as e:
            logger.warning(f"Storage health check failed: {e}")
            return False
        return True

    def _prepare_bucket(self, client: Minio) -> None:
        if self._bucket_ready:
            return
        if not client.bucket_exists(self.bucket):
            client.make_bucket(self.bucket)
            logger.info(f"Created attachment bucket: {self.bucket}")
        self._bucket_ready = True

    def upload_bytes(self, data: bytes, object_name: str, content_type: str) -> StorageResult:
        """Write an attachment received through the API.

        Args:
            data: Attachment bytes
            object_name: Object key (see ``build_object_key``)
            content_type: MIME type stored as object metadata

        Returns:
            StorageResult describing the written object or the failure
        """
        try:
            client = self._get_client()
            self._prepare_bucket(client)
            written = client.put_object(
                bucket_name=self.bucket,
                object_name=object_name,
                data=io.BytesIO(data),
                length=len(data),
                content_type=content_type,
            )
        except Exception as e:
            logger.error(f"Attachment upload failed for {object_name}: {e}")
            return StorageResult(
                success=False, object_name=object_name, bucket=self.bucket, error=_describe(e)
            )

        logger.info(f"Stored attachment {object_name} ({len(data)} bytes, {content_type})")
        return StorageResult(
            success=True,
            object_name=object_name,
            bucket=self.bucket,
            etag=written.etag,
            size=len(data),
        )

    @property
    def bucket_url(self) -> str:
        """Form action for browser-style POST uploads."""
        scheme = "https" if self.settings.storage_secure else "http"
        return f"{scheme}://{self.settings.storage_endpoint}/{self.bucket}"

    def get_presigned_upload_url(
        self,
        object_name: str,
        content_type: str,
        max_size: int,
        expires_seconds: int | None = None,
    ) -> PresignedUrlResult:
        """Sign a POST policy the client uses to upload an attachment directly.

        The policy pins the object key and ``Content-Type`` and limits the
        body to 1..``max_size`` bytes, so storage rejects any other upload.
        Defaults to ``presign_upload_ttl_seconds``. Creates the bucket first
        if it is missing.

        Returns:
            PresignedUrlResult with the form action URL and the form fields
        """
        expires_seconds = expires_seconds or self.settings.presign_upload_ttl_seconds
        policy = PostPolicy(
            self.bucket, datetime.now(timezone.utc) + timedelta(seconds=expires_seconds)
        )
        policy.add_equals_condition("key", object_name)
        policy.add_equals_condition("Content-Type", content_type)
        policy.add_content_length_range_condition(1, max_size)

        try:
            client = self._get_client()
            self._prepare_bucket(client)
            form_data = client.presigned_post_policy(policy)
        except Exception as e:
            logger.error(f"Could not sign upload policy for {object_name}: {e}")
            return PresignedUrlResult(success=False, error=_describe(e))

        fields = {"key": object_name, "Content-Type": content_type, **form_data}
        return PresignedUrlResult(
            success=True, url=self.bucket_url, fields=fields, expires_in_seconds=expires_seconds
        )

    def get_presigned_url(
        self, object_name: str, expires_seconds: int | None = None
    ) -> PresignedUrlResult:
        """Sign a GET URL for reading an attachment.

        Defaults to ``presign_download_ttl_seconds``.
        """
        expires_seconds = expires_seconds or self.settings.presign_download_ttl_seconds
        try:
            url = self._get_client().get_presigned_url(
                method="GET",
                bucket_name=self.bucket,
                object_name=object_name,
                expires=timedelta(seconds=expires_seconds),
            )
        except Exception as e:
            logger.error(f"Could not sign GET URL for {object_name}: {e}")
            return PresignedUrlResult(success=False, error=_describe(e))

        return PresignedUrlResult(success=True, url=url, expires_in_seconds=expires_seconds)
