"""S3 object storage for rendered video artifacts."""

import asyncio

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)


class S3ArtifactStore:
    """
    Resolves and checks rendered artifacts in S3 (or S3-compatible) storage.

    Unconfigured (no bucket) stores still build public URLs for backend-owned
    buckets but skip existence checks.
    """

    def __init__(
        self,
        bucket_name: str | None = None,
        region: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        endpoint_url: str | None = None,
        public_base_url: str | None = None,
        client=None,
    ):
        settings = get_settings()
        self.bucket_name = bucket_name or settings.s3_bucket_name
        self.endpoint_url = endpoint_url or settings.s3_endpoint_url or None
        # R2 and other S3-compatible services use 'auto' region
        self.region = region or ("auto" if self.endpoint_url else settings.s3_region)
        self.public_base_url = (public_base_url or settings.s3_public_url).rstrip("/")

        if client is None:
            client_kwargs = {"service_name": "s3", "region_name": self.region}
            key_id = access_key_id or settings.s3_access_key_id
            secret = secret_access_key or settings.s3_secret_access_key
            if key_id and secret:
                client_kwargs["aws_access_key_id"] = key_id
                client_kwargs["aws_secret_access_key"] = secret
            if self.endpoint_url:
                client_kwargs["endpoint_url"] = self.endpoint_url
            client = boto3.client(**client_kwargs)

        self._client = client
        self._configured = bool(self.bucket_name)

    def is_configured(self) -> bool:
        """Check if S3 is properly configured."""
        return self._configured

    def public_url(self, key: str, location_ref: str | None = None) -> str:
        """
        Public URL for an object key.

        ``location_ref`` is the bucket the render backend wrote to; when it is not
        our own bucket the standard virtual-hosted S3 URL is used.
        """
        key = key.lstrip("/")
        if location_ref and location_ref != self.bucket_name:
            return f"https://{location_ref}.s3.{self.region}.amazonaws.com/{key}"
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        if self.endpoint_url:
            return f"{self.endpoint_url}/{self.bucket_name}/{key}"
        return f"https://{self.bucket_name}.s3.{self.region}.amazonaws.com/{key}"

    def key_for_url(self, url: str) -> str | None:
        """Object key for a URL in our bucket, or None for foreign URLs."""
        if not self._configured:
            return None
        prefix = self.public_url("")
        if url.startswith(prefix):
            return url[len(prefix) :] or None
        return None

    async def exists(self, url: str) -> bool:
        """
        Whether the artifact behind ``url`` is still present.

        URLs outside our bucket cannot be checked and are assumed present.
        """
        key = self.key_for_url(url)
        if key is None:
            return True
        try:
            await asyncio.to_thread(self._client.head_object, Bucket=self.bucket_name, Key=key)
            return True
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in ("404", "NoSuchKey", "NotFound"):
                logger.bind(key=key).info("artifact_missing")
                return False
            logger.bind(key=key, error=str(e)).warning("artifact_check_failed")
            return True
        except BotoCoreError as e:
            logger.bind(key=key, error=str(e)).warning("artifact_check_failed")
            return True
