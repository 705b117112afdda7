"""S3 integration for report photo storage."""

import asyncio
from typing import Optional, Tuple

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from processor.config import settings

logger = structlog.get_logger()

MEDIA_TYPES = {
    "png": "image/png",
    "webp": "image/webp",
    "gif": "image/gif",
}

DEFAULT_MEDIA_TYPE = "image/jpeg"


def media_type_for(path: str) -> str:
    """Get image media type from a storage key, defaulting to JPEG."""
    ext = path.rsplit(".", 1)[-1].lower() if "." in path else ""
    return MEDIA_TYPES.get(ext, DEFAULT_MEDIA_TYPE)


def parse_s3_uri(uri: str) -> Tuple[str, str]:
    """Split s3://bucket/key into (bucket, key).

    Raises:
        ValueError: If the URI has no scheme, bucket or key
    """
    if not uri.startswith("s3://"):
        raise ValueError(f"Not an S3 URI: {uri}")

    bucket, _, key = uri[len("s3://"):].partition("/")
    if not bucket or not key:
        raise ValueError(f"S3 URI must include bucket and key: {uri}")
    return bucket, key


class S3Service:
    """Service for S3 object operations against the report bucket."""

    def __init__(self, client=None, bucket: Optional[str] = None):
        """Initialize with an S3 client.

        Args:
            client: boto3 S3 client; defaults to one built from settings
            bucket: Destination bucket; defaults to S3_BUCKET
        """
        self.client = client or StorageSessionFactory().default_client()
        self.bucket = bucket or settings.S3_BUCKET

    async def fetch(self, bucket: str, key: str) -> Tuple[bytes, str]:
        """Download an object from any bucket.

        Returns:
            (content, content_type)
        """
        def _get():
            response = self.client.get_object(Bucket=bucket, Key=key)
            return response["Body"].read(), response.get("ContentType") or DEFAULT_MEDIA_TYPE

        try:
            content, content_type = await asyncio.to_thread(_get)
        except (ClientError, BotoCoreError) as e:
            logger.error("S3 download failed", bucket=bucket, key=key, error=str(e))
            raise S3Error.from_boto(f"Download failed for s3://{bucket}/{key}", e) from e

        logger.info("File downloaded from S3", bucket=bucket, key=key, size=len(content))
        return content, content_type

    async def upload(
        self,
        content: bytes,
        key: str,
        content_type: str = DEFAULT_MEDIA_TYPE,
    ) -> str:
        """Upload content to the report bucket.

        Returns:
            The key written
        """
        def _put():
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=content,
                ContentType=content_type,
            )

        try:
            await asyncio.to_thread(_put)
        except (ClientError, BotoCoreError) as e:
            logger.error("S3 upload failed", bucket=self.bucket, key=key, error=str(e))
            raise S3Error.from_boto(f"Upload failed for s3://{self.bucket}/{key}", e) from e

        logger.info("File uploaded to S3", bucket=self.bucket, key=key, size=len(content))
        return key


class StorageSessionFactory:
    """Builds S3 clients with credentials scoped to a single job.

    When S3_ROLE_ARN is configured, each job assumes the role and copies with
    the temporary session credentials; the long-running process environment
    is never the source of copy credentials in that mode.
    """

    def __init__(self, role_arn: Optional[str] = None, region: Optional[str] = None):
        self.role_arn = role_arn if role_arn is not None else settings.S3_ROLE_ARN
        self.region = region or settings.S3_REGION

    def default_client(self):
        """Client from explicit S3 credentials, else the default chain."""
        client_kwargs = {"region_name": self.region}
        if settings.S3_ACCESS_KEY_ID and settings.S3_SECRET_ACCESS_KEY:
            client_kwargs["aws_access_key_id"] = settings.S3_ACCESS_KEY_ID
            client_kwargs["aws_secret_access_key"] = settings.S3_SECRET_ACCESS_KEY
        return boto3.session.Session().client("s3", **client_kwargs)

    def for_job(self, job_id: str) -> S3Service:
        """Get an S3Service whose client uses credentials issued for this job."""
        if not self.role_arn:
            return S3Service(client=self.default_client())

        sts = boto3.session.Session().client("sts", region_name=self.region)
        try:
            response = sts.assume_role(
                RoleArn=self.role_arn,
                RoleSessionName=f"analysis-{job_id}"[:64],
                DurationSeconds=settings.S3_ROLE_SESSION_SECONDS,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("Assume role for copy failed", role_arn=self.role_arn, error=str(e))
            raise S3Error.from_boto("Could not obtain job storage credentials", e) from e

        credentials = response["Credentials"]
        session = boto3.session.Session(
            aws_access_key_id=credentials["AccessKeyId"],
            aws_secret_access_key=credentials["SecretAccessKey"],
            aws_session_token=credentials["SessionToken"],
            region_name=self.region,
        )
        logger.info("Job storage credentials issued", job_id=job_id, expires=str(credentials.get("Expiration")))
        return S3Service(client=session.client("s3"))


class S3Error(Exception):
    """Raised when S3 operations fail."""

    def __init__(self, message: str, error_name: str = "S3Error", code: Optional[str] = None):
        super().__init__(message)
        self.error_name = error_name
        self.code = code

    @classmethod
    def from_boto(cls, message: str, error: Exception) -> "S3Error":
        code = None
        if isinstance(error, ClientError):
            code = error.response.get("Error", {}).get("Code")
        return cls(f"{message}: {error}", error_name=type(error).__name__, code=code)
