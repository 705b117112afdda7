"""Copies analyzed images from the inference service's bucket into report storage."""

import asyncio
import secrets
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import structlog

from processor.analysis_result import CopyWarning
from processor.integrations.s3 import S3Error, S3Service, parse_s3_uri

logger = structlog.get_logger()

# Failures that mean the copy ran without usable storage credentials
CREDENTIAL_ERROR_NAMES = frozenset({
    "NoCredentialsError",
    "PartialCredentialsError",
    "CredentialRetrievalError",
    "CredentialsProviderError",
})
PERMISSION_ERROR_CODES = frozenset({
    "AccessDenied",
    "403",
    "InvalidAccessKeyId",
    "ExpiredToken",
    "InvalidToken",
    "SignatureDoesNotMatch",
})

PERMISSION_HINT = (
    " (The copy has no permission to read the source or write the destination bucket."
    " This usually happens when running outside the hosted environment without"
    " storage credentials for the job.)"
)


@dataclass
class CopyFailure:
    uri: str
    error_name: str
    error_message: str

    def to_warning(self) -> CopyWarning:
        return CopyWarning(
            source_uri=self.uri,
            error_name=self.error_name,
            error_message=self.error_message,
        )


@dataclass
class CopyReport:
    """Outcome of a copy run: every source URI is in exactly one of the two."""

    successes: Dict[str, str] = field(default_factory=dict)
    failures: List[CopyFailure] = field(default_factory=list)

    @property
    def warnings(self) -> List[CopyWarning]:
        return [f.to_warning() for f in self.failures]

    @classmethod
    def all_failed(cls, source_uris: Iterable[str], error: S3Error) -> "CopyReport":
        """Report for a run that could not start, e.g. no job credentials."""
        message = str(error)
        if is_permission_error(error.error_name, error.code):
            message += PERMISSION_HINT
        return cls(failures=[
            CopyFailure(uri=uri, error_name=error.error_name, error_message=message)
            for uri in dict.fromkeys(source_uris)
        ])


def is_permission_error(error_name: str, code: Optional[str] = None) -> bool:
    return error_name in CREDENTIAL_ERROR_NAMES or (code in PERMISSION_ERROR_CODES)


def destination_key(prefix: str) -> str:
    """Collision-resistant key for one copied image under prefix."""
    suffix = secrets.token_hex(4)
    return f"{prefix.rstrip('/')}/analyzed-{int(time.time() * 1000)}-{suffix}.jpeg"


class ImageCopier:
    """Fetches external images and re-uploads them into report storage.

    Each URI is copied independently with bounded parallelism; one failure
    never aborts the others.
    """

    def __init__(self, storage: S3Service, max_concurrency: int = 4):
        self.storage = storage
        self.max_concurrency = max(1, max_concurrency)

    async def copy(self, source_uris: Iterable[str], destination_prefix: str) -> CopyReport:
        """Copy every unique URI under destination_prefix.

        Returns:
            CopyReport mapping copied URIs to local keys, plus per-URI failures
        """
        unique_uris = list(dict.fromkeys(uri for uri in source_uris if uri))
        report = CopyReport()
        if not unique_uris:
            return report

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _bounded(uri: str):
            async with semaphore:
                return await self._copy_one(uri, destination_prefix)

        logger.info("Copying analyzed images", count=len(unique_uris), prefix=destination_prefix)
        outcomes = await asyncio.gather(*(_bounded(uri) for uri in unique_uris))

        for uri, outcome in zip(unique_uris, outcomes):
            if isinstance(outcome, CopyFailure):
                report.failures.append(outcome)
            else:
                report.successes[uri] = outcome

        logger.info(
            "Image copy finished",
            copied=len(report.successes),
            failed=len(report.failures),
        )
        return report

    async def _copy_one(self, uri: str, destination_prefix: str):
        """Copy one image; returns the local key or a CopyFailure."""
        try:
            bucket, key = parse_s3_uri(uri)
            content, content_type = await self.storage.fetch(bucket, key)
            local_key = destination_key(destination_prefix)
            await self.storage.upload(content, local_key, content_type=content_type)
        except ValueError as e:
            logger.warning("Skipping malformed image URI", uri=uri, error=str(e))
            return CopyFailure(uri=uri, error_name="InvalidSourceUri", error_message=str(e))
        except S3Error as e:
            message = str(e)
            if is_permission_error(e.error_name, e.code):
                message += PERMISSION_HINT
            logger.warning("Failed to copy analyzed image", uri=uri, error_name=e.error_name, error=str(e))
            return CopyFailure(uri=uri, error_name=e.error_name, error_message=message)
        except Exception as e:
            logger.error("Unexpected image copy failure", uri=uri, error=str(e), exc_info=True)
            return CopyFailure(uri=uri, error_name=type(e).__name__, error_message=str(e))

        logger.info("Analyzed image copied", uri=uri, key=local_key)
        return local_key
