"""External service integrations."""

from .inference import InferenceClient, InferenceError, InferenceRequest
from .s3 import S3Error, S3Service, StorageSessionFactory

__all__ = [
    "InferenceClient",
    "InferenceError",
    "InferenceRequest",
    "S3Error",
    "S3Service",
    "StorageSessionFactory",
]
