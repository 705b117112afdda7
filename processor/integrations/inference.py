"""Client for the external vision-inference (damage detection) service."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
import structlog

from processor.config import settings
from processor.integrations.s3 import media_type_for

logger = structlog.get_logger()


@dataclass
class InferenceRequest:
    """Request body for one analysis call."""

    images: List[Dict[str, str]] = field(default_factory=list)
    context: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def for_report(
        cls,
        report_id: str,
        photo_keys: List[str],
        bucket: str,
        reported_peril: str = "",
        incident_date: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> "InferenceRequest":
        """Reference each photo by its storage location and media type."""
        images = [
            {"s3_uri": f"s3://{bucket}/{key.lstrip('/')}", "format": media_type_for(key)}
            for key in photo_keys
            if key
        ]
        context = {
            "image_id": report_id,
            "reported_peril": reported_peril or "",
            "weather_summary": f"Analysis for incident on {incident_date or 'unknown date'}",
            "notes": notes or "",
        }
        return cls(images=images, context=context)

    def to_payload(self) -> Dict[str, Any]:
        return {"images": self.images, "analysis_context": self.context}


class InferenceClient:
    """Calls the inference endpoint and unwraps its response envelope."""

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url or settings.INFERENCE_URL
        self.timeout = timeout if timeout is not None else settings.INFERENCE_TIMEOUT
        self.api_key = api_key if api_key is not None else settings.INFERENCE_API_KEY
        self.transport = transport

    async def analyze(self, request: InferenceRequest) -> Dict[str, Any]:
        """Run inference for a report's photos.

        Returns:
            The raw result dict (envelope removed)

        Raises:
            InferenceError: On network failure, non-2xx status, undecodable
                body, or an error embedded in a successful response
        """
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["x-api-key"] = self.api_key

        logger.info(
            "Sending inference request",
            report_id=request.context.get("image_id"),
            image_count=len(request.images),
        )

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(self.url, json=request.to_payload(), headers=headers)
                response.raise_for_status()
                body = response.json()

            except httpx.HTTPStatusError as e:
                logger.error(
                    "Inference service returned error status",
                    status_code=e.response.status_code,
                    response=e.response.text[:500],
                )
                raise InferenceError(
                    f"Inference service failed: {e.response.text}",
                    error_type="UpstreamHTTPError",
                    status_code=e.response.status_code,
                ) from e

            except httpx.HTTPError as e:
                logger.error("Inference service unreachable", error=str(e))
                raise InferenceError(
                    f"Inference service unreachable: {e}",
                    error_type=type(e).__name__,
                ) from e

            except ValueError as e:
                logger.error("Inference response is not JSON", error=str(e))
                raise InferenceError(
                    f"Inference response could not be decoded: {e}",
                    error_type="InvalidResponse",
                    status_code=response.status_code,
                ) from e

        result = body.get("result", body) if isinstance(body, dict) else body
        if not isinstance(result, dict):
            raise InferenceError(
                "Inference response has no result object",
                error_type="InvalidResponse",
                status_code=response.status_code,
            )

        if result.get("error"):
            logger.error(
                "Inference service reported internal error",
                error=result.get("error"),
                error_type=result.get("error_type"),
            )
            raise InferenceError(
                f"AI analysis internal error: {result['error']}",
                error_type=result.get("error_type") or "InferenceInternalError",
                status_code=response.status_code,
            )

        detections = result.get("detections")
        logger.info(
            "Inference result received",
            detections=len(detections) if isinstance(detections, list) else 0,
        )
        return result


class InferenceError(Exception):
    """Raised when the inference call fails; fatal for the job."""

    def __init__(self, message: str, error_type: str = "InferenceError", status_code: Optional[int] = None):
        super().__init__(message)
        self.error_type = error_type
        self.status_code = status_code
