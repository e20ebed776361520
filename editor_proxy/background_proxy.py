import logging
from typing import Optional, Tuple
from urllib.parse import quote

import requests

from .config import Settings
from .errors import (
    GENERATION_STATUS_TABLE,
    PROCESSING_FAILED,
    InvalidRequest,
    ProcessingError,
    ProxyError,
    error_envelope,
    system_error,
    upstream_error,
)

logger = logging.getLogger(__name__)

BIREFNET_MODEL = "fal-ai/birefnet"
FAILURE_MESSAGE = "Failed to remove background"


class RemovalResult:
    """Outcome of validating a fal response body.

    Either `image_url` is set (success) or `reason` explains which part of
    an otherwise successful response was missing.
    """

    def __init__(self, image_url: Optional[str] = None, reason: Optional[str] = None):
        self.image_url = image_url
        self.reason = reason

    @classmethod
    def ok(cls, image_url: str) -> "RemovalResult":
        return cls(image_url=image_url)

    @classmethod
    def invalid(cls, reason: str) -> "RemovalResult":
        return cls(reason=reason)

    @property
    def succeeded(self) -> bool:
        return self.image_url is not None


def parse_removal_response(data) -> RemovalResult:
    """Validate a birefnet response: `{"image": {"url": ...}}`.

    Responses routed through fal's queue API wrap the payload in `data`.
    """
    if isinstance(data, dict) and isinstance(data.get("data"), dict):
        data = data["data"]
    if not isinstance(data, dict):
        return RemovalResult.invalid("Provider response is not a JSON object")
    image = data.get("image")
    if not isinstance(image, dict):
        return RemovalResult.invalid("No processed image returned")
    url = image.get("url")
    if not isinstance(url, str) or not url:
        return RemovalResult.invalid("No processed image returned")
    return RemovalResult.ok(url)


class BackgroundRemovalProxy:
    def __init__(self, settings: Settings):
        self.settings = settings

    def provider_image_url(self, image_url: str) -> str:
        """Make an editor image reference fetchable by the provider.

        Gallery paths under /images/ are rewritten to an absolute URL on the
        `/api/serve-image` route under PUBLIC_BASE_URL. data: URIs, which fal
        accepts as `image_url`, and http(s) URLs are passed through.
        """
        if image_url.startswith("/images/"):
            return f"{self.settings.public_base_url}/api/serve-image?path={quote(image_url, safe='')}"
        return image_url

    def remove_background(self, payload) -> Tuple[dict, int]:
        try:
            image_url = payload.get("imageUrl") if isinstance(payload, dict) else None
            if not isinstance(image_url, str) or not image_url.strip():
                raise InvalidRequest("Image URL is required")

            source = self.provider_image_url(image_url)
            logger.info(f"Removing background: {source[:50]}...")

            resp = requests.post(
                f"{self.settings.fal_api_base}/{BIREFNET_MODEL}",
                json={"image_url": source},
                headers={
                    "Authorization": f"Key {self.settings.fal_key or ''}",
                    "Content-Type": "application/json",
                },
                timeout=self.settings.fal_timeout,
            )

            if not 200 <= resp.status_code < 300:
                try:
                    body = resp.json()
                except ValueError:
                    body = getattr(resp, "text", "")
                logger.error(f"fal background removal failed: status={resp.status_code} body={body}")
                raise upstream_error(resp.status_code, body, GENERATION_STATUS_TABLE, (PROCESSING_FAILED, FAILURE_MESSAGE))

            result = parse_removal_response(resp.json())
            if not result.succeeded:
                raise ProcessingError(FAILURE_MESSAGE, details=result.reason)

            return {"imageUrl": result.image_url}, 200
        except InvalidRequest as exc:
            return error_envelope(exc)
        except ProxyError as exc:
            logger.error(f"Background removal failed: {exc.code} {exc.details}")
            return error_envelope(exc, error=FAILURE_MESSAGE)
        except Exception as exc:
            logger.exception("Background removal failed")
            return error_envelope(system_error(exc, FAILURE_MESSAGE))
