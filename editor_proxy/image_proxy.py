"""Text-to-image proxy on fal's FLUX Pro models.

A request with a `finetune_id` other than "none" goes to the finetuned
ultra model; everything else goes to FLUX Pro 1.1 with the aspect ratio
translated into one of fal's named image sizes.
"""
import logging
from typing import Optional, Tuple

import requests

from .config import Settings
from .errors import (
    GENERATION_STATUS_TABLE,
    GENERATION_FAILED,
    InvalidRequest,
    ProcessingError,
    ProxyError,
    error_envelope,
    system_error,
    upstream_error,
)

logger = logging.getLogger(__name__)

FLUX_PRO_MODEL = "fal-ai/flux-pro/v1.1"
FLUX_FINETUNED_MODEL = "fal-ai/flux-pro/v1.1-ultra-finetuned"
FAILURE_MESSAGE = "Failed to generate image"

DEFAULT_IMAGE_SIZE = "landscape_4_3"
IMAGE_SIZES = {
    "21:9": "landscape_16_9",
    "16:9": "landscape_16_9",
    "4:3": "landscape_4_3",
    "3:2": "landscape_4_3",
    "1:1": "square",
    "2:3": "portrait_4_3",
    "3:4": "portrait_4_3",
    "9:16": "portrait_16_9",
    "9:21": "portrait_16_9",
}


def image_size_for(aspect_ratio: str) -> str:
    return IMAGE_SIZES.get(aspect_ratio, DEFAULT_IMAGE_SIZE)


class ImageRequest:
    """A validated text-to-image request with defaults applied."""

    def __init__(self, prompt: str, seed: Optional[int] = None, num_images: int = 1, enable_safety_checker: bool = True,
                 safety_tolerance: str = "2", output_format: str = "jpeg", aspect_ratio: str = "16:9", raw: bool = False,
                 finetune_id: str = "none", finetune_strength: float = 0.8):
        self.prompt = prompt
        self.seed = seed
        self.num_images = num_images
        self.enable_safety_checker = enable_safety_checker
        self.safety_tolerance = safety_tolerance
        self.output_format = output_format
        self.aspect_ratio = aspect_ratio
        self.raw = raw
        self.finetune_id = finetune_id
        self.finetune_strength = finetune_strength

    @classmethod
    def from_payload(cls, payload) -> "ImageRequest":
        if not isinstance(payload, dict):
            raise InvalidRequest("Request body must be a JSON object")
        prompt = payload.get("prompt")
        if not isinstance(prompt, str) or not prompt.strip():
            raise InvalidRequest("Prompt is required")

        def pick(key, default):
            value = payload.get(key)
            return default if value is None else value

        return cls(
            prompt=prompt,
            seed=payload.get("seed"),
            num_images=pick("num_images", 1),
            enable_safety_checker=pick("enable_safety_checker", True),
            safety_tolerance=pick("safety_tolerance", "2"),
            output_format=pick("output_format", "jpeg"),
            aspect_ratio=pick("aspect_ratio", "16:9"),
            raw=pick("raw", False),
            finetune_id=pick("finetune_id", "none"),
            finetune_strength=pick("finetune_strength", 0.8),
        )

    @property
    def finetuned(self) -> bool:
        return bool(self.finetune_id) and self.finetune_id != "none"

    @property
    def model(self) -> str:
        return FLUX_FINETUNED_MODEL if self.finetuned else FLUX_PRO_MODEL

    def provider_body(self) -> dict:
        if self.finetuned:
            body = {
                "prompt": self.prompt,
                "finetune_id": self.finetune_id,
                "finetune_strength": self.finetune_strength,
                "num_images": self.num_images,
                "enable_safety_checker": self.enable_safety_checker,
                "safety_tolerance": self.safety_tolerance,
                "output_format": self.output_format,
                "aspect_ratio": self.aspect_ratio,
                "raw": self.raw,
            }
        else:
            body = {
                "prompt": self.prompt,
                "image_size": image_size_for(self.aspect_ratio),
                "num_images": self.num_images,
                "enable_safety_checker": self.enable_safety_checker,
                "safety_tolerance": self.safety_tolerance,
                "output_format": self.output_format,
            }
        if self.seed is not None:
            body["seed"] = self.seed
        return body


class ImageGenerationProxy:
    def __init__(self, settings: Settings):
        self.settings = settings

    def generate(self, payload) -> Tuple[dict, int]:
        try:
            req = ImageRequest.from_payload(payload)
            logger.info(f"Generating image: model={req.model} aspect_ratio={req.aspect_ratio} prompt={req.prompt[:100]!r}")

            resp = requests.post(
                f"{self.settings.fal_api_base}/{req.model}",
                json=req.provider_body(),
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
                logger.error(f"fal image generation failed: status={resp.status_code} body={body}")
                raise upstream_error(resp.status_code, body, GENERATION_STATUS_TABLE, (GENERATION_FAILED, FAILURE_MESSAGE))

            data = resp.json()
            if not isinstance(data, dict) or not isinstance(data.get("images"), list):
                raise ProcessingError(FAILURE_MESSAGE, details="No images returned")

            headers = getattr(resp, "headers", None) or {}
            return {
                "success": True,
                "data": data,
                "requestId": headers.get("x-fal-request-id"),
                "modelUsed": req.model,
                "finetuneId": req.finetune_id if req.finetuned else None,
            }, 200
        except InvalidRequest as exc:
            return error_envelope(exc)
        except ProxyError as exc:
            logger.error(f"Image generation failed: {exc.code} {exc.details}")
            return error_envelope(exc, error=FAILURE_MESSAGE)
        except Exception as exc:
            logger.exception("Image generation failed")
            return error_envelope(system_error(exc, FAILURE_MESSAGE))
