"""Kling image-to-video proxy.

`VideoProxy.generate` validates a generation request, attaches a bearer JWT
from the token manager and forwards a single request to Kling.
`VideoProxy.check_status` polls a previously created task. Both return
`(body, http_status)` and never raise: every failure becomes an error
envelope (see `errors.py`).
"""
import time
import random
import logging
from typing import Callable, Optional, Tuple
from urllib.parse import quote

import requests

from .config import Settings
from .errors import (
    GENERATION_STATUS_TABLE,
    GENERATION_FAILED,
    STATUS_CHECK_TABLE,
    STATUS_CHECK_FAILED,
    ConfigurationError,
    InvalidRequest,
    ProcessingError,
    ProxyError,
    error_envelope,
    system_error,
    upstream_error,
    utc_timestamp,
)
from .kling_auth import KlingTokenManager

logger = logging.getLogger(__name__)

API_VERSION = "new-system"
GENERATIONS_PATH = "/v1/video/generations"
CFG_SCALE = 7.5
SEED_MAX = 999999

DEFAULT_DURATION = 5
DEFAULT_ASPECT_RATIO = "16:9"
DEFAULT_MOTION = "medium"
DEFAULT_CREATIVITY = 0.5
DEFAULT_MODEL = "kling-v1"

# provider task state -> state the UI understands
STATUS_MAP = {
    "pending": "processing",
    "submitted": "processing",
    "processing": "processing",
    "running": "processing",
    "succeeded": "completed",
    "succeed": "completed",
    "failed": "failed",
    "cancelled": "failed",
}


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _required_text(payload: dict, key: str) -> Optional[str]:
    value = payload.get(key)
    if isinstance(value, str) and value.strip():
        return value
    return None


def _summary(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


class GenerationRequest:
    """A validated image-to-video request with defaults applied."""

    def __init__(self, image_url: str, prompt: str, duration=DEFAULT_DURATION, aspect_ratio: str = DEFAULT_ASPECT_RATIO,
                 motion: str = DEFAULT_MOTION, creativity_level=DEFAULT_CREATIVITY, model: str = DEFAULT_MODEL):
        self.image_url = image_url
        self.prompt = prompt
        self.duration = duration
        self.aspect_ratio = aspect_ratio
        self.motion = motion
        self.creativity_level = creativity_level
        self.model = model

    @classmethod
    def from_payload(cls, payload) -> "GenerationRequest":
        if not isinstance(payload, dict):
            raise InvalidRequest("Request body must be a JSON object")

        image_url = _required_text(payload, "imageUrl")
        prompt = _required_text(payload, "prompt")
        if not image_url or not prompt:
            raise InvalidRequest("Image URL and prompt are required")

        duration = payload.get("duration")
        if duration is None:
            duration = DEFAULT_DURATION
        elif not _is_number(duration) or duration <= 0:
            raise InvalidRequest("Duration must be a positive number", details=f"got {duration!r}")

        creativity = payload.get("creativityLevel")
        if creativity is None:
            creativity = DEFAULT_CREATIVITY
        elif not _is_number(creativity):
            raise InvalidRequest("Creativity level must be a number", details=f"got {creativity!r}")

        return cls(
            image_url=image_url,
            prompt=prompt,
            duration=duration,
            aspect_ratio=payload.get("aspectRatio") or DEFAULT_ASPECT_RATIO,
            motion=payload.get("motion") or DEFAULT_MOTION,
            creativity_level=creativity,
            model=payload.get("model") or DEFAULT_MODEL,
        )

    def provider_body(self, seed: int) -> dict:
        return {
            "model": self.model,
            "mode": "image_to_video",
            "image": self.image_url,
            "prompt": self.prompt,
            "duration": self.duration,
            "aspect_ratio": self.aspect_ratio,
            "motion_strength": self.motion,
            "creativity": self.creativity_level,
            "cfg_scale": CFG_SCALE,
            "seed": seed,
        }

    def parameters(self) -> dict:
        return {
            "prompt": self.prompt,
            "duration": self.duration,
            "aspectRatio": self.aspect_ratio,
            "motion": self.motion,
            "creativityLevel": self.creativity_level,
        }


def _task_fields(result: dict) -> Tuple[Optional[str], Optional[str]]:
    """Read task id and state from either a flat body or Kling's `data` wrapper."""
    data = result.get("data") if isinstance(result.get("data"), dict) else {}
    task_id = result.get("id") or result.get("task_id") or data.get("task_id")
    status = result.get("status") or data.get("task_status")
    return task_id, status


def _error_body(resp):
    try:
        return resp.json()
    except ValueError:
        return getattr(resp, "text", "")


class VideoProxy:
    def __init__(self, settings: Settings, token_manager: KlingTokenManager,
                 rng: Optional[random.Random] = None, clock: Callable[[], float] = time.time):
        self.settings = settings
        self.token_manager = token_manager
        self.rng = rng or random.Random()
        self.clock = clock

    def _headers(self) -> dict:
        if not self.settings.kling_configured:
            raise ConfigurationError(
                "Kling API credentials not configured",
                details="KLING_ACCESS_KEY and KLING_SECRET_KEY must both be set",
            )
        token = self.token_manager.get_valid_token()
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "User-Agent": "editor-proxy/1.0.0",
        }

    def _elapsed_ms(self, started: float) -> int:
        return int(round((self.clock() - started) * 1000))

    def generate(self, payload) -> Tuple[dict, int]:
        try:
            req = GenerationRequest.from_payload(payload)
            headers = self._headers()
            seed = self.rng.randint(0, SEED_MAX)

            logger.info(
                f"Generating video: image={_summary(req.image_url, 50)} prompt={_summary(req.prompt, 100)!r} "
                f"duration={req.duration} aspect_ratio={req.aspect_ratio} motion={req.motion} model={req.model}"
            )

            started = self.clock()
            resp = requests.post(
                self.settings.kling_api_base + GENERATIONS_PATH,
                json=req.provider_body(seed),
                headers=headers,
                timeout=self.settings.kling_timeout,
            )
            request_duration = self._elapsed_ms(started)

            if not 200 <= resp.status_code < 300:
                body = _error_body(resp)
                logger.error(f"Kling generation failed: status={resp.status_code} body={body}")
                raise upstream_error(resp.status_code, body, GENERATION_STATUS_TABLE, (GENERATION_FAILED, "Video generation failed"))

            result = resp.json()
            if not isinstance(result, dict):
                raise ProcessingError("Unexpected response from video provider", details=f"got {type(result).__name__}")
            task_id, status = _task_fields(result)
            if not task_id:
                raise ProcessingError("Video provider did not return a task id", details=str(result)[:300])

            logger.info(f"Kling task created: task_id={task_id} status={status or 'processing'} in {request_duration}ms")
            return {
                "success": True,
                "taskId": task_id,
                "status": status or "processing",
                "estimatedTime": result.get("estimated_time") or req.duration * 10,
                "model": req.model,
                "parameters": req.parameters(),
                "usage": {
                    "requestDuration": request_duration,
                    "estimatedCost": self.settings.cost_table.estimate(req.duration),
                    "timestamp": utc_timestamp(),
                    "apiVersion": API_VERSION,
                },
                "system": {
                    "endpoint": self.settings.kling_endpoint,
                    "realTimeUpdates": True,
                    "instantDataDisplay": True,
                },
            }, 200
        except ProxyError as exc:
            if exc.http_status >= 500:
                logger.error(f"Video generation error: {exc.code} {exc.message} ({exc.details})")
            return error_envelope(exc)
        except Exception as exc:
            logger.exception("Video generation error")
            return error_envelope(system_error(exc, "Failed to generate video"))

    def check_status(self, task_id: Optional[str]) -> Tuple[dict, int]:
        try:
            if not isinstance(task_id, str) or not task_id.strip():
                raise InvalidRequest("Task ID is required")
            headers = self._headers()

            started = self.clock()
            resp = requests.get(
                f"{self.settings.kling_api_base}{GENERATIONS_PATH}/{quote(task_id, safe='')}",
                headers=headers,
                timeout=self.settings.kling_timeout,
            )
            request_duration = self._elapsed_ms(started)

            if not 200 <= resp.status_code < 300:
                body = _error_body(resp)
                logger.error(f"Kling status check failed: task_id={task_id} status={resp.status_code} body={body}")
                raise upstream_error(resp.status_code, body, STATUS_CHECK_TABLE, (STATUS_CHECK_FAILED, "Failed to check video status"))

            result = resp.json()
            if not isinstance(result, dict):
                raise ProcessingError("Unexpected response from video provider", details=f"got {type(result).__name__}")
            return self._status_body(task_id, result, request_duration), 200
        except ProxyError as exc:
            return error_envelope(exc, taskId=task_id)
        except Exception as exc:
            logger.exception("Video status check error")
            return error_envelope(system_error(exc, "Failed to check video status"), taskId=task_id)

    def _status_body(self, task_id: str, result: dict, request_duration: int) -> dict:
        data = result.get("data") if isinstance(result.get("data"), dict) else result
        original_status = data.get("status") or data.get("task_status")
        mapped = STATUS_MAP.get(str(original_status).lower(), "processing")
        output = data.get("output") if isinstance(data.get("output"), dict) else {}
        now = utc_timestamp()

        progress = data.get("progress")
        if progress is None and mapped == "completed":
            progress = 100

        logger.info(f"Kling task {task_id}: {original_status} -> {mapped} progress={progress}")

        body = {
            "taskId": task_id,
            "status": mapped,
            "progress": progress,
            "estimatedTimeRemaining": data.get("estimated_time_remaining"),
            "videoUrl": output.get("video_url"),
            "thumbnailUrl": output.get("thumbnail_url"),
            "duration": output.get("duration"),
            "error": data.get("error_message"),
            "usage": {
                "requestDuration": request_duration,
                "statusCheckCount": 1,
                "timestamp": now,
                "apiVersion": API_VERSION,
            },
            "metadata": {
                "originalStatus": original_status,
                "endpoint": self.settings.kling_endpoint,
                "realTimeUpdates": True,
                "instantDataDisplay": True,
                "lastChecked": now,
            },
        }
        if mapped == "completed" and output:
            body["metadata"].update({
                "completedAt": now,
                "processingTime": data.get("processing_time"),
                "fileSize": output.get("file_size"),
                "resolution": output.get("resolution"),
            })
        return body
