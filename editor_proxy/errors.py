"""Error taxonomy and JSON error envelopes shared by the proxies.

Every failure path ends in `error_envelope(...)`, a dict with the keys the
editor UI branches on: `error`, `errorCode`, `details`, `status`, `timestamp`.
Upstream HTTP failures are classified by walking an ordered status table,
so both proxies map provider status codes the same way.
"""
import datetime
from typing import List, Optional, Tuple


INVALID_REQUEST = "INVALID_REQUEST"
CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
CREDENTIAL_ERROR = "CREDENTIAL_ERROR"
INVALID_PARAMETERS = "INVALID_PARAMETERS"
AUTH_FAILED = "AUTH_FAILED"
TOKEN_INVALID = "TOKEN_INVALID"
RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
SERVICE_ERROR = "SERVICE_ERROR"
GENERATION_FAILED = "GENERATION_FAILED"
PROCESSING_ERROR = "PROCESSING_ERROR"
PROCESSING_FAILED = "PROCESSING_FAILED"
SYSTEM_ERROR = "SYSTEM_ERROR"
INVALID_TASK_ID = "INVALID_TASK_ID"
TASK_NOT_FOUND = "TASK_NOT_FOUND"
STATUS_CHECK_FAILED = "STATUS_CHECK_FAILED"

# (upstream status, error code, message); first match wins
GENERATION_STATUS_TABLE: List[Tuple[int, str, str]] = [
    (400, INVALID_PARAMETERS, "Invalid request parameters"),
    (401, AUTH_FAILED, "Invalid API key or authentication failed"),
    (403, TOKEN_INVALID, "Access token rejected by provider"),
    (429, RATE_LIMIT_EXCEEDED, "Rate limit exceeded. Please try again later"),
    (500, SERVICE_ERROR, "Provider service error"),
]

STATUS_CHECK_TABLE: List[Tuple[int, str, str]] = [
    (400, INVALID_TASK_ID, "Invalid task ID or request parameters"),
    (401, AUTH_FAILED, "Invalid API key or authentication failed"),
    (404, TASK_NOT_FOUND, "Task not found"),
    (429, RATE_LIMIT_EXCEEDED, "Rate limit exceeded. Please try again later"),
    (500, SERVICE_ERROR, "Provider service error"),
]


class ProxyError(Exception):
    """Base class for failures that map onto an error envelope."""

    code = SYSTEM_ERROR
    http_status = 500

    def __init__(self, message: str, code: Optional[str] = None, http_status: Optional[int] = None, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if http_status is not None:
            self.http_status = http_status
        self.details = details


class InvalidRequest(ProxyError):
    code = INVALID_REQUEST
    http_status = 400


class ConfigurationError(ProxyError):
    code = CONFIGURATION_ERROR
    http_status = 500


class CredentialError(ProxyError):
    code = CREDENTIAL_ERROR
    http_status = 500


class ProcessingError(ProxyError):
    code = PROCESSING_ERROR
    http_status = 500


class UpstreamError(ProxyError):
    """Provider answered with a non-2xx status."""

    def __init__(self, message: str, code: str, upstream_status: int, details: Optional[str] = None):
        super().__init__(message, code=code, http_status=outward_status(upstream_status), details=details)
        self.upstream_status = upstream_status


def outward_status(upstream_status: int) -> int:
    """Collapse a provider status into the two statuses the UI sees."""
    return 500 if upstream_status >= 500 else 400


def classify_status(status: int, table: List[Tuple[int, str, str]], fallback: Tuple[str, str]) -> Tuple[str, str]:
    for table_status, code, message in table:
        if table_status == status:
            return code, message
    return fallback


def upstream_error(status: int, body, table=GENERATION_STATUS_TABLE, fallback=(GENERATION_FAILED, "Video generation failed")) -> UpstreamError:
    code, message = classify_status(status, table, fallback)
    return UpstreamError(message, code=code, upstream_status=status, details=extract_details(body))


def extract_details(body) -> str:
    """Pull a human-readable reason out of a provider error body."""
    if isinstance(body, dict):
        detail = body.get("message") or body.get("error") or body.get("detail")
        if isinstance(detail, dict):
            detail = detail.get("message")
        if detail:
            return str(detail)
    elif isinstance(body, str) and body.strip():
        return body.strip()[:300]
    return "Unknown error"


def utc_timestamp() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat().replace("+00:00", "Z")


def error_envelope(exc: ProxyError, error: Optional[str] = None, **extra) -> Tuple[dict, int]:
    """Render a ProxyError as `(body, http_status)`.

    `error` overrides the human-readable message, which the background
    removal route uses to keep its fixed wording.
    """
    status = getattr(exc, "upstream_status", exc.http_status)
    body = {
        "error": error or exc.message,
        "errorCode": exc.code,
        "details": exc.details or exc.message,
        "status": status,
        "timestamp": utc_timestamp(),
    }
    body.update(extra)
    return body, exc.http_status


def system_error(exc: Exception, message: str) -> ProxyError:
    return ProxyError(message, code=SYSTEM_ERROR, http_status=500, details=str(exc) or exc.__class__.__name__)
