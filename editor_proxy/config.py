import os
import logging
from typing import Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_KLING_API_BASE = "https://api-singapore.klingai.com"
DEFAULT_FAL_API_BASE = "https://fal.run"
DEFAULT_PUBLIC_BASE_URL = "http://localhost:8000"


def parse_cost_table(raw: Optional[str]) -> Dict[int, str]:
    """Parse `"5=$0.12,10=$0.24"` into `{5: "$0.12", 10: "$0.24"}`.

    Malformed pairs are skipped with a warning so a typo in the env does not
    take the service down.
    """
    table = {}
    if not raw:
        return table
    for pair in raw.split(","):
        pair = pair.strip()
        if not pair:
            continue
        key, sep, cost = pair.partition("=")
        try:
            if not sep or not cost.strip():
                raise ValueError("missing cost")
            table[int(key.strip())] = cost.strip()
        except ValueError:
            logger.warning(f"Ignoring malformed VIDEO_COST_TABLE entry: {pair!r}")
    return table


class CostTable:
    """Duration (seconds) -> display cost, with a fallback for unlisted durations."""

    def __init__(self, costs: Optional[Dict[int, str]] = None, default: str = "$0.24"):
        self.costs = dict(costs if costs is not None else {5: "$0.12"})
        self.default = default

    def estimate(self, duration) -> str:
        try:
            key = int(duration)
        except (TypeError, ValueError):
            return self.default
        if key != duration:
            return self.default
        return self.costs.get(key, self.default)


class Settings:
    """Runtime configuration.

    Values passed to the constructor win; anything left as None is read from
    the environment (populated from `.env` by the entrypoint).
    """

    def __init__(
        self,
        kling_access_key: Optional[str] = None,
        kling_secret_key: Optional[str] = None,
        kling_api_base: Optional[str] = None,
        kling_token_ttl: Optional[int] = None,
        kling_token_buffer: Optional[int] = None,
        kling_timeout: Optional[float] = None,
        fal_key: Optional[str] = None,
        fal_api_base: Optional[str] = None,
        fal_timeout: Optional[float] = None,
        public_base_url: Optional[str] = None,
        public_dir: Optional[str] = None,
        cost_table: Optional[CostTable] = None,
    ):
        self.kling_access_key = kling_access_key if kling_access_key is not None else os.getenv("KLING_ACCESS_KEY")
        self.kling_secret_key = kling_secret_key if kling_secret_key is not None else os.getenv("KLING_SECRET_KEY")
        self.kling_api_base = (kling_api_base or os.getenv("KLING_API_BASE") or DEFAULT_KLING_API_BASE).rstrip("/")
        self.kling_token_ttl = kling_token_ttl if kling_token_ttl is not None else int(os.getenv("KLING_TOKEN_TTL", "1800"))
        self.kling_token_buffer = kling_token_buffer if kling_token_buffer is not None else int(os.getenv("KLING_TOKEN_BUFFER", "300"))
        self.kling_timeout = kling_timeout if kling_timeout is not None else float(os.getenv("KLING_TIMEOUT", "60"))

        self.fal_key = fal_key if fal_key is not None else os.getenv("FAL_KEY")
        self.fal_api_base = (fal_api_base or os.getenv("FAL_API_BASE") or DEFAULT_FAL_API_BASE).rstrip("/")
        self.fal_timeout = fal_timeout if fal_timeout is not None else float(os.getenv("FAL_TIMEOUT", "120"))

        self.public_base_url = (public_base_url or os.getenv("PUBLIC_BASE_URL") or DEFAULT_PUBLIC_BASE_URL).rstrip("/")
        self.public_dir = public_dir or os.getenv("PUBLIC_DIR") or os.path.join(os.getcwd(), "public")

        if cost_table is None:
            raw_table = os.getenv("VIDEO_COST_TABLE")
            costs = parse_cost_table(raw_table) if raw_table is not None else None
            cost_table = CostTable(costs, default=os.getenv("VIDEO_DEFAULT_COST", "$0.24"))
        self.cost_table = cost_table

    @property
    def kling_configured(self) -> bool:
        return bool(self.kling_access_key and self.kling_secret_key)

    @property
    def kling_endpoint(self) -> str:
        """Host name reported back to the UI in `system.endpoint`."""
        return self.kling_api_base.split("://", 1)[-1]
