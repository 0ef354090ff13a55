from __future__ import annotations

import json
import logging
import os
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any

from ..errors import ExternalServiceError

logger = logging.getLogger(__name__)

DEFAULT_ENGINE_URL = "https://engine.tagforge.dev/v1"
REQUEST_ID_HEADER = "X-Request-Id"


@dataclass
class EngineClient:
    """JSON-over-HTTP client for the external tool collaborators (edit merge, code search, crawl, database)."""

    base_url: str
    api_key: str
    timeout: float = 120

    @staticmethod
    def from_env(base_url: str | None = None, api_key_env: str = "TAGFORGE_API_KEY") -> "EngineClient | None":
        key = os.getenv(api_key_env, "").strip()
        if not key:
            return None
        url = base_url or os.getenv("TAGFORGE_ENGINE_URL") or DEFAULT_ENGINE_URL
        return EngineClient(base_url=url, api_key=key)

    def fetch(self, endpoint: str, payload: dict[str, Any], *, request_id: str) -> Any:
        url = self.base_url.rstrip("/") + endpoint
        data = json.dumps(payload).encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
            REQUEST_ID_HEADER: request_id,
        }
        req = urllib.request.Request(url, data=data, headers=headers, method="POST")
        logger.debug("POST %s (request %s)", endpoint, request_id)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                raw = resp.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace") if hasattr(e, "read") else ""
            raise ExternalServiceError(endpoint, e.code, body) from e
        except urllib.error.URLError as e:
            raise ExternalServiceError(endpoint, None, str(e.reason)) from e
        try:
            return json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as e:
            raise ExternalServiceError(endpoint, None, f"invalid JSON response: {raw[:500]}") from e
