"""JSON-over-HTTP helpers for talking to the policy service."""
from __future__ import annotations

import json
import logging
import time
from http.client import HTTPException
from dataclasses import dataclass
from typing import Any, Dict, Protocol
from urllib import error, request

LOGGER = logging.getLogger(__name__)
DEFAULT_TIMEOUT_SECONDS = 10.0


@dataclass
class PostResult:
    """Outcome of attempting to POST a JSON payload."""

    success: bool
    status_code: int | None = None
    response: Any = None
    error: str | None = None
    skipped: bool = False
    skip_reason: str | None = None


class Transport(Protocol):
    def post_json(self, path: str, payload: Dict[str, Any]) -> PostResult:
        ...


class HttpTransport:
    """Blocking urllib transport; callers on an event loop run it in a thread.

    ``post_json`` never raises: every failure is reported in the result.
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_attempts: int = 1,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max(1, max_attempts)

    def endpoint(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def post_json(self, path: str, payload: Dict[str, Any]) -> PostResult:
        if not self.base_url:
            return PostResult(success=False, skipped=True, skip_reason="Policy base URL not configured")
        endpoint = self.endpoint(path)
        try:
            body = json.dumps(payload, allow_nan=False).encode("utf-8")
        except (TypeError, ValueError) as exc:
            LOGGER.error("Refusing to post non-JSON payload to %s: %s", endpoint, exc)
            return PostResult(success=False, error=f"Unserializable payload: {exc}")
        headers = {"Content-Type": "application/json"}

        for attempt in range(1, self.max_attempts + 1):
            req = request.Request(endpoint, data=body, headers=headers, method="POST")
            try:
                LOGGER.debug("POST %s (attempt %s)", endpoint, attempt)
                with request.urlopen(req, timeout=self.timeout_seconds) as resp:
                    status = getattr(resp, "status", None) or resp.getcode()
                    response_payload = _decode_body(resp.read() or b"")
                    if 200 <= status < 300:
                        return PostResult(success=True, status_code=status, response=response_payload)
                    LOGGER.warning("POST %s failed with status %s", endpoint, status)
                    return PostResult(
                        success=False,
                        status_code=status,
                        response=response_payload,
                        error=f"HTTP {status}",
                    )
            except error.HTTPError as http_exc:
                error_body = http_exc.read().decode("utf-8", errors="ignore")
                LOGGER.warning("POST %s rejected (status %s): %s", endpoint, http_exc.code, error_body)
                return PostResult(
                    success=False,
                    status_code=http_exc.code,
                    error=error_body or f"HTTP {http_exc.code}",
                )
            except (error.URLError, HTTPException, OSError) as net_exc:
                reason = getattr(net_exc, "reason", net_exc)
                LOGGER.warning("Network error posting to %s (attempt %s): %s", endpoint, attempt, reason)
                if attempt >= self.max_attempts:
                    return PostResult(success=False, error=str(reason))
                time.sleep(1)
        return PostResult(success=False, error="Exhausted retries")


def _decode_body(body_bytes: bytes) -> Any:
    if not body_bytes:
        return None
    try:
        return json.loads(body_bytes.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        LOGGER.debug("Policy service returned a non-JSON body")
        return None
