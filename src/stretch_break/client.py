"""HTTP client for a running break service."""

from __future__ import annotations

from typing import Any, Dict, Optional

import requests

from .errors import InvalidOperation, StretchBreakError


class ServiceUnavailable(StretchBreakError):
    """No break service answered at the configured address."""


class BreakServiceClient:
    def __init__(self, base_url: str, timeout: float = 10.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = requests.Session()

    def widget_info(self) -> Dict[str, Any]:
        return self._request("GET", "/api/widget-info")

    def status(self) -> Dict[str, Any]:
        return self._request("GET", "/api/status")

    def snooze_for(self, minutes: float) -> Dict[str, Any]:
        return self._request("POST", "/api/snooze", {"minutes": max(minutes, 0)})

    def mute(self, minutes: Optional[float] = None) -> Dict[str, Any]:
        payload = {"minutes": minutes} if minutes is not None else None
        return self._request("POST", "/api/mute", payload)

    def unmute(self) -> Dict[str, Any]:
        return self._request("POST", "/api/unmute")

    def trigger_break(self) -> Dict[str, Any]:
        return self._request("POST", "/api/break")

    def skip_break(self) -> Dict[str, Any]:
        return self._request("POST", "/api/skip-break")

    def postpone_break(self, minutes: float) -> Dict[str, Any]:
        return self._request("POST", "/api/postpone", {"minutes": minutes})

    def set_reading_mode(self, value: bool) -> Dict[str, Any]:
        return self._request("POST", "/api/reading-mode", {"value": value})

    def _request(
        self, method: str, path: str, payload: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        try:
            response = self._session.request(
                method, f"{self.base_url}{path}", json=payload, timeout=self.timeout
            )
        except requests.RequestException as exc:
            raise ServiceUnavailable(
                f"Could not reach Stretch Break at {self.base_url}. Is it running?"
            ) from exc
        if response.status_code == 409:
            raise InvalidOperation(_detail(response, "Operation not allowed."))
        if response.status_code == 503:
            raise ServiceUnavailable(_detail(response, "Service unavailable."))
        if not response.ok:
            raise StretchBreakError(
                f"Request to {path} failed with HTTP {response.status_code}: "
                f"{_detail(response, response.reason)}"
            )
        return response.json()


def _detail(response: requests.Response, default: str) -> str:
    try:
        detail = response.json().get("detail")
    except (ValueError, AttributeError):
        return response.text or default
    return str(detail) if detail else default
