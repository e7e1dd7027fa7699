"""
modules/tool_usage/maps_client.py
-----------------------------------
Fetches road distance and travel time for one origin → destination pair
from the Google Distance Matrix API.

Every failure mode surfaces as ProviderUnavailable with a reason code:
  missing_credentials | network | timeout | quota | bad_response
The caller (TravelTimeProvider) decides whether to fall back.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import requests

from sightseeing import config
from sightseeing.exceptions import ProviderUnavailable
from sightseeing.schemas.travel import Coordinate

logger = logging.getLogger(__name__)

_QUOTA_STATUSES = {"OVER_QUERY_LIMIT", "OVER_DAILY_LIMIT", "REQUEST_DENIED"}


class MapsClient(Protocol):
    """Anything that can answer a single pairwise lookup."""

    available: bool

    def fetch(self, origin: Coordinate, destination: Coordinate) -> tuple[float, float]:
        """Return (distance_km, duration_minutes) or raise ProviderUnavailable."""
        ...


class GoogleDistanceMatrixClient:
    """Blocking HTTP client; run it off the event loop (TravelTimeProvider uses a worker pool)."""

    def __init__(
        self,
        api_key: str = config.GOOGLE_MAPS_API_KEY,
        api_url: str = config.MAPS_API_URL,
        mode: str = config.MAPS_TRAVEL_MODE,
        timeout_s: float = config.MAPS_REQUEST_TIMEOUT_S,
    ) -> None:
        self.api_key = api_key
        self.api_url = api_url
        self.mode = mode
        self.timeout_s = timeout_s

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    def fetch(self, origin: Coordinate, destination: Coordinate) -> tuple[float, float]:
        if not self.api_key:
            raise ProviderUnavailable("missing_credentials", "GOOGLE_MAPS_API_KEY is not set")

        params: dict[str, Any] = {
            "origins": f"{origin[0]},{origin[1]}",
            "destinations": f"{destination[0]},{destination[1]}",
            "mode": self.mode,
            "units": "metric",
            "key": self.api_key,
        }

        try:
            response = requests.get(self.api_url, params=params, timeout=self.timeout_s)
            response.raise_for_status()
        except requests.Timeout as exc:
            raise ProviderUnavailable("timeout", str(exc)) from exc
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            reason = "quota" if status == 429 else "network"
            raise ProviderUnavailable(reason, str(exc)) from exc
        except requests.RequestException as exc:
            raise ProviderUnavailable("network", str(exc)) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderUnavailable("bad_response", "body is not JSON") from exc

        return self._parse(payload)

    @staticmethod
    def _parse(payload: dict) -> tuple[float, float]:
        """
        Map a Distance Matrix response → (km, minutes).

        Prefers duration_in_traffic when the API returns it.
        """
        status = payload.get("status") if isinstance(payload, dict) else None
        if status in _QUOTA_STATUSES:
            raise ProviderUnavailable("quota", str(payload.get("error_message", status)))
        if status != "OK":
            raise ProviderUnavailable("bad_response", f"status={status!r}")

        try:
            element = payload["rows"][0]["elements"][0]
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise ProviderUnavailable("bad_response", "missing rows/elements") from exc

        if not isinstance(element, dict):
            raise ProviderUnavailable("bad_response", f"element is {type(element).__name__}")
        if element.get("status") != "OK":
            raise ProviderUnavailable("bad_response", f"element status={element.get('status')!r}")

        try:
            metres = float(element["distance"]["value"])
            duration = element.get("duration_in_traffic") or element["duration"]
            seconds = float(duration["value"])
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise ProviderUnavailable("bad_response", "missing distance/duration") from exc

        logger.debug("Distance Matrix: %.0f m, %.0f s", metres, seconds)
        return metres / 1000.0, seconds / 60.0
