"""
Weather clients.

API logic is kept separate from the FastAPI endpoints and the ingestion
pipeline so it can be swapped for a fake transport in tests.
"""

from __future__ import annotations

from typing import Any, Dict, Optional
import logging

import httpx

from .settings import DEFAULT_OPENWEATHER_BASE_URL

logger = logging.getLogger(__name__)


class WeatherError(RuntimeError):
    """
    Raised when the provider call fails for one location.

    status_code is None for transport failures (DNS, refused connection, timeout).
    """

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class OpenWeatherClient:
    """
    OpenWeatherMap "current weather" wrapper.

    Endpoint used:
    - Current weather:
        /data/2.5/weather?lat=...&lon=...&units=metric&appid=KEY

    Units are always metric: the rest of the system works in °C, m/s and mm.
    One request per call, no retries. The caller decides what a failure means.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_OPENWEATHER_BASE_URL,
        timeout_s: float = 12.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout_s = timeout_s
        self.transport = transport

    async def current_conditions(self, lat: float, lon: float) -> Dict[str, Any]:
        """
        Retrieves current weather conditions for a lat/lon as parsed JSON.
        """
        params = {"lat": lat, "lon": lon, "appid": self.api_key, "units": "metric"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self.transport) as client:
                r = await client.get(self.base_url, params=params, headers={"accept": "application/json"})
        except httpx.TimeoutException as e:
            raise WeatherError(f"Current weather timed out after {self.timeout_s:g}s: {e}") from e
        except httpx.HTTPError as e:
            raise WeatherError(f"Current weather request failed: {e}") from e

        if not r.is_success:
            logger.debug("OpenWeather returned %s for lat=%s lon=%s", r.status_code, lat, lon)
            raise WeatherError(
                f"Current weather failed ({r.status_code}): {r.text}",
                status_code=r.status_code,
                body=r.text,
            )

        try:
            data = r.json()
        except ValueError as e:
            raise WeatherError(f"Current weather returned invalid JSON: {r.text[:200]}", status_code=r.status_code) from e

        if not isinstance(data, dict):
            raise WeatherError("Current weather returned a non-object JSON body.", status_code=r.status_code)
        return data
