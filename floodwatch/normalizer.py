"""
Provider payload -> canonical forecast fields.

Every lookup tolerates missing or oddly-typed values: a valid JSON object
always produces a draft, missing fields become None (or 0 for rain).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging

from . import models

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ForecastDraft:
    """Normalized, not yet persisted forecast for one location."""
    location_id: int
    observed_at: datetime  # aware, in the location's timezone
    temp_c: Optional[float]
    feels_like_c: Optional[float]
    humidity: Optional[float]
    wind_ms: Optional[float]
    rain_mm: float
    summary: Optional[str]
    raw: Dict[str, Any]


def location_zone(tz_name: Optional[str]) -> tzinfo:
    """ZoneInfo for a location, UTC when the id is unknown."""
    if not tz_name:
        return timezone.utc
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, falling back to UTC", tz_name)
        return timezone.utc


def is_number(value: Any) -> bool:
    # bool is an int subclass, but true/false is not a measurement
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def pick_number(value: Any) -> Optional[float]:
    if not is_number(value):
        return None
    try:
        return float(value)
    except OverflowError:
        # JSON integers are unbounded; anything past float range is noise
        return None


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def first_weather(payload: Dict[str, Any]) -> Dict[str, Any]:
    """payload["weather"][0] as a dict, or {}."""
    weather = payload.get("weather")
    if isinstance(weather, list) and weather:
        return _as_dict(weather[0])
    return {}


def parse_rain_mm(payload: Dict[str, Any]) -> float:
    """
    Last-hour rain depth.

    "rain" may be absent, a bare number, or {"1h": n}. Anything else is 0.
    """
    rain = payload.get("rain")
    if isinstance(rain, dict):
        rain = rain.get("1h")
    rain_mm = pick_number(rain)
    return rain_mm if rain_mm is not None else 0.0


def parse_observed_at(payload: Dict[str, Any], tz: tzinfo, now: Optional[datetime] = None) -> datetime:
    dt = payload.get("dt")
    if is_number(dt):
        try:
            return datetime.fromtimestamp(dt, tz=timezone.utc).astimezone(tz)
        except (OverflowError, OSError, ValueError):
            logger.warning("Ignoring out-of-range dt=%r in provider payload", dt)
    return (now or datetime.now(timezone.utc)).astimezone(tz)


def normalize_payload(payload: Dict[str, Any], location: models.Location, now: Optional[datetime] = None) -> ForecastDraft:
    """
    Map a raw OpenWeather "current weather" object onto a ForecastDraft.

    `now` (aware) is used for observed_at when the payload carries no dt.
    """
    main = _as_dict(payload.get("main"))
    wind = _as_dict(payload.get("wind"))
    description = first_weather(payload).get("description")

    return ForecastDraft(
        location_id=location.id,
        observed_at=parse_observed_at(payload, location_zone(location.timezone), now=now),
        temp_c=pick_number(main.get("temp")),
        feels_like_c=pick_number(main.get("feels_like")),
        humidity=pick_number(main.get("humidity")),
        wind_ms=pick_number(wind.get("speed")),
        rain_mm=parse_rain_mm(payload),
        summary=description if isinstance(description, str) else None,
        raw=payload,
    )
