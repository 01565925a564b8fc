"""
Derived display metrics, computed at read time from a stored forecast.

Thresholds are inclusive on the lower bound of each tier.
"""

from __future__ import annotations

from datetime import timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

from . import models
from .normalizer import first_weather, is_number, location_zone


WET_CONDITIONS = {"rain", "drizzle", "thunderstorm", "snow"}

# (minimum cloud cover %, chance of rain %), checked top-down
CLOUD_TIERS = [
    (85, 45),
    (60, 30),
    (30, 15),
]
CLEAR_SKY_CHANCE = 5
NO_DATA_CHANCE = 10

STRONG_WIND_MS = 15.0
BREEZY_WIND_MS = 9.0


def chance_of_rain_pct(raw: Dict[str, Any], rain_mm: Optional[float]) -> int:
    """
    First matching rule wins:
    measured rain, then wet weather category, then cloud cover, then a flat 10%.
    """
    if (rain_mm or 0) > 0:
        return 80

    main = first_weather(raw or {}).get("main")
    if isinstance(main, str) and main.lower() in WET_CONDITIONS:
        return 75

    clouds = (raw or {}).get("clouds")
    cover = clouds.get("all") if isinstance(clouds, dict) else None
    if is_number(cover):
        for minimum, chance in CLOUD_TIERS:
            if cover >= minimum:
                return chance
        return CLEAR_SKY_CHANCE

    return NO_DATA_CHANCE


def wind_kph(wind_ms: Optional[float]) -> Optional[float]:
    """m/s -> km/h, rounded half-up to one decimal."""
    if wind_ms is None:
        return None
    kph = Decimal(str(wind_ms)) * Decimal("3.6")
    return float(kph.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def wind_level(wind_ms: Optional[float]) -> str:
    if wind_ms is None:
        return "unknown"
    if wind_ms >= STRONG_WIND_MS:
        return "strong"
    if wind_ms >= BREEZY_WIND_MS:
        return "breezy"
    return "calm"


def enrich_forecast(forecast: models.Forecast) -> Dict[str, Any]:
    """
    Forecast response envelope for the mobile client.

    observed_at is rendered in the location's own timezone.
    """
    observed_at = forecast.observed_at.replace(tzinfo=timezone.utc).astimezone(
        location_zone(forecast.location.timezone)
    )
    return {
        "id": forecast.id,
        "location_id": forecast.location_id,
        "observed_at": observed_at,
        "temp_c": forecast.temp_c,
        "feels_like_c": forecast.feels_like_c,
        "humidity": forecast.humidity,
        "wind_ms": forecast.wind_ms,
        "wind_kph": wind_kph(forecast.wind_ms),
        "wind_level": wind_level(forecast.wind_ms),
        "rain_mm": forecast.rain_mm,
        "chance_of_rain_pct": chance_of_rain_pct(forecast.raw, forecast.rain_mm),
        "summary": forecast.summary,
    }
