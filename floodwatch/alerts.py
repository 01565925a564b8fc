"""
Rainfall-based flood alert rules.

At most one active alert per (location, type, level): a rule that fires
while a matching alert is still active is a no-op. The check and the insert
share one session transaction but are not serialized across processes, so two
concurrent ingestion runs for the same location can both insert.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional
import logging

from sqlalchemy import select, or_
from sqlalchemy.orm import Session

from . import models
from .db import utcnow

logger = logging.getLogger(__name__)


FLOOD = "flood"
ALERT_SOURCE = "openweather"
ALERT_VALIDITY = timedelta(hours=6)


@dataclass(frozen=True)
class RainRule:
    min_rain_mm: float
    level: str
    rule_ref: str


# Highest tier first
RAIN_RULES: List[RainRule] = [
    RainRule(60.0, "emergency", "rain>=60mm"),
    RainRule(40.0, "warning", "rain>=40mm"),
    RainRule(25.0, "watch", "rain>=25mm"),
]


def classify_rainfall(rain_mm: Optional[float]) -> Optional[RainRule]:
    """The highest rule whose threshold rain_mm reaches, or None."""
    rain = rain_mm or 0.0
    for rule in RAIN_RULES:
        if rain >= rule.min_rain_mm:
            return rule
    return None


def active_alerts_query(location_id: int, now: datetime):
    """Alerts for a location with no end, or an end at/after `now` (naive UTC)."""
    return select(models.Alert).where(
        models.Alert.location_id == location_id,
        or_(models.Alert.ends_at.is_(None), models.Alert.ends_at >= now),
    )


def find_active_alert(db: Session, location_id: int, alert_type: str, level: str, now: datetime) -> Optional[models.Alert]:
    stmt = (
        active_alerts_query(location_id, now)
        .where(models.Alert.type == alert_type, models.Alert.level == level)
        .limit(1)
    )
    return db.scalars(stmt).first()


def derive_alert(
    db: Session,
    location: models.Location,
    forecast: models.Forecast,
    now: Optional[datetime] = None,
) -> Optional[models.Alert]:
    """
    Create at most one flood alert for a freshly stored forecast.

    Returns the new alert, or None when no rule fires or an alert of the same
    level is already active. `now` is naive UTC.
    """
    rule = classify_rainfall(forecast.rain_mm)
    if rule is None:
        return None

    now = now or utcnow()

    existing = find_active_alert(db, location.id, FLOOD, rule.level, now)
    if existing is not None:
        logger.debug(
            "Skipping %s alert for location %s: alert %s active until %s",
            rule.level, location.id, existing.id, existing.ends_at,
        )
        return None

    rain = forecast.rain_mm or 0.0
    alert = models.Alert(
        location_id=location.id,
        level=rule.level,
        type=FLOOD,
        title=f"{rule.level.capitalize()} alert for {location.name}",
        message=f"Heavy rainfall detected: {rain:.1f} mm in the last hour.",
        starts_at=now,
        ends_at=now + ALERT_VALIDITY,
        source=ALERT_SOURCE,
        rule_ref=rule.rule_ref,
    )

    db.add(alert)
    db.commit()
    db.refresh(alert)

    logger.info("Created %s flood alert %s for %s (%.1f mm)", rule.level, alert.id, location.name, rain)
    return alert
