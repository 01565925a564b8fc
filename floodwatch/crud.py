"""
CRUD functions.

Routing stays in main.py; the queries and write-side validation live here so
they can be unit tested against a plain Session.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from . import models
from .alerts import active_alerts_query
from .db import utcnow
from .schemas import DeviceTokenUpsert, ReportCreate

logger = logging.getLogger(__name__)


DEFAULT_HAZARD_LIMIT = 100
MAX_HAZARD_LIMIT = 200

# Seed data for the tracked locations
DEFAULT_LOCATIONS = [
    {"name": "Dar es Salaam", "region": "Dar es Salaam", "latitude": -6.7924, "longitude": 39.2083, "timezone": "Africa/Dar_es_Salaam"},
    {"name": "Mwanza", "region": "Mwanza", "latitude": -2.5164, "longitude": 32.8987, "timezone": "Africa/Dar_es_Salaam"},
    {"name": "Arusha", "region": "Arusha", "latitude": -3.3869, "longitude": 36.68299, "timezone": "Africa/Dar_es_Salaam"},
    {"name": "Dodoma", "region": "Dodoma", "latitude": -6.163, "longitude": 35.7516, "timezone": "Africa/Dar_es_Salaam"},
    {"name": "Zanzibar City", "region": "Zanzibar", "latitude": -6.1659, "longitude": 39.2026, "timezone": "Africa/Dar_es_Salaam"},
    {"name": "Mbeya", "region": "Mbeya", "latitude": -8.9094, "longitude": 33.46, "timezone": "Africa/Dar_es_Salaam"},
    {"name": "Tanga", "region": "Tanga", "latitude": -5.0692, "longitude": 39.0987, "timezone": "Africa/Dar_es_Salaam"},
    {"name": "Kigoma", "region": "Kigoma", "latitude": -4.876, "longitude": 29.6266, "timezone": "Africa/Dar_es_Salaam"},
]


class InvalidInputError(ValueError):
    """Raised when a write payload references data that doesn't exist."""
    pass


def to_naive_utc(value: datetime) -> datetime:
    """Aware -> naive UTC; naive values are assumed to be UTC already."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def list_locations(db: Session) -> List[models.Location]:
    return list(db.scalars(select(models.Location).order_by(models.Location.name)))


def get_location(db: Session, location_id: int) -> models.Location | None:
    return db.get(models.Location, location_id)


def latest_forecast(db: Session, location_id: int) -> models.Forecast | None:
    """Most recent forecast by observed_at (id breaks ties)."""
    stmt = (
        select(models.Forecast)
        .where(models.Forecast.location_id == location_id)
        .order_by(models.Forecast.observed_at.desc(), models.Forecast.id.desc())
        .limit(1)
    )
    return db.scalars(stmt).first()


def active_alerts(db: Session, location_id: int, now: Optional[datetime] = None) -> List[models.Alert]:
    """Alerts whose ends_at is unset or not yet passed, newest starts_at first."""
    stmt = active_alerts_query(location_id, now or utcnow()).order_by(
        models.Alert.starts_at.desc(), models.Alert.id.desc()
    )
    return list(db.scalars(stmt))


def list_reports(db: Session, location_id: Optional[int] = None, limit: int = DEFAULT_HAZARD_LIMIT) -> List[models.Report]:
    """Reports, newest reported_at then id first, with their location loaded."""
    stmt = (
        select(models.Report)
        .options(selectinload(models.Report.location))
        .order_by(models.Report.reported_at.desc(), models.Report.id.desc())
        .limit(limit)
    )
    if location_id is not None:
        stmt = stmt.where(models.Report.location_id == location_id)
    return list(db.scalars(stmt))


def require_location(db: Session, location_id: int) -> models.Location:
    location = get_location(db, location_id)
    if location is None:
        raise InvalidInputError("The selected location_id is invalid.")
    return location


def create_report(db: Session, payload: ReportCreate) -> models.Report:
    """
    CREATE report:
    - location must exist
    - reported_at defaults to now
    """
    require_location(db, payload.location_id)

    report = models.Report(
        location_id=payload.location_id,
        type=payload.type,
        severity=payload.severity,
        note=payload.note,
        photo_url=payload.photo_url,
        reported_at=to_naive_utc(payload.reported_at) if payload.reported_at else utcnow(),
    )

    db.add(report)
    db.commit()
    db.refresh(report)
    return report


def upsert_device_token(db: Session, payload: DeviceTokenUpsert) -> models.DeviceToken:
    """Create or refresh a push token; last_seen_at is bumped on every call."""
    if payload.location_id is not None:
        require_location(db, payload.location_id)

    now = utcnow()
    token = db.scalars(
        select(models.DeviceToken).where(models.DeviceToken.expo_token == payload.expo_token)
    ).first()
    if token is None:
        token = models.DeviceToken(expo_token=payload.expo_token, created_at=now)

    token.platform = payload.platform
    token.location_id = payload.location_id
    token.last_seen_at = now
    token.updated_at = now

    db.add(token)
    db.commit()
    db.refresh(token)
    return token


def seed_locations(db: Session, seeds: Optional[List[dict]] = None) -> List[models.Location]:
    """Upsert the tracked locations by name."""
    out = []
    for seed in seeds if seeds is not None else DEFAULT_LOCATIONS:
        location = db.scalars(select(models.Location).where(models.Location.name == seed["name"])).first()
        if location is None:
            location = models.Location(name=seed["name"])
            logger.info("Seeding location %s", seed["name"])
        location.region = seed.get("region")
        location.latitude = seed["latitude"]
        location.longitude = seed["longitude"]
        location.timezone = seed.get("timezone", models.DEFAULT_TIMEZONE)
        location.updated_at = utcnow()
        db.add(location)
        out.append(location)

    db.commit()
    for location in out:
        db.refresh(location)
    return out
