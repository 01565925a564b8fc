"""
ORM models.

We store:
- monitored locations (seeded, read-only afterwards)
- forecast snapshots (append-only history, raw provider payload kept as JSON text)
- derived flood alerts (append-only, expire when ends_at passes)
- citizen hazard reports and device tokens for the mobile client

All DateTime columns hold naive UTC.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import String, Integer, Float, DateTime, Text, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from .db import Base, utcnow


DEFAULT_TIMEZONE = "Africa/Dar_es_Salaam"


class Location(Base):
    __tablename__ = "locations"
    __table_args__ = (UniqueConstraint("latitude", "longitude", name="uq_locations_lat_lon"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255))
    region: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    latitude: Mapped[float] = mapped_column(Float)
    longitude: Mapped[float] = mapped_column(Float)

    # IANA timezone id, used for observed_at and the alert clock
    timezone: Mapped[str] = mapped_column(String(64), default=DEFAULT_TIMEZONE)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    forecasts: Mapped[List["Forecast"]] = relationship(back_populates="location")
    alerts: Mapped[List["Alert"]] = relationship(back_populates="location")
    reports: Mapped[List["Report"]] = relationship(back_populates="location")


class Forecast(Base):
    __tablename__ = "forecasts"
    __table_args__ = (Index("ix_forecasts_location_observed", "location_id", "observed_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    location_id: Mapped[int] = mapped_column(ForeignKey("locations.id", ondelete="CASCADE"))
    observed_at: Mapped[datetime] = mapped_column(DateTime)

    temp_c: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    feels_like_c: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    humidity: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    wind_ms: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    rain_mm: Mapped[float] = mapped_column(Float, default=0.0)
    summary: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Full provider payload, verbatim. Example:
    #   {"dt": 1767600000, "main": {"temp": 29.1, ...}, "rain": {"1h": 3.2}, ...}
    raw_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    location: Mapped[Location] = relationship(back_populates="forecasts")

    @property
    def raw(self) -> Dict[str, Any]:
        return json.loads(self.raw_json or "{}")


class Alert(Base):
    __tablename__ = "alerts"
    __table_args__ = (Index("ix_alerts_location_starts", "location_id", "starts_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    location_id: Mapped[int] = mapped_column(ForeignKey("locations.id", ondelete="CASCADE"))

    level: Mapped[str] = mapped_column(String(16))  # watch, warning, emergency
    type: Mapped[str] = mapped_column(String(32))  # flood, drought, storm
    title: Mapped[str] = mapped_column(String(255))
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    starts_at: Mapped[datetime] = mapped_column(DateTime)
    # NULL means open-ended
    ends_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    source: Mapped[str] = mapped_column(String(64), default="system")
    rule_ref: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    location: Mapped[Location] = relationship(back_populates="alerts")


class Report(Base):
    __tablename__ = "reports"
    __table_args__ = (Index("ix_reports_location_reported", "location_id", "reported_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    location_id: Mapped[int] = mapped_column(ForeignKey("locations.id", ondelete="CASCADE"))

    type: Mapped[str] = mapped_column(String(32))  # rain, flood, wind
    severity: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    photo_url: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    reported_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    location: Mapped[Location] = relationship(back_populates="reports")


class DeviceToken(Base):
    __tablename__ = "device_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    expo_token: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    platform: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    location_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("locations.id", ondelete="SET NULL"), nullable=True
    )
    last_seen_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
