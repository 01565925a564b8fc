"""
FastAPI entrypoint.

This file focuses on:
- routing
- request/response handling
- wiring together DB + settings + the weather client
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
import hmac
import logging

from fastapi import FastAPI, Depends, Header, HTTPException, Query
from sqlalchemy.orm import Session

from .settings import Settings, MissingAPIKeyError, get_settings, settings
from .db import get_db, init_db
from . import models
from .schemas import DeviceTokenUpsert, IngestResponse, ReportCreate
from .weather_clients import OpenWeatherClient
from .ingestion import ForecastIngestionService
from .metrics import enrich_forecast
from .crud import (
    DEFAULT_HAZARD_LIMIT, MAX_HAZARD_LIMIT, InvalidInputError,
    active_alerts, create_report, get_location, latest_forecast,
    list_locations, list_reports, require_location, upsert_device_token,
)

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Create tables automatically; there are no migrations.
init_db()

app = FastAPI(title=settings.app_name)


def get_weather_client(cfg: Settings = Depends(get_settings)) -> Optional[OpenWeatherClient]:
    """Provider client for on-demand ingestion, None when no key is configured."""
    if not cfg.openweather_api_key:
        return None
    return OpenWeatherClient(
        cfg.openweather_api_key,
        base_url=cfg.openweather_base_url,
        timeout_s=cfg.http_timeout_s,
    )


def location_or_404(location_id: int, db: Session = Depends(get_db)) -> models.Location:
    location = get_location(db, location_id)
    if not location:
        raise HTTPException(status_code=404, detail="Location not found")
    return location


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stored naive UTC -> aware UTC so responses carry an explicit offset."""
    return value.replace(tzinfo=timezone.utc) if value is not None else None


def location_to_dict(model: models.Location) -> dict:
    return {
        "id": model.id,
        "name": model.name,
        "region": model.region,
        "latitude": model.latitude,
        "longitude": model.longitude,
        "timezone": model.timezone,
    }


def alert_to_dict(model: models.Alert) -> dict:
    return {
        "id": model.id,
        "location_id": model.location_id,
        "level": model.level,
        "type": model.type,
        "title": model.title,
        "message": model.message,
        "starts_at": as_utc(model.starts_at),
        "ends_at": as_utc(model.ends_at),
        "source": model.source,
        "rule_ref": model.rule_ref,
        "created_at": as_utc(model.created_at),
    }


def report_to_dict(model: models.Report, with_location: bool = True) -> dict:
    out = {
        "id": model.id,
        "location_id": model.location_id,
        "type": model.type,
        "severity": model.severity,
        "note": model.note,
        "photo_url": model.photo_url,
        "reported_at": as_utc(model.reported_at),
        "created_at": as_utc(model.created_at),
    }
    if with_location:
        loc = model.location
        out["location"] = {"id": loc.id, "name": loc.name, "region": loc.region} if loc else None
    return out


def device_token_to_dict(model: models.DeviceToken) -> dict:
    return {
        "id": model.id,
        "expo_token": model.expo_token,
        "platform": model.platform,
        "location_id": model.location_id,
        "last_seen_at": as_utc(model.last_seen_at),
        "created_at": as_utc(model.created_at),
        "updated_at": as_utc(model.updated_at),
    }


@app.get("/health")
def health():
    return {"status": "ok"}


# -------------------------
# Locations / forecasts / alerts
# -------------------------

@app.get("/locations")
def api_list_locations(db: Session = Depends(get_db)):
    """All tracked locations, ordered by name."""
    return [location_to_dict(loc) for loc in list_locations(db)]


@app.get("/locations/{location_id}/forecast")
def api_location_forecast(location: models.Location = Depends(location_or_404), db: Session = Depends(get_db)):
    """Latest forecast, enriched with chance of rain and wind figures."""
    forecast = latest_forecast(db, location.id)
    if not forecast:
        raise HTTPException(status_code=404, detail="No forecast available for this location")
    return enrich_forecast(forecast)


@app.get("/locations/{location_id}/alerts")
def api_location_alerts(location: models.Location = Depends(location_or_404), db: Session = Depends(get_db)):
    """Active alerts, newest first."""
    return [alert_to_dict(a) for a in active_alerts(db, location.id)]


# -------------------------
# Hazard reports
# -------------------------

@app.get("/locations/{location_id}/hazards")
def api_location_hazards(
    location: models.Location = Depends(location_or_404),
    limit: int = Query(DEFAULT_HAZARD_LIMIT, ge=1, le=MAX_HAZARD_LIMIT),
    db: Session = Depends(get_db),
):
    return [report_to_dict(r) for r in list_reports(db, location_id=location.id, limit=limit)]


@app.get("/hazards")
def api_list_hazards(
    location_id: Optional[int] = None,
    limit: int = Query(DEFAULT_HAZARD_LIMIT, ge=1, le=MAX_HAZARD_LIMIT),
    db: Session = Depends(get_db),
):
    """Reports across all locations, optionally filtered by location_id."""
    if location_id is not None:
        try:
            require_location(db, location_id)
        except InvalidInputError as e:
            raise HTTPException(status_code=422, detail=str(e))
    return [report_to_dict(r) for r in list_reports(db, location_id=location_id, limit=limit)]


@app.post("/hazards", status_code=201)
def api_create_hazard(payload: ReportCreate, db: Session = Depends(get_db)):
    """Create a report; the response includes its location."""
    try:
        report = create_report(db, payload)
    except InvalidInputError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return report_to_dict(report)


@app.post("/reports", status_code=201)
def api_create_report(payload: ReportCreate, db: Session = Depends(get_db)):
    try:
        report = create_report(db, payload)
    except InvalidInputError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return report_to_dict(report, with_location=False)


@app.post("/device-tokens")
def api_upsert_device_token(payload: DeviceTokenUpsert, db: Session = Depends(get_db)):
    """Register or refresh an Expo push token."""
    try:
        token = upsert_device_token(db, payload)
    except InvalidInputError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return device_token_to_dict(token)


# -------------------------
# Ingestion (on-demand trigger)
# -------------------------

@app.post("/ingest", response_model=IngestResponse, response_model_exclude_none=True)
async def api_ingest(
    x_ingest_secret: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    cfg: Settings = Depends(get_settings),
    client: Optional[OpenWeatherClient] = Depends(get_weather_client),
):
    """
    Run the ingestion pipeline synchronously.

    Guarded by X-Ingest-Secret when INGEST_SECRET is configured.
    """
    if cfg.ingest_secret:
        if not hmac.compare_digest((x_ingest_secret or "").encode(), cfg.ingest_secret.encode()):
            raise HTTPException(status_code=401, detail="Unauthorized")

    service = ForecastIngestionService(db, cfg, client=client)
    try:
        results = await service.ingest()
    except MissingAPIKeyError as e:
        logger.error("Ingestion aborted: %s", e)
        raise HTTPException(status_code=500, detail=str(e))

    return IngestResponse(results=results)
