"""
Forecast ingestion pipeline.

One pass over every tracked location:
    fetch current conditions -> normalize -> store Forecast -> derive Alert

Used by both triggers (POST /ingest and the `floodwatch fetch-forecasts`
console command). Failures are isolated per location; the only error that
escapes ingest() is a missing API key, raised before any location is touched.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, List, Optional
import json
import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from .alerts import derive_alert
from .normalizer import ForecastDraft, normalize_payload
from .schemas import IngestResult
from .settings import Settings
from .weather_clients import OpenWeatherClient, WeatherError

logger = logging.getLogger(__name__)


def _aware_utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ForecastIngestionService:
    """
    Drives the pipeline for all locations, sequentially.

    The client is built from settings unless one is injected (tests pass a
    client backed by a mock transport). `clock` returns an aware datetime.
    """

    def __init__(
        self,
        db: Session,
        settings: Settings,
        client: Optional[OpenWeatherClient] = None,
        clock: Callable[[], datetime] = _aware_utcnow,
    ):
        self.db = db
        self.settings = settings
        self.client = client
        self.clock = clock

    def _build_client(self, api_key: str) -> OpenWeatherClient:
        return OpenWeatherClient(
            api_key,
            base_url=self.settings.openweather_base_url,
            timeout_s=self.settings.http_timeout_s,
        )

    async def ingest(self) -> List[IngestResult]:
        """
        Fetch, store and derive alerts for every location.

        Raises:
            MissingAPIKeyError: before any location is processed.
        """
        api_key = self.settings.require_openweather_api_key()
        client = self.client or self._build_client(api_key)

        locations = self.db.scalars(select(models.Location).order_by(models.Location.id)).all()
        logger.info("Ingesting forecasts for %d location(s)", len(locations))

        results: List[IngestResult] = []
        for location in locations:
            result = await self._ingest_location(client, location)
            if result.status == "ok":
                logger.info(
                    "Location %s: stored forecast %s; alerts created %s",
                    result.location_id, result.forecast_id, result.alerts_created,
                )
            else:
                logger.warning("Location %s: %s", result.location_id, result.message)
            results.append(result)

        return results

    async def _ingest_location(self, client: OpenWeatherClient, location: models.Location) -> IngestResult:
        location_id = location.id
        try:
            try:
                payload = await client.current_conditions(location.latitude, location.longitude)
            except WeatherError as e:
                return IngestResult(location_id=location_id, status="error", message=str(e))

            now = self.clock()
            draft = normalize_payload(payload, location, now=now)

            try:
                forecast = self._store_forecast(draft)
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.exception("Failed to store forecast for location %s", location_id)
                return IngestResult(location_id=location_id, status="error", message=f"Failed to store forecast: {e}")

            forecast_id = forecast.id
            alerts_created = 0
            try:
                alert = derive_alert(self.db, location, forecast, now=now.astimezone(timezone.utc).replace(tzinfo=None))
                if alert is not None:
                    alerts_created = 1
            except Exception:
                # The forecast is already committed and stays.
                self.db.rollback()
                logger.exception("Alert derivation failed for location %s", location_id)

            return IngestResult(
                location_id=location_id,
                status="ok",
                forecast_id=forecast_id,
                alerts_created=alerts_created,
            )
        except Exception as e:
            self.db.rollback()
            logger.exception("Ingestion failed for location %s", location_id)
            return IngestResult(location_id=location_id, status="error", message=str(e) or e.__class__.__name__)

    def _store_forecast(self, draft: ForecastDraft) -> models.Forecast:
        forecast = models.Forecast(
            location_id=draft.location_id,
            observed_at=draft.observed_at.astimezone(timezone.utc).replace(tzinfo=None),
            temp_c=draft.temp_c,
            feels_like_c=draft.feels_like_c,
            humidity=draft.humidity,
            wind_ms=draft.wind_ms,
            rain_mm=draft.rain_mm,
            summary=draft.summary,
            raw_json=json.dumps(draft.raw),
        )
        self.db.add(forecast)
        self.db.commit()
        self.db.refresh(forecast)
        return forecast
