"""
Pytest configuration and shared fixtures.
"""
import os

# Keep the app module from creating a sqlite file in the working directory.
os.environ["DATABASE_URL"] = "sqlite://"

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from floodwatch.db import Base
from floodwatch import models
from floodwatch.settings import Settings
from floodwatch.weather_clients import OpenWeatherClient


@pytest.fixture(scope="function")
def test_db():
    """
    Create an in-memory SQLite database for testing.

    StaticPool keeps a single connection so the TestClient's worker threads
    see the same database as the test.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()

    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def test_settings():
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        openweather_api_key="test-key",
        openweather_base_url="https://weather.test/data/2.5/weather",
        ingest_secret=None,
        database_url="sqlite://",
    )


@pytest.fixture
def make_location(test_db):
    """Factory for persisted locations with unique coordinates."""
    counter = {"n": 0}

    def _make(name=None, timezone="Africa/Dar_es_Salaam", region=None):
        counter["n"] += 1
        n = counter["n"]
        location = models.Location(
            name=name or f"Town {n}",
            region=region,
            latitude=-6.0 - n / 10,
            longitude=39.0 + n / 10,
            timezone=timezone,
        )
        test_db.add(location)
        test_db.commit()
        test_db.refresh(location)
        return location

    return _make


@pytest.fixture
def make_client():
    """
    Build an OpenWeatherClient whose requests go to `handler`
    (an httpx.MockTransport handler) instead of the network.
    """
    def _make(handler, api_key="test-key"):
        return OpenWeatherClient(
            api_key,
            base_url="https://weather.test/data/2.5/weather",
            timeout_s=12.0,
            transport=httpx.MockTransport(handler),
        )

    return _make


def provider_payload(rain=None, dt=1767600000, wind=4.0, main="Clouds", clouds=40):
    """A realistic OpenWeather current-weather body."""
    payload = {
        "coord": {"lon": 39.2083, "lat": -6.7924},
        "weather": [{"id": 500, "main": main, "description": f"{main.lower()} over the bay", "icon": "10d"}],
        "main": {"temp": 29.4, "feels_like": 33.1, "pressure": 1009, "humidity": 78},
        "wind": {"speed": wind, "deg": 120},
        "clouds": {"all": clouds},
        "dt": dt,
        "timezone": 10800,
        "name": "Dar es Salaam",
    }
    if rain is not None:
        payload["rain"] = {"1h": rain}
    return payload
