"""
Unit tests for the rainfall alert rules and deduplication.
"""
from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from floodwatch import models
from floodwatch.alerts import derive_alert, classify_rainfall, find_active_alert


NOW = datetime(2026, 1, 5, 8, 0)


def _forecast(db, location, rain_mm):
    forecast = models.Forecast(location_id=location.id, observed_at=NOW, rain_mm=rain_mm, raw_json="{}")
    db.add(forecast)
    db.commit()
    db.refresh(forecast)
    return forecast


def _alerts(db):
    return list(db.scalars(select(models.Alert).order_by(models.Alert.id)))


@pytest.mark.unit
class TestClassifyRainfall:

    @pytest.mark.parametrize("rain_mm,level,rule_ref", [
        (25.0, "watch", "rain>=25mm"),
        (39.99, "watch", "rain>=25mm"),
        (40.0, "warning", "rain>=40mm"),
        (59.9, "warning", "rain>=40mm"),
        (60.0, "emergency", "rain>=60mm"),
        (250.0, "emergency", "rain>=60mm"),
    ])
    def test_tiers(self, rain_mm, level, rule_ref):
        rule = classify_rainfall(rain_mm)
        assert rule.level == level
        assert rule.rule_ref == rule_ref

    @pytest.mark.parametrize("rain_mm", [None, 0.0, 0.1, 24.99])
    def test_below_threshold(self, rain_mm):
        assert classify_rainfall(rain_mm) is None


@pytest.mark.unit
class TestDeriveAlert:

    def test_no_alert_below_threshold(self, test_db, make_location):
        location = make_location()
        forecast = _forecast(test_db, location, 10.0)

        assert derive_alert(test_db, location, forecast, now=NOW) is None
        assert _alerts(test_db) == []

    def test_creates_warning(self, test_db, make_location):
        location = make_location(name="Mwanza")
        forecast = _forecast(test_db, location, 45.0)

        alert = derive_alert(test_db, location, forecast, now=NOW)

        assert alert is not None
        assert alert.location_id == location.id
        assert alert.type == "flood"
        assert alert.level == "warning"
        assert alert.rule_ref == "rain>=40mm"
        assert alert.title == "Warning alert for Mwanza"
        assert alert.message == "Heavy rainfall detected: 45.0 mm in the last hour."
        assert alert.source == "openweather"
        assert alert.starts_at == NOW
        assert alert.ends_at == NOW + timedelta(hours=6)

    def test_message_formats_one_decimal(self, test_db, make_location):
        location = make_location()
        alert = derive_alert(test_db, location, _forecast(test_db, location, 61.26), now=NOW)
        assert alert.message == "Heavy rainfall detected: 61.3 mm in the last hour."
        assert alert.title.startswith("Emergency alert for ")

    def test_active_alert_of_same_level_blocks(self, test_db, make_location):
        location = make_location()
        first = derive_alert(test_db, location, _forecast(test_db, location, 45.0), now=NOW)
        second = derive_alert(
            test_db, location, _forecast(test_db, location, 46.0), now=NOW + timedelta(minutes=1)
        )

        assert first is not None
        assert second is None
        assert len(_alerts(test_db)) == 1

    def test_open_ended_alert_blocks(self, test_db, make_location):
        location = make_location()
        test_db.add(models.Alert(
            location_id=location.id, level="watch", type="flood", title="manual",
            starts_at=NOW - timedelta(days=3), ends_at=None, source="system",
        ))
        test_db.commit()

        assert derive_alert(test_db, location, _forecast(test_db, location, 30.0), now=NOW) is None

    def test_alert_ending_exactly_now_is_still_active(self, test_db, make_location):
        location = make_location()
        test_db.add(models.Alert(
            location_id=location.id, level="watch", type="flood", title="old",
            starts_at=NOW - timedelta(hours=6), ends_at=NOW,
        ))
        test_db.commit()

        assert find_active_alert(test_db, location.id, "flood", "watch", NOW) is not None
        assert derive_alert(test_db, location, _forecast(test_db, location, 30.0), now=NOW) is None

    def test_expired_alert_does_not_block(self, test_db, make_location):
        location = make_location()
        derive_alert(test_db, location, _forecast(test_db, location, 30.0), now=NOW)

        later = NOW + timedelta(hours=6, seconds=1)
        again = derive_alert(test_db, location, _forecast(test_db, location, 30.0), now=later)

        assert again is not None
        assert len(_alerts(test_db)) == 2

    def test_other_type_does_not_block(self, test_db, make_location):
        location = make_location()
        test_db.add(models.Alert(
            location_id=location.id, level="warning", type="storm", title="wind",
            starts_at=NOW, ends_at=None,
        ))
        test_db.commit()

        assert derive_alert(test_db, location, _forecast(test_db, location, 45.0), now=NOW) is not None

    def test_higher_tier_coexists_with_active_lower_tier(self, test_db, make_location):
        location = make_location()
        warning = derive_alert(test_db, location, _forecast(test_db, location, 45.0), now=NOW)
        emergency = derive_alert(
            test_db, location, _forecast(test_db, location, 62.0), now=NOW + timedelta(minutes=10)
        )

        assert warning.level == "warning"
        assert emergency.level == "emergency"
        assert [a.level for a in _alerts(test_db)] == ["warning", "emergency"]

    def test_dedup_is_per_location(self, test_db, make_location):
        a = make_location()
        b = make_location()

        assert derive_alert(test_db, a, _forecast(test_db, a, 45.0), now=NOW) is not None
        assert derive_alert(test_db, b, _forecast(test_db, b, 45.0), now=NOW) is not None
