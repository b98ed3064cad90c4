from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from fleet_telemetry.config import Settings
from fleet_telemetry.engine import TelemetryEngine
from fleet_telemetry.exceptions import ConfigurationError, PayloadRejected
from fleet_telemetry.history import HistoryClient
from fleet_telemetry.samples import VehicleStatus
from fleet_telemetry.status import ClassifierPolicy
from fleet_telemetry.track import Track

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

SAMPLE_ROSTER_RESPONSE = {
    "data": [
        {
            "vehicleNo": "UP16KT1737",
            "lat": 28.6312,
            "lng": 77.2167,
            "speed": 85,
            "ignitionStatus": "ON",
            "lastComunicationTime": "2026-03-01T11:59:00Z",
        },
        {
            "vehicleNo": "UP-16-KT-1738",
            "lat": 28.71,
            "lng": 77.05,
            "speed": 0,
            "ignitionStatus": "OFF",
            "lastComunicationTime": "2026-03-01T11:58:00Z",
        },
        {
            "vehicleNo": "DL1PC0001",
            "lat": 28.55,
            "lng": 77.10,
            "speed": 30,
            "lastComunicationTime": "2026-03-01T10:00:00Z",
        },
        {"vehicleNo": "BROKEN", "lat": None, "lng": 77.0},
    ]
}


@pytest.fixture
def engine():
    e = TelemetryEngine()
    e.ingest_live(SAMPLE_ROSTER_RESPONSE, source="live_roster", now=NOW)
    return e


def test_ingest_live(engine):
    assert len(engine.live) == 3
    assert engine.rejected_total == 1
    assert engine.health["live_roster"].last_success_at == NOW


def test_get_live_vehicles_classifies_with_one_policy(engine):
    vehicles = engine.get_live_vehicles(NOW)
    assert set(vehicles) == {"UP16KT1737", "UP16KT1738", "DL1PC0001"}
    assert vehicles["UP16KT1737"].status is VehicleStatus.OVERSPEEDING
    assert vehicles["UP16KT1738"].status is VehicleStatus.STOPPED
    # Two hours without a report
    assert vehicles["DL1PC0001"].status is VehicleStatus.NO_DATA
    assert vehicles["UP16KT1738"].sample.vehicle_id == "UP-16-KT-1738"
    assert not vehicles["UP16KT1737"].stale


def test_live_vehicles_flag_stale_source(engine):
    later = NOW + timedelta(minutes=5)
    vehicle = engine.get_live_vehicles(later)["UP16KT1737"]
    assert vehicle.stale
    # Last data is kept
    assert vehicle.sample.speed_kmh == 85


def test_idle_time_tracked_across_polls():
    engine = TelemetryEngine()
    record = {
        "vehicleNo": "UP16KT1737",
        "lat": 28.6,
        "lng": 77.2,
        "speed": 0,
        "ignitionStatus": "ON",
    }
    for minutes in (0, 5, 31):
        engine.ingest_live([record], source="live_roster", now=NOW + timedelta(minutes=minutes))
    vehicle = engine.get_live_vehicles(NOW + timedelta(minutes=31))["UP16KT1737"]
    assert vehicle.status is VehicleStatus.IDLE


def test_find_live_vehicle(engine):
    vehicle = engine.find_live_vehicle("up 16 kt 1737", NOW)
    assert vehicle.canonical_id == "UP16KT1737"
    assert vehicle.status is VehicleStatus.OVERSPEEDING
    assert engine.find_live_vehicle("MH12AB9999", NOW) is None


def test_record_failure_keeps_vehicles(engine):
    engine.record_failure("live_roster", RuntimeError("upstream down"))
    assert len(engine.get_live_vehicles(NOW)) == 3
    assert engine.health["live_roster"].consecutive_failures == 1


def test_ingest_summary():
    engine = TelemetryEngine()
    payload = {"status": True, "data": [{"vehicle_no": "UP16KT1737", "total_trip": 3}]}
    snapshot = engine.ingest_summary(payload, source="collection_summary", now=NOW)
    assert engine.get_summary("collection_summary") is snapshot
    assert engine.get_summary("weighbridge_summary") is None

    with pytest.raises(PayloadRejected):
        engine.ingest_summary({"status": False}, source="collection_summary")
    assert engine.get_summary("collection_summary") is snapshot


def test_match(engine):
    assert engine.match("UP16KT1737", "UP16KT1737X")
    assert not engine.match("AB", "ABCDEFG")


def test_build_track_from_records(engine):
    records = [
        {"lat": 28.61, "lng": 77.2, "deviceTime": 1772344860},
        {"lat": 28.60, "lng": 77.2, "deviceTime": 1772344800},
        {"lat": 28.60, "lng": 77.2},
    ]
    track = engine.build_track(records, "UP16KT1737")
    assert track.point_count == 2
    assert track.distance_km > 1.0

    window_end = datetime.fromtimestamp(1772344830, tz=timezone.utc)
    clipped = engine.build_track(
        records,
        "UP16KT1737",
        start=window_end - timedelta(hours=1),
        end=window_end,
    )
    assert clipped.point_count == 1


async def test_get_track_requires_history():
    engine = TelemetryEngine()
    with pytest.raises(ConfigurationError):
        await engine.get_track("UP16KT1737", NOW - timedelta(hours=1), NOW)


async def test_get_track_rejects_inverted_window():
    engine = TelemetryEngine(history=AsyncMock(spec=HistoryClient))
    with pytest.raises(ValueError):
        await engine.get_track("UP16KT1737", NOW, NOW - timedelta(hours=1))


async def test_get_track_delegates_to_history():
    history = AsyncMock(spec=HistoryClient)
    history.get_track.return_value = Track(vehicle_id="UP16KT1737", window=None)
    engine = TelemetryEngine(history=history)
    track = await engine.get_track("UP16KT1737", NOW - timedelta(hours=1), NOW)
    assert track.is_empty
    vehicle_id, window = history.get_track.await_args.args
    assert vehicle_id == "UP16KT1737"
    assert window.end == NOW


def test_from_settings(monkeypatch, tmp_path):
    aliases = tmp_path / "aliases.json"
    aliases.write_text('{"vehicle_id": ["truckCode"]}')
    monkeypatch.setenv("SPEED_LIMIT_KMH", "50")
    monkeypatch.setenv("SPEED_LIMIT_OVERRIDES", '{"up-16 kt 1737": 40}')
    monkeypatch.setenv("ALIAS_CONFIG_PATH", str(aliases))
    monkeypatch.setenv("HISTORY_API_URL", "https://fake.example.com/history")

    engine = TelemetryEngine.from_settings(Settings(), orchestrator=AsyncMock())
    assert isinstance(engine.policy, ClassifierPolicy)
    assert engine.policy.speed_limit_kmh == 50
    assert engine.policy.speed_limit_for("UP16KT1737") == 40
    assert engine.normalizer.aliases.vehicle_id == ["truckCode"]
    assert engine.history is not None
    assert engine.history.url == "https://fake.example.com/history"


def test_from_settings_without_history():
    engine = TelemetryEngine.from_settings(Settings())
    assert engine.history is None


def test_build_track_rejects_half_window(engine):
    records = [{"lat": 28.6, "lng": 77.2, "deviceTime": 1772344800}]
    with pytest.raises(ValueError):
        engine.build_track(records, "UP16KT1737", start=NOW)
    with pytest.raises(ValueError):
        engine.build_track(records, "UP16KT1737", end=NOW)


def test_ingest_live_rejected_payload(engine):
    success_at = engine.health["live_roster"].last_success_at
    with pytest.raises(PayloadRejected, match="Session expired"):
        engine.ingest_live(
            {"status": False, "message": "Session expired", "data": []},
            source="live_roster",
            now=NOW + timedelta(minutes=1),
        )
    assert engine.health["live_roster"].last_success_at == success_at
    assert len(engine.live) == 3


def test_future_sample_goes_stale(engine):
    record = {
        "vehicleNo": "MH12AB1234",
        "lat": 19.07,
        "lng": 72.87,
        "speed": 30,
        "lastComunicationTime": "2026-04-01T12:00:00Z",
    }
    engine.ingest_live([record], source="live_roster", now=NOW)
    later = NOW + timedelta(minutes=11)
    assert engine.get_live_vehicles(later)["MH12AB1234"].status is VehicleStatus.NO_DATA
