from datetime import timedelta

import pytest

from fleet_telemetry.config import SOURCES, Settings
from fleet_telemetry.exceptions import ConfigurationError
from fleet_telemetry.source_config import build_sources


def test_default_settings():
    s = Settings()
    assert s.log_level == "INFO"
    assert s.speed_limit_kmh == 60
    assert s.idle_threshold_minutes == 30
    assert s.movement_threshold_kmh == 2
    assert s.staleness == timedelta(minutes=10)
    assert s.speed_limit_overrides == {}
    assert s.fallback_templates == []
    assert s.live_roster_poll_interval == 15
    assert s.summary_poll_interval == 60
    assert "vamosys" in s.live_roster_api_url
    assert "zigma.in" in s.waste_api_url
    assert s.history_params == {
        "userId": "BLUEPLANET",
        "groupName": "BLUEPLANET:VAM",
        "interval": "-1",
    }


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("SPEED_LIMIT_KMH", "45.5")
    monkeypatch.setenv("IDLE_THRESHOLD_MINUTES", "20")
    monkeypatch.setenv("LIVE_ROSTER_POLL_INTERVAL", "10")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv(
        "FALLBACK_TEMPLATES",
        "https://proxy-one.example/?{url}, https://proxy-two.example/raw?url=",
    )
    s = Settings()
    assert s.speed_limit_kmh == 45.5
    assert s.idle_threshold_minutes == 20
    assert s.live_roster_poll_interval == 10
    assert s.log_level == "DEBUG"
    assert s.fallback_templates == [
        "https://proxy-one.example/?{url}",
        "https://proxy-two.example/raw?url=",
    ]


def test_poll_interval_fallback(monkeypatch):
    monkeypatch.delenv("LIVE_ROSTER_POLL_INTERVAL", raising=False)
    monkeypatch.setenv("POLL_INTERVAL", "25")
    assert Settings().live_roster_poll_interval == 25


def test_speed_limit_overrides_are_canonical(monkeypatch):
    monkeypatch.setenv("SPEED_LIMIT_OVERRIDES", '{"up-16 kt 1737": 40, "DL1PC0001": 50.5}')
    s = Settings()
    assert s.speed_limit_overrides == {"UP16KT1737": 40.0, "DL1PC0001": 50.5}


def test_provider_timezone(monkeypatch):
    monkeypatch.setenv("PROVIDER_UTC_OFFSET_MINUTES", "330")
    assert Settings().provider_tz.utcoffset(None) == timedelta(hours=5, minutes=30)
    monkeypatch.setenv("PROVIDER_UTC_OFFSET_MINUTES", "-60")
    assert Settings().provider_tz.utcoffset(None) == timedelta(hours=-1)


@pytest.mark.parametrize(
    "name, value",
    [
        ("SPEED_LIMIT_KMH", "fast"),
        ("SPEED_LIMIT_KMH", "-1"),
        ("LIVE_ROSTER_POLL_INTERVAL", "0"),
        ("SPEED_LIMIT_OVERRIDES", "[40]"),
        ("SPEED_LIMIT_OVERRIDES", '{"UP16KT1737": "fast"}'),
        ("SPEED_LIMIT_OVERRIDES", "{not json"),
        ("FALLBACK_TEMPLATES", "not-a-url"),
    ],
)
def test_bad_settings_are_configuration_errors(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ConfigurationError):
        Settings()


def test_sources_registry_has_required_sources():
    assert set(SOURCES) == {"live_roster", "weighbridge_summary", "collection_summary"}


def test_source_config_has_required_fields():
    for name, src in SOURCES.items():
        assert src.name == name
        assert src.display_name
        assert src.api_url
        assert src.poll_interval > 0
        assert src.kind in ("roster", "summary")


def test_summary_sources_use_report_actions():
    assert SOURCES["weighbridge_summary"].params["action"] == "date_wise_data"
    assert SOURCES["collection_summary"].params["action"] == "day_wise_data"
    assert SOURCES["collection_summary"].date_range is True
    assert SOURCES["live_roster"].date_range is False


def test_build_sources_uses_settings(monkeypatch):
    monkeypatch.setenv("WASTE_COLLECTION_KEY", "secret")
    monkeypatch.setenv("SOURCE_COLLECTION_SUMMARY_ENABLED", "false")
    s = Settings()
    sources = build_sources(s)
    assert sources["live_roster"].api_url == s.live_roster_api_url
    assert sources["live_roster"].poll_interval == s.live_roster_poll_interval
    assert sources["weighbridge_summary"].params["key"] == "secret"
    assert sources["collection_summary"].enabled is False
    assert sources["weighbridge_summary"].enabled is True
