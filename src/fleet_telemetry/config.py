import json
import os
from datetime import timedelta, timezone

from fleet_telemetry.client import validate_templates
from fleet_telemetry.exceptions import ConfigurationError
from fleet_telemetry.identity import canonicalize
from fleet_telemetry.source_config import SourceConfig, build_sources


def _env_number(name: str, default: str, cast=float, minimum: float | None = 0):
    raw = os.environ.get(name, default)
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None
    if minimum is not None and value < minimum:
        raise ConfigurationError(f"{name} must be at least {minimum}, got {raw!r}")
    return value


def _env_bool(name: str, default: str = "true") -> bool:
    return os.environ.get(name, default).lower() == "true"


def _env_list(name: str) -> list[str]:
    raw = os.environ.get(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_speed_limits(name: str) -> dict[str, float]:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a JSON object: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"{name} must be a JSON object")
    limits = {}
    for vehicle, limit in data.items():
        if isinstance(limit, bool) or not isinstance(limit, (int, float)) or limit <= 0:
            raise ConfigurationError(f"{name}: bad speed limit for {vehicle!r}")
        limits[canonicalize(vehicle)] = float(limit)
    return limits


class Settings:
    def __init__(self):
        self.log_level: str = os.environ.get("LOG_LEVEL", "INFO")

        # Classification policy
        self.speed_limit_kmh: float = _env_number("SPEED_LIMIT_KMH", "60")
        self.idle_threshold_minutes: float = _env_number("IDLE_THRESHOLD_MINUTES", "30")
        self.movement_threshold_kmh: float = _env_number("MOVEMENT_THRESHOLD_KMH", "2")
        self.staleness_minutes: float = _env_number("STALENESS_MINUTES", "10")
        self.speed_limit_overrides: dict[str, float] = _env_speed_limits(
            "SPEED_LIMIT_OVERRIDES"
        )

        # Normalization
        self.alias_config_path: str | None = os.environ.get("ALIAS_CONFIG_PATH") or None
        self.provider_utc_offset_minutes: int = _env_number(
            "PROVIDER_UTC_OFFSET_MINUTES", "0", int, minimum=None
        )

        # Fetching
        self.fetch_timeout: float = _env_number("FETCH_TIMEOUT", "10")
        self.fallback_templates: list[str] = validate_templates(
            _env_list("FALLBACK_TEMPLATES")
        )
        self.source_stale_after_seconds: int = _env_number(
            "SOURCE_STALE_AFTER_SECONDS", "120", int
        )

        # Sources
        self.live_roster_api_url: str = os.environ.get(
            "LIVE_ROSTER_API_URL",
            "https://api.vamosys.com/mobile/getGrpDataForTrustedClients"
            "?providerName=BLUEPLANET&fcode=VAM",
        )
        self.live_roster_poll_interval: int = _env_number(
            "LIVE_ROSTER_POLL_INTERVAL", os.environ.get("POLL_INTERVAL", "15"), int
        )
        self.live_roster_enabled: bool = _env_bool("SOURCE_LIVE_ROSTER_ENABLED")

        self.waste_api_url: str = os.environ.get(
            "WASTE_COLLECTION_API",
            "https://zigma.in/d2d/folders/waste_collected_summary_report/"
            "test_waste_collected_data_api.php",
        )
        self.waste_api_key: str = os.environ.get("WASTE_COLLECTION_KEY", "")
        self.summary_poll_interval: int = _env_number("SUMMARY_POLL_INTERVAL", "60", int)
        self.weighbridge_summary_enabled: bool = _env_bool(
            "SOURCE_WEIGHBRIDGE_SUMMARY_ENABLED"
        )
        self.collection_summary_enabled: bool = _env_bool(
            "SOURCE_COLLECTION_SUMMARY_ENABLED"
        )

        # History has no default endpoint; track lookups need it set.
        self.history_api_url: str = os.environ.get("HISTORY_API_URL", "")
        self.history_params: dict[str, str] = {
            "userId": os.environ.get("HISTORY_USER_ID", "BLUEPLANET"),
            "groupName": os.environ.get("HISTORY_GROUP_NAME", "BLUEPLANET:VAM"),
            "interval": os.environ.get("HISTORY_INTERVAL", "-1"),
        }

        if self.live_roster_poll_interval <= 0 or self.summary_poll_interval <= 0:
            raise ConfigurationError("Poll intervals must be positive")

    @property
    def staleness(self) -> timedelta:
        return timedelta(minutes=self.staleness_minutes)

    @property
    def provider_tz(self) -> timezone:
        return timezone(timedelta(minutes=self.provider_utc_offset_minutes))


settings = Settings()

SOURCES: dict[str, SourceConfig] = build_sources(settings)
