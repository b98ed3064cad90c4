"""Turn arbitrary provider records into canonical VehicleSamples.

This is the only place raw upstream shapes are touched. Field names are
resolved through ordered alias lists (AliasConfig), which are
configuration data: a new provider spelling is a config change, not a
code change.
"""

import json
import logging
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone, tzinfo
from pathlib import Path
from typing import Any, Iterable, Literal, Mapping

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from fleet_telemetry import timestamps
from fleet_telemetry.coerce import coerce_float, coerce_str
from fleet_telemetry.exceptions import ConfigurationError, InvalidRecord
from fleet_telemetry.samples import Ignition, VehicleSample

logger = logging.getLogger(__name__)


class AliasConfig(BaseModel):
    """Ordered alias keys per semantic field. First usable key wins."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    vehicle_id: list[str] = [
        "vehicleNo",
        "vehicleNumber",
        "vehicle_number",
        "vehicle_no",
        "vehicleId",
        "regNo",
        "VID",
        "VEH_NAME",
    ]
    lat: list[str] = ["lat", "latitude", "Latitude", "latitude_value", "latitudeValue"]
    lng: list[str] = [
        "lng",
        "lon",
        "longitude",
        "Longitude",
        "longitude_value",
        "longitudeValue",
    ]
    speed: list[str] = ["speedKmph", "speed", "speedKMH", "Speed"]
    ignition: list[str] = ["ignitionStatus", "ignition", "Ignition"]
    status_text: list[str] = ["statusCode", "status", "vehicleStatus", "mode"]
    timestamp: list[str] = [
        "deviceTime",
        "timestamp",
        "gpsTime",
        "time",
        "serverTime",
        "_ts",
        "date",
        "dateSec",
        "lastComunicationTime",
        "updatedTime",
    ]
    driver: list[str] = ["driverName", "driver", "driver_name"]
    address: list[str] = ["address", "geoAddress", "location"]
    idle_minutes: list[str] = ["idleMinutes", "idleTime", "idle_minutes"]
    no_data: list[str] = ["noDataStatus", "noData"]
    record_containers: list[str] = [
        "data",
        "vehicleLocations",
        "history4Mobile",
        "totalRecordList",
        "track",
        "records",
        "locations",
        "date_wise_data",
        "day_wise_data",
        "result",
        "payload",
        "rows",
        "items",
    ]

    @field_validator("*")
    @classmethod
    def check_keys(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("alias list must not be empty")
        cleaned = []
        for key in v:
            if not isinstance(key, str) or not key.strip():
                raise ValueError(f"alias keys must be non-blank strings, got {key!r}")
            cleaned.append(key)
        if len(set(cleaned)) != len(cleaned):
            raise ValueError("alias list contains duplicates")
        return cleaned

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AliasConfig":
        """Build a config whose named fields replace the defaults."""
        try:
            return cls.model_validate(dict(data))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid alias configuration: {e}") from e

    @classmethod
    def load(cls, path: str | Path) -> "AliasConfig":
        try:
            data = json.loads(Path(path).read_text())
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Cannot read alias file {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Alias file {path} must hold a JSON object")
        return cls.from_mapping(data)

    def extended(self, field_name: str, keys: Iterable[str]) -> "AliasConfig":
        """Return a copy with extra keys appended to one field's list."""
        current = getattr(self, field_name)
        merged = current + [k for k in keys if k not in current]
        return self.from_mapping({**self.model_dump(), field_name: merged})


@dataclass
class NormalizedBatch:
    samples: list[VehicleSample] = field(default_factory=list)
    rejected: int = 0
    reasons: Counter = field(default_factory=Counter)

    @property
    def total(self) -> int:
        return len(self.samples) + self.rejected


_IGNITION_VALUES = {
    "ON": Ignition.ON,
    "1": Ignition.ON,
    "OFF": Ignition.OFF,
    "0": Ignition.OFF,
}


def _parse_ignition(value: Any) -> Ignition | None:
    if isinstance(value, bool):
        return Ignition.ON if value else Ignition.OFF
    if isinstance(value, (int, float)):
        value = str(int(value)) if value in (0, 1) else str(value)
    if not isinstance(value, str):
        return None
    return _IGNITION_VALUES.get(value.strip().upper())


def _parse_flag(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    number = coerce_float(value)
    if number is not None:
        return number == 1
    if isinstance(value, str) and value.strip():
        return value.strip().lower() in ("true", "yes", "y")
    return None


def _non_negative(value: Any) -> float | None:
    number = coerce_float(value)
    if number is None or number < 0:
        return None
    return number


def _latitude(value: Any) -> float | None:
    number = coerce_float(value)
    if number is None or not -90.0 <= number <= 90.0:
        return None
    return number


def _longitude(value: Any) -> float | None:
    number = coerce_float(value)
    if number is None or not -180.0 <= number <= 180.0:
        return None
    return number


def _first(raw: Mapping[str, Any], keys: list[str], parse) -> Any:
    """Return the first present, non-empty, parseable value among keys."""
    for key in keys:
        value = raw.get(key)
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        parsed = parse(value)
        if parsed is not None:
            return parsed
    return None


def extract_records(payload: Any, containers: Iterable[str]) -> list:
    """Find the record array inside a provider payload.

    A bare list is returned as-is. Otherwise container keys are searched
    in order, depth-first, so ``{"data": {"records": [...]}}`` works too.
    """
    containers = list(containers)
    if isinstance(payload, list):
        return payload
    if not isinstance(payload, dict):
        return []
    for key in containers:
        if key in payload:
            found = extract_records(payload[key], containers)
            if found:
                return found
    return []


class RecordNormalizer:
    def __init__(
        self,
        aliases: AliasConfig | None = None,
        assume_tz: tzinfo = timezone.utc,
    ):
        self.aliases = aliases or AliasConfig()
        self.assume_tz = assume_tz

    def normalize(self, raw: Any, vehicle_id: str | None = None) -> VehicleSample:
        """Convert one raw record to a sample without a timestamp.

        ``vehicle_id`` is used when the record carries none (per-vehicle
        history payloads). Raises InvalidRecord; never defaults coordinates.
        """
        if not isinstance(raw, Mapping):
            raise InvalidRecord("not a mapping", raw)
        a = self.aliases

        vid = _first(raw, a.vehicle_id, coerce_str) or vehicle_id
        if not vid:
            raise InvalidRecord("missing vehicle id", raw)

        lat = _first(raw, a.lat, _latitude)
        lng = _first(raw, a.lng, _longitude)
        if lat is None or lng is None:
            raise InvalidRecord("invalid coordinates", raw)

        speed = _first(raw, a.speed, _non_negative)
        ignition = _first(raw, a.ignition, _parse_ignition)

        return VehicleSample(
            vehicle_id=vid,
            lat=lat,
            lng=lng,
            speed_kmh=speed if speed is not None else 0.0,
            ignition=ignition or Ignition.UNKNOWN,
            raw_status_text=_first(raw, a.status_text, coerce_str),
            driver=_first(raw, a.driver, coerce_str),
            address=_first(raw, a.address, coerce_str),
            idle_minutes=_first(raw, a.idle_minutes, _non_negative),
            no_data=bool(_first(raw, a.no_data, _parse_flag)),
        )

    def normalize_live(self, raw: Any, now: datetime) -> VehicleSample:
        sample = self.normalize(raw)
        ts = timestamps.resolve_live(raw, self.aliases.timestamp, now, self.assume_tz)
        return _stamp(sample, ts)

    def normalize_history(
        self, raw: Any, vehicle_id: str | None = None
    ) -> VehicleSample:
        sample = self.normalize(raw, vehicle_id=vehicle_id)
        ts = timestamps.resolve(raw, self.aliases.timestamp, self.assume_tz)
        if ts is None:
            raise InvalidRecord("unresolvable timestamp", raw)
        return _stamp(sample, ts)

    def normalize_batch(
        self,
        records: Iterable[Any],
        mode: Literal["live", "history"] = "live",
        now: datetime | None = None,
        vehicle_id: str | None = None,
    ) -> NormalizedBatch:
        """Normalize many records; invalid ones are counted, never raised.

        Output order follows input order.
        """
        if mode not in ("live", "history"):
            raise ValueError(f"Unknown normalization mode: {mode}")
        now = now or datetime.now(timezone.utc)
        batch = NormalizedBatch()
        for raw in records:
            try:
                if mode == "live":
                    sample = self.normalize_live(raw, now)
                else:
                    sample = self.normalize_history(raw, vehicle_id=vehicle_id)
            except InvalidRecord as e:
                batch.rejected += 1
                batch.reasons[e.reason] += 1
                logger.debug("Rejected record (%s): %r", e.reason, raw)
                continue
            batch.samples.append(sample)
        return batch

    def extract(self, payload: Any) -> list:
        return extract_records(payload, self.aliases.record_containers)


def _stamp(sample: VehicleSample, ts: datetime) -> VehicleSample:
    return replace(sample, timestamp=ts)
