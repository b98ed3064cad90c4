# src/fleet_telemetry/samples.py
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import NewType

# Normalized identity key, only ever used for cross-source correlation.
# The raw label on the sample is what gets displayed.
CanonicalVehicleId = NewType("CanonicalVehicleId", str)


class Ignition(str, Enum):
    ON = "On"
    OFF = "Off"
    UNKNOWN = "Unknown"


class VehicleStatus(str, Enum):
    RUNNING = "Running"
    IDLE = "Idle"
    STOPPED = "Stopped"
    OVERSPEEDING = "Overspeeding"
    NO_DATA = "NoData"


@dataclass(frozen=True)
class VehicleSample:
    """One observation of one vehicle at one instant."""

    vehicle_id: str
    lat: float
    lng: float
    speed_kmh: float = 0.0
    ignition: Ignition = Ignition.UNKNOWN
    raw_status_text: str | None = None
    timestamp: datetime | None = None
    driver: str | None = None
    address: str | None = None
    idle_minutes: float | None = None  # provider-reported
    no_data: bool = False  # provider's own "no data" flag
