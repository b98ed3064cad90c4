"""The one status policy every view uses.

Rules are a priority cascade; the first match wins:

1. no sample, a stale sample, or a provider "no data" flag -> NO_DATA
2. speed above the speed limit                               -> OVERSPEEDING
3. speed above the movement threshold                        -> RUNNING
4. stationary, ignition on, idle for at least the threshold  -> IDLE
5. stationary, ignition off                                  -> STOPPED
6. anything else                                             -> IDLE
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Mapping

from fleet_telemetry.identity import canonicalize
from fleet_telemetry.samples import Ignition, VehicleSample, VehicleStatus

DEFAULT_SPEED_LIMIT_KMH = 60.0
DEFAULT_IDLE_THRESHOLD_MINUTES = 30.0
DEFAULT_MOVEMENT_THRESHOLD_KMH = 2.0
DEFAULT_STALENESS = timedelta(minutes=10)


def classify(
    sample: VehicleSample | None,
    speed_limit: float,
    idle_threshold_minutes: float,
    *,
    now: datetime | None = None,
    idle_minutes: float | None = None,
    movement_threshold: float = DEFAULT_MOVEMENT_THRESHOLD_KMH,
    staleness: timedelta = DEFAULT_STALENESS,
) -> VehicleStatus:
    """Classify a vehicle's latest sample.

    ``idle_minutes`` is how long the vehicle has been stationary with the
    ignition on; when omitted the provider-reported value on the sample is
    used. A sample without a timestamp is never considered stale.
    """
    if sample is None or sample.no_data:
        return VehicleStatus.NO_DATA
    if sample.timestamp is not None:
        now = now or datetime.now(timezone.utc)
        if now - sample.timestamp > staleness:
            return VehicleStatus.NO_DATA

    speed = sample.speed_kmh
    if speed > speed_limit:
        return VehicleStatus.OVERSPEEDING
    if speed > movement_threshold:
        return VehicleStatus.RUNNING

    if idle_minutes is None:
        idle_minutes = sample.idle_minutes
    if (
        speed == 0
        and sample.ignition is Ignition.ON
        and idle_minutes is not None
        and idle_minutes >= idle_threshold_minutes
    ):
        return VehicleStatus.IDLE
    if speed == 0 and sample.ignition is Ignition.OFF:
        return VehicleStatus.STOPPED
    return VehicleStatus.IDLE


@dataclass(frozen=True)
class ClassifierPolicy:
    """Classification parameters, with per-vehicle speed limits."""

    speed_limit_kmh: float = DEFAULT_SPEED_LIMIT_KMH
    idle_threshold_minutes: float = DEFAULT_IDLE_THRESHOLD_MINUTES
    movement_threshold_kmh: float = DEFAULT_MOVEMENT_THRESHOLD_KMH
    staleness: timedelta = DEFAULT_STALENESS
    # Keyed by canonical vehicle id
    speed_limits: Mapping[str, float] = field(default_factory=dict)

    def speed_limit_for(self, vehicle_id: str) -> float:
        return self.speed_limits.get(canonicalize(vehicle_id), self.speed_limit_kmh)

    def classify(
        self,
        sample: VehicleSample | None,
        *,
        now: datetime | None = None,
        idle_minutes: float | None = None,
    ) -> VehicleStatus:
        limit = (
            self.speed_limit_for(sample.vehicle_id)
            if sample is not None
            else self.speed_limit_kmh
        )
        return classify(
            sample,
            limit,
            self.idle_threshold_minutes,
            now=now,
            idle_minutes=idle_minutes,
            movement_threshold=self.movement_threshold_kmh,
            staleness=self.staleness,
        )
