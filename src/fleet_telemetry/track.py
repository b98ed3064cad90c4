"""Historical track assembly and distance derivation."""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Iterator

from fleet_telemetry.identity import canonicalize
from fleet_telemetry.samples import CanonicalVehicleId, VehicleSample

EARTH_RADIUS_KM = 6371.0088


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lng2 - lng1)
    a = (
        math.sin(dphi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


@dataclass(frozen=True)
class TimeWindow:
    """Half-open time window ``[start, end)``."""

    start: datetime
    end: datetime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError("Window start must be earlier than its end")

    def contains(self, ts: datetime) -> bool:
        return self.start <= ts < self.end


@dataclass(frozen=True)
class Track:
    """Ordered, deduplicated samples for one vehicle. Immutable.

    Playback is the consumer's concern: step through ``track[i]`` at
    whatever rate suits the display.
    """

    vehicle_id: CanonicalVehicleId
    window: TimeWindow | None
    points: tuple[VehicleSample, ...] = ()
    cumulative_km: tuple[float, ...] = ()

    def __len__(self) -> int:
        return len(self.points)

    def __getitem__(self, index: int) -> VehicleSample:
        return self.points[index]

    def __iter__(self) -> Iterator[VehicleSample]:
        return iter(self.points)

    @property
    def point_count(self) -> int:
        return len(self.points)

    @property
    def is_empty(self) -> bool:
        return not self.points

    @property
    def distance_km(self) -> float:
        return self.cumulative_km[-1] if self.cumulative_km else 0.0

    @property
    def duration(self) -> timedelta:
        if len(self.points) < 2:
            return timedelta(0)
        return self.points[-1].timestamp - self.points[0].timestamp

    @property
    def max_speed_kmh(self) -> float:
        return max((p.speed_kmh for p in self.points), default=0.0)

    @property
    def average_speed_kmh(self) -> float:
        hours = self.duration.total_seconds() / 3600
        return self.distance_km / hours if hours > 0 else 0.0

    def overspeed_points(self, speed_limit: float) -> list[int]:
        """Indices of points above the speed limit."""
        return [i for i, p in enumerate(self.points) if p.speed_kmh > speed_limit]


def build_track(
    samples: Iterable[VehicleSample],
    window: TimeWindow | None = None,
    vehicle_id: str | None = None,
) -> Track:
    """Build a Track from samples in any order.

    Samples without a timestamp or outside the window are dropped. When
    two samples share a timestamp the one appearing later in the input
    is kept.
    """
    by_ts: dict[datetime, VehicleSample] = {}
    for s in samples:
        if s.timestamp is None:
            continue
        if window is not None and not window.contains(s.timestamp):
            continue
        by_ts[s.timestamp] = s

    points = tuple(by_ts[ts] for ts in sorted(by_ts))

    cumulative = []
    total = 0.0
    for i, p in enumerate(points):
        if i:
            prev = points[i - 1]
            total += haversine_km(prev.lat, prev.lng, p.lat, p.lng)
        cumulative.append(total)

    if vehicle_id is None and points:
        vehicle_id = points[0].vehicle_id
    return Track(
        vehicle_id=canonicalize(vehicle_id),
        window=window,
        points=points,
        cumulative_km=tuple(cumulative),
    )
