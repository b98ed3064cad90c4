"""In-memory last-known sample per vehicle.

This is the engine's only shared mutable state. Entries are immutable and
replaced whole under a lock, so readers never see a half-updated sample.
"""

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Iterable

from fleet_telemetry import identity
from fleet_telemetry.samples import CanonicalVehicleId, Ignition, VehicleSample

logger = logging.getLogger(__name__)

# Samples dated further than this past their observation time are re-stamped
# with the observation time.
MAX_CLOCK_SKEW = timedelta(minutes=5)


@dataclass(frozen=True)
class LiveEntry:
    sample: VehicleSample
    source: str
    received_at: datetime
    # When the vehicle was first seen stationary with ignition on, for the
    # current uninterrupted idle stretch.
    idle_since: datetime | None = None

    def idle_minutes(self, now: datetime) -> float | None:
        if self.idle_since is None:
            return None
        return max(0.0, (now - self.idle_since).total_seconds() / 60)


def _is_idling(sample: VehicleSample) -> bool:
    return sample.speed_kmh == 0 and sample.ignition is Ignition.ON


class LiveVehicleTable:
    def __init__(self):
        self._lock = threading.Lock()
        self._entries: dict[CanonicalVehicleId, LiveEntry] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def update(
        self,
        samples: Iterable[VehicleSample],
        source: str,
        received_at: datetime | None = None,
    ) -> int:
        """Store samples in order; returns how many entries were replaced.

        A sample older than the stored one for the same vehicle is ignored.
        Timestamps more than MAX_CLOCK_SKEW ahead of ``received_at`` are
        replaced by ``received_at`` so a bad device clock cannot pin an entry.
        """
        received_at = received_at or datetime.now(timezone.utc)
        updated = 0
        for sample in samples:
            key = identity.canonicalize(sample.vehicle_id)
            if not key:
                continue
            if (
                sample.timestamp is not None
                and sample.timestamp > received_at + MAX_CLOCK_SKEW
            ):
                logger.debug(
                    "Future timestamp %s for %s, using %s",
                    sample.timestamp.isoformat(),
                    key,
                    received_at.isoformat(),
                )
                sample = replace(sample, timestamp=received_at)
            with self._lock:
                previous = self._entries.get(key)
                if (
                    previous is not None
                    and previous.sample.timestamp is not None
                    and sample.timestamp is not None
                    and sample.timestamp < previous.sample.timestamp
                ):
                    continue

                idle_since = None
                if _is_idling(sample):
                    if previous is not None and previous.idle_since is not None:
                        idle_since = previous.idle_since
                    else:
                        idle_since = sample.timestamp or received_at

                self._entries[key] = LiveEntry(
                    sample=sample,
                    source=source,
                    received_at=received_at,
                    idle_since=idle_since,
                )
                updated += 1
        return updated

    def get(self, vehicle_id: str) -> LiveEntry | None:
        with self._lock:
            return self._entries.get(identity.canonicalize(vehicle_id))

    def find(self, raw_id: str) -> LiveEntry | None:
        """Look a vehicle up by any spelling of its id, fuzzy if needed."""
        with self._lock:
            entries = dict(self._entries)
        key = identity.find_match(raw_id, entries.keys())
        return entries[key] if key is not None else None

    def snapshot(self) -> dict[CanonicalVehicleId, LiveEntry]:
        with self._lock:
            return dict(self._entries)


@dataclass
class SourceHealth:
    """Poll outcome bookkeeping for one data source."""

    last_success_at: datetime | None = None
    last_error: str | None = None
    consecutive_failures: int = 0
    rejected_records: int = 0

    def record_success(self, now: datetime) -> None:
        self.last_success_at = now
        self.last_error = None
        self.consecutive_failures = 0

    def record_failure(self, error: BaseException) -> None:
        self.last_error = str(error) or type(error).__name__
        self.consecutive_failures += 1

    def is_stale(self, now: datetime, max_age: timedelta) -> bool:
        if self.last_success_at is None:
            return True
        return now - self.last_success_at > max_age
