"""Engine facade: the queryable surface over live and historical state."""

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

from fleet_telemetry import identity
from fleet_telemetry.client import FetchOrchestrator
from fleet_telemetry.exceptions import ConfigurationError
from fleet_telemetry.history import HistoryClient
from fleet_telemetry.normalizer import AliasConfig, NormalizedBatch, RecordNormalizer
from fleet_telemetry.samples import CanonicalVehicleId, VehicleSample, VehicleStatus
from fleet_telemetry.state import LiveEntry, LiveVehicleTable, SourceHealth
from fleet_telemetry.status import ClassifierPolicy
from fleet_telemetry.summaries import SummarySnapshot, check_accepted, parse_summary
from fleet_telemetry.track import TimeWindow, Track, build_track


@dataclass(frozen=True)
class LiveVehicle:
    canonical_id: CanonicalVehicleId
    sample: VehicleSample
    status: VehicleStatus
    source: str
    received_at: datetime
    stale: bool  # the source has not refreshed within its allowed age


class TelemetryEngine:
    def __init__(
        self,
        *,
        policy: ClassifierPolicy | None = None,
        normalizer: RecordNormalizer | None = None,
        history: HistoryClient | None = None,
        source_stale_after: timedelta = timedelta(seconds=120),
    ):
        self.policy = policy or ClassifierPolicy()
        self.normalizer = normalizer or RecordNormalizer()
        self.history = history
        self.source_stale_after = source_stale_after
        self.live = LiveVehicleTable()
        self.health: dict[str, SourceHealth] = defaultdict(SourceHealth)
        self.summaries: dict[str, SummarySnapshot] = {}

    @classmethod
    def from_settings(
        cls, settings, orchestrator: FetchOrchestrator | None = None
    ) -> "TelemetryEngine":
        """Wire an engine from Settings. Raises ConfigurationError."""
        aliases = (
            AliasConfig.load(settings.alias_config_path)
            if settings.alias_config_path
            else AliasConfig()
        )
        normalizer = RecordNormalizer(aliases, assume_tz=settings.provider_tz)
        policy = ClassifierPolicy(
            speed_limit_kmh=settings.speed_limit_kmh,
            idle_threshold_minutes=settings.idle_threshold_minutes,
            movement_threshold_kmh=settings.movement_threshold_kmh,
            staleness=settings.staleness,
            speed_limits=dict(settings.speed_limit_overrides),
        )
        history = None
        if settings.history_api_url and orchestrator is not None:
            history = HistoryClient(
                orchestrator,
                settings.history_api_url,
                normalizer,
                base_params=settings.history_params,
            )
        return cls(
            policy=policy,
            normalizer=normalizer,
            history=history,
            source_stale_after=timedelta(seconds=settings.source_stale_after_seconds),
        )

    @property
    def rejected_total(self) -> int:
        return sum(h.rejected_records for h in self.health.values())

    # ── Ingestion ────────────────────────────────────────────────────

    def ingest_live(
        self, payload: Any, source: str, now: datetime | None = None
    ) -> NormalizedBatch:
        """Normalize a live roster payload into the last-known table.

        Raises PayloadRejected on ``status: false``; the table is untouched.
        """
        check_accepted(payload)
        now = now or datetime.now(timezone.utc)
        records = self.normalizer.extract(payload)
        batch = self.normalizer.normalize_batch(records, mode="live", now=now)
        self.live.update(batch.samples, source=source, received_at=now)
        self.health[source].rejected_records += batch.rejected
        self.health[source].record_success(now)
        return batch

    def ingest_summary(
        self, payload: Any, source: str, now: datetime | None = None
    ) -> SummarySnapshot:
        now = now or datetime.now(timezone.utc)
        snapshot = parse_summary(payload, fetched_at=now)
        self.summaries[source] = snapshot
        self.health[source].rejected_records += snapshot.rejected
        self.health[source].record_success(now)
        return snapshot

    def record_failure(self, source: str, error: BaseException) -> None:
        self.health[source].record_failure(error)

    # ── Queries ──────────────────────────────────────────────────────

    def _live_vehicle(
        self, key: CanonicalVehicleId, entry: LiveEntry, now: datetime
    ) -> LiveVehicle:
        status = self.policy.classify(
            entry.sample, now=now, idle_minutes=entry.idle_minutes(now)
        )
        health = self.health.get(entry.source)
        stale = health is None or health.is_stale(now, self.source_stale_after)
        return LiveVehicle(
            canonical_id=key,
            sample=entry.sample,
            status=status,
            source=entry.source,
            received_at=entry.received_at,
            stale=stale,
        )

    def get_live_vehicles(
        self, now: datetime | None = None
    ) -> dict[CanonicalVehicleId, LiveVehicle]:
        """Snapshot of every known vehicle with its status at ``now``."""
        now = now or datetime.now(timezone.utc)
        return {
            key: self._live_vehicle(key, entry, now)
            for key, entry in self.live.snapshot().items()
        }

    def find_live_vehicle(
        self, label: str, now: datetime | None = None
    ) -> LiveVehicle | None:
        """Correlate an external vehicle label (e.g. a weighbridge ticket)
        with the live roster."""
        entry = self.live.find(label)
        if entry is None:
            return None
        now = now or datetime.now(timezone.utc)
        key = identity.canonicalize(entry.sample.vehicle_id)
        return self._live_vehicle(key, entry, now)

    def get_summary(self, source: str) -> SummarySnapshot | None:
        return self.summaries.get(source)

    async def get_track(self, vehicle_id: str, start: datetime, end: datetime) -> Track:
        """Fetch and build the historical track for a vehicle.

        Raises ValueError for an empty window, FetchExhausted when the
        history endpoint is unreachable.
        """
        window = TimeWindow(start, end)
        if self.history is None:
            raise ConfigurationError("No history endpoint configured")
        return await self.history.get_track(vehicle_id, window)

    def build_track(
        self,
        records: Iterable[Any],
        vehicle_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> Track:
        """Build a track from raw history records already in hand."""
        if (start is None) != (end is None):
            raise ValueError("Window needs both start and end, or neither")
        window = TimeWindow(start, end) if start is not None else None
        batch = self.normalizer.normalize_batch(
            records, mode="history", vehicle_id=vehicle_id
        )
        return build_track(batch.samples, window, vehicle_id=vehicle_id)

    def match(self, id_a: str, id_b: str) -> bool:
        return identity.match(id_a, id_b)
