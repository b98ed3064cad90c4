"""Historical track retrieval.

The history endpoint is inconsistent about how it wants the time window
encoded, so a fixed sequence of query strategies is tried until one
returns usable records.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from fleet_telemetry.client import FetchOrchestrator
from fleet_telemetry.exceptions import FetchExhausted
from fleet_telemetry.normalizer import NormalizedBatch, RecordNormalizer
from fleet_telemetry.track import TimeWindow, Track, build_track

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryStrategy:
    label: str
    window_params: Callable[[TimeWindow], dict[str, str]]


def _epoch_ms(ts: datetime) -> str:
    return str(int(ts.timestamp() * 1000))


def _epoch_s(ts: datetime) -> str:
    return str(int(ts.timestamp()))


STRATEGIES = (
    QueryStrategy(
        "utc-ms",
        lambda w: {"fromDateUTC": _epoch_ms(w.start), "toDateUTC": _epoch_ms(w.end)},
    ),
    QueryStrategy(
        "datetime-ms",
        lambda w: {
            "fromDateTimeUTC": _epoch_ms(w.start),
            "toDateTimeUTC": _epoch_ms(w.end),
        },
    ),
    QueryStrategy(
        "utc-sec",
        lambda w: {"fromDateUTC": _epoch_s(w.start), "toDateUTC": _epoch_s(w.end)},
    ),
    # Some deployments ignore the window entirely; the track builder still
    # clips the result to the requested window.
    QueryStrategy("latest", lambda w: {}),
)


class HistoryClient:
    def __init__(
        self,
        orchestrator: FetchOrchestrator,
        url: str,
        normalizer: RecordNormalizer,
        *,
        base_params: dict[str, str] | None = None,
        strategies: tuple[QueryStrategy, ...] = STRATEGIES,
    ):
        self.orchestrator = orchestrator
        self.url = url
        self.normalizer = normalizer
        self.base_params = dict(base_params or {})
        self.strategies = strategies

    def _normalize(self, payload: Any, vehicle_id: str) -> NormalizedBatch:
        records = self.normalizer.extract(payload)
        return self.normalizer.normalize_batch(
            records, mode="history", vehicle_id=vehicle_id
        )

    async def get_track(self, vehicle_id: str, window: TimeWindow) -> Track:
        """Fetch and build the track for one vehicle over a window.

        An empty Track means the endpoint answered but had nothing for the
        window. FetchExhausted means no strategy could be fetched at all.
        """
        last_error: FetchExhausted | None = None
        answered = False
        for strategy in self.strategies:
            params = {
                **self.base_params,
                "vehicleId": vehicle_id,
                **strategy.window_params(window),
            }
            try:
                payload = await self.orchestrator.fetch(self.url, params=params)
            except FetchExhausted as e:
                logger.warning(
                    "History fetch for %s failed (%s): %s",
                    vehicle_id,
                    strategy.label,
                    e,
                )
                last_error = e
                continue

            answered = True
            batch = self._normalize(payload, vehicle_id)
            track = build_track(batch.samples, window, vehicle_id=vehicle_id)
            if batch.rejected:
                logger.info(
                    "History for %s (%s): %d rejected of %d records",
                    vehicle_id,
                    strategy.label,
                    batch.rejected,
                    batch.total,
                )
            if not track.is_empty:
                logger.info(
                    "History for %s (%s): %d points, %.2f km",
                    vehicle_id,
                    strategy.label,
                    track.point_count,
                    track.distance_km,
                )
                return track
            logger.debug("No history records for %s (%s)", vehicle_id, strategy.label)

        if not answered and last_error is not None:
            raise last_error
        return build_track([], window, vehicle_id=vehicle_id)
