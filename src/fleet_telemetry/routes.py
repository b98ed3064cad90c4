# src/fleet_telemetry/routes.py
import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from fleet_telemetry import identity
from fleet_telemetry.engine import TelemetryEngine
from fleet_telemetry.exceptions import ConfigurationError, FetchExhausted
from fleet_telemetry.models import (
    FeatureCollection,
    LineStringGeometry,
    MatchResponse,
    SourceStatus,
    SummaryResponse,
    TrackFeature,
    TrackProperties,
)
from fleet_telemetry.snapshot import build_live_snapshot
from fleet_telemetry.track import Track

log = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_TRACK_HOURS = 6


def _engine(request: Request) -> TelemetryEngine:
    return request.app.state.engine


def _aware(ts: datetime) -> datetime:
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def _track_to_feature(track: Track, start: datetime, end: datetime) -> TrackFeature:
    return TrackFeature(
        geometry=LineStringGeometry(coordinates=[[p.lng, p.lat] for p in track]),
        properties=TrackProperties(
            vehicle_id=track.vehicle_id,
            start=start.isoformat(),
            end=end.isoformat(),
            timestamps=[p.timestamp.isoformat() for p in track],
            speeds=[p.speed_kmh for p in track],
            cumulative_km=[round(km, 4) for km in track.cumulative_km],
            point_count=track.point_count,
            distance_km=round(track.distance_km, 4),
            duration_seconds=track.duration.total_seconds(),
            max_speed_kmh=track.max_speed_kmh,
            has_records=not track.is_empty,
        ),
    )


@router.get(
    "/vehicles",
    response_model=FeatureCollection,
    summary="Current vehicle positions",
    description="Returns the last known sample for every vehicle as a GeoJSON "
    "FeatureCollection, classified at request time. Vehicles from a source that "
    "has stopped refreshing are kept and flagged stale.",
    tags=["vehicles"],
)
def get_vehicles(
    request: Request,
    source: str | None = Query(
        None, description="Filter by data source (e.g. 'live_roster')"
    ),
):
    return JSONResponse(content=build_live_snapshot(_engine(request), source=source))


@router.get(
    "/vehicles/{vehicle_id}/track",
    response_model=TrackFeature,
    summary="Historical track",
    description="Returns the ordered, deduplicated track for one vehicle over "
    "[start, end) as a LineString feature with parallel timestamps. An empty "
    "track (has_records=false) means the provider had no records for the window.",
    tags=["vehicles"],
)
async def get_vehicle_track(
    request: Request,
    vehicle_id: str,
    start: datetime | None = Query(
        None, description="Start of window (ISO 8601). Default: 6 hours ago."
    ),
    end: datetime | None = Query(
        None, description="End of window (ISO 8601). Default: now."
    ),
):
    now = datetime.now(timezone.utc)
    end = _aware(end) if end else now
    start = _aware(start) if start else end - timedelta(hours=DEFAULT_TRACK_HOURS)
    try:
        track = await _engine(request).get_track(vehicle_id, start, end)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"detail": str(e)})
    except ConfigurationError as e:
        return JSONResponse(status_code=503, content={"detail": str(e)})
    except FetchExhausted as e:
        log.warning("Track fetch failed for %s: %s", vehicle_id, e)
        return JSONResponse(status_code=502, content={"detail": str(e)})
    return _track_to_feature(track, start, end)


@router.get(
    "/match",
    response_model=MatchResponse,
    summary="Correlate two vehicle ids",
    description="Whether two vehicle labels from different systems plausibly "
    "name the same vehicle.",
    tags=["vehicles"],
)
def get_match(
    a: str = Query(..., description="First vehicle label"),
    b: str = Query(..., description="Second vehicle label"),
):
    return MatchResponse(
        a=a,
        b=b,
        canonical_a=identity.canonicalize(a),
        canonical_b=identity.canonicalize(b),
        match=identity.match(a, b),
    )


@router.get(
    "/sources",
    response_model=dict[str, SourceStatus],
    summary="Data source health",
    description="Returns poll health for each configured data source.",
    tags=["sources"],
)
def get_sources(request: Request):
    from fleet_telemetry.config import SOURCES

    engine = _engine(request)
    now = datetime.now(timezone.utc)
    out = {}
    for name, src in SOURCES.items():
        health = engine.health.get(name)
        out[name] = SourceStatus(
            display_name=src.display_name,
            kind=src.kind,
            enabled=src.enabled,
            poll_interval=src.poll_interval,
            last_success_at=(
                health.last_success_at.isoformat()
                if health and health.last_success_at
                else None
            ),
            last_error=health.last_error if health else None,
            consecutive_failures=health.consecutive_failures if health else 0,
            rejected_records=health.rejected_records if health else 0,
            stale=health is None or health.is_stale(now, engine.source_stale_after),
        )
    return out


@router.get(
    "/summaries/{source}",
    response_model=SummaryResponse,
    summary="Latest summary report",
    description="Returns the last successfully fetched weighbridge or collection "
    "summary for a source.",
    tags=["sources"],
)
def get_summary(request: Request, source: str):
    engine = _engine(request)
    snapshot = engine.get_summary(source)
    if snapshot is None:
        return JSONResponse(
            status_code=404, content={"detail": f"No summary for {source}"}
        )
    health = engine.health.get(source)
    now = datetime.now(timezone.utc)
    return SummaryResponse(
        source=source,
        fetched_at=snapshot.fetched_at.isoformat(),
        message=snapshot.message,
        rows=[row.model_dump() for row in snapshot.rows],
        stale=health is None or health.is_stale(now, engine.source_stale_after),
    )
