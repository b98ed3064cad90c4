# src/fleet_telemetry/snapshot.py
"""Build the live snapshot returned by /vehicles."""

from datetime import datetime

from fleet_telemetry.engine import TelemetryEngine


def build_live_snapshot(
    engine: TelemetryEngine, source: str | None = None, now: datetime | None = None
) -> dict:
    """Classify every known vehicle and return a GeoJSON FeatureCollection dict."""
    features = []
    for key, v in sorted(engine.get_live_vehicles(now).items()):
        if source is not None and v.source != source:
            continue
        s = v.sample
        features.append(
            {
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": [s.lng, s.lat]},
                "properties": {
                    "vehicle_id": s.vehicle_id,
                    "canonical_id": key,
                    "status": v.status.value,
                    "speed": s.speed_kmh,
                    "ignition": s.ignition.value,
                    "timestamp": s.timestamp.isoformat() if s.timestamp else None,
                    "driver": s.driver,
                    "address": s.address,
                    "raw_status": s.raw_status_text,
                    "source": v.source,
                    "stale": v.stale,
                },
            }
        )
    return {
        "type": "FeatureCollection",
        "features": features,
    }
