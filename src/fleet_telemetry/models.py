# src/fleet_telemetry/models.py
from pydantic import BaseModel, Field


class PointGeometry(BaseModel):
    type: str = Field(default="Point", json_schema_extra={"example": "Point"})
    coordinates: list[float] = Field(
        ...,
        description="[longitude, latitude]",
        json_schema_extra={"example": [77.21, 28.63]},
    )


class FeatureProperties(BaseModel):
    vehicle_id: str = Field(
        ...,
        description="Vehicle label as reported by the provider",
        json_schema_extra={"example": "UP16KT1737"},
    )
    canonical_id: str = Field(
        ..., description="Normalized identity key used for correlation"
    )
    status: str = Field(
        ...,
        description="Running, Idle, Stopped, Overspeeding or NoData",
        json_schema_extra={"example": "Running"},
    )
    speed: float = Field(..., description="Speed in km/h")
    ignition: str = Field(..., description="On, Off or Unknown")
    timestamp: str | None = Field(None, description="Sample timestamp (ISO 8601)")
    driver: str | None = Field(None, description="Driver name, if reported")
    address: str | None = Field(None, description="Provider-geocoded address")
    raw_status: str | None = Field(None, description="Provider's own status text")
    source: str = Field(..., description="Data source the sample came from")
    stale: bool = Field(
        ..., description="True when the source has not refreshed recently"
    )


class Feature(BaseModel):
    type: str = Field(default="Feature")
    geometry: PointGeometry
    properties: FeatureProperties


class FeatureCollection(BaseModel):
    type: str = Field(default="FeatureCollection")
    features: list[Feature]


class LineStringGeometry(BaseModel):
    type: str = Field(default="LineString")
    coordinates: list[list[float]] = Field(
        ..., description="Array of [longitude, latitude] coordinate pairs"
    )


class TrackProperties(BaseModel):
    vehicle_id: str = Field(..., description="Canonical vehicle id")
    start: str = Field(..., description="Window start (ISO 8601, inclusive)")
    end: str = Field(..., description="Window end (ISO 8601, exclusive)")
    timestamps: list[str] = Field(
        ...,
        description="ISO 8601 timestamps parallel to coordinates array",
    )
    speeds: list[float] = Field(
        ..., description="Speeds in km/h parallel to coordinates array"
    )
    cumulative_km: list[float] = Field(
        ..., description="Distance travelled up to each point, in km"
    )
    point_count: int = Field(..., description="Number of points in the track")
    distance_km: float = Field(..., description="Total haversine distance in km")
    duration_seconds: float = Field(
        ..., description="Time between first and last point"
    )
    max_speed_kmh: float = Field(..., description="Highest speed in the track")
    has_records: bool = Field(
        ..., description="False when the provider had nothing for this window"
    )


class TrackFeature(BaseModel):
    type: str = Field(default="Feature")
    geometry: LineStringGeometry
    properties: TrackProperties


class MatchResponse(BaseModel):
    a: str
    b: str
    canonical_a: str
    canonical_b: str
    match: bool = Field(..., description="Whether both ids name the same vehicle")


class SourceStatus(BaseModel):
    display_name: str
    kind: str = Field(..., description="roster or summary")
    enabled: bool
    poll_interval: int = Field(..., description="Seconds between polls")
    last_success_at: str | None = None
    last_error: str | None = None
    consecutive_failures: int = 0
    rejected_records: int = Field(
        0, description="Records dropped during normalization since startup"
    )
    stale: bool


class SummaryResponse(BaseModel):
    source: str
    fetched_at: str
    message: str | None = None
    rows: list[dict]
    stale: bool
