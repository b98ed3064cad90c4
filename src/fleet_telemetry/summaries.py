"""Weighbridge and collection summary feeds.

These endpoints return report rows (weights, trip counts) nested under
one of several container keys, and signal failure with ``status: false``
in an otherwise successful response.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from fleet_telemetry.coerce import coerce_float, coerce_str
from fleet_telemetry.exceptions import PayloadRejected
from fleet_telemetry.normalizer import extract_records

logger = logging.getLogger(__name__)

SUMMARY_CONTAINERS = (
    "data",
    "date_wise_data",
    "day_wise_data",
    "records",
    "result",
    "payload",
    "rows",
    "items",
)
_MESSAGE_KEYS = ("message", "msg", "statusMessage", "responseMessage")


class SummaryRow(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    date: str | None = None
    vehicle_no: str | None = Field(
        None,
        validation_alias=AliasChoices(
            "vehicle_no", "vehicleNo", "vehicle_number", "vehicleNumber"
        ),
    )
    start_time: str | None = Field(
        None, validation_alias=AliasChoices("start_time", "Start_Time")
    )
    end_time: str | None = Field(
        None, validation_alias=AliasChoices("end_time", "End_Time")
    )
    total_trip: float | None = None
    dry_weight: float | None = None
    wet_weight: float | None = None
    mix_weight: float | None = None
    total_net_weight: float | None = None
    average_weight_per_trip: float | None = None

    @field_validator(
        "total_trip",
        "dry_weight",
        "wet_weight",
        "mix_weight",
        "total_net_weight",
        "average_weight_per_trip",
        mode="before",
    )
    @classmethod
    def parse_number(cls, v):
        return coerce_float(v)

    @field_validator("date", "vehicle_no", "start_time", "end_time", mode="before")
    @classmethod
    def parse_text(cls, v):
        return coerce_str(v)


@dataclass
class SummarySnapshot:
    rows: list[SummaryRow]
    message: str | None = None
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    rejected: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.rows


def pick_message(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    for key in _MESSAGE_KEYS:
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def check_accepted(payload: Any) -> None:
    """Raise PayloadRejected when the provider flags the response as failed."""
    if isinstance(payload, dict) and (
        payload.get("status") is False or payload.get("success") is False
    ):
        raise PayloadRejected(pick_message(payload) or "API rejected the request.")


def parse_summary(
    payload: Any,
    containers: Iterable[str] = SUMMARY_CONTAINERS,
    fetched_at: datetime | None = None,
) -> SummarySnapshot:
    """Parse a summary payload. Raises PayloadRejected on ``status: false``.

    Rows that are not objects are skipped and counted.
    """
    check_accepted(payload)

    rows = []
    rejected = 0
    for raw in extract_records(payload, containers):
        if not isinstance(raw, dict):
            rejected += 1
            continue
        rows.append(SummaryRow.model_validate(raw))
    if rejected:
        logger.debug("Skipped %d non-object summary rows", rejected)

    return SummarySnapshot(
        rows=rows,
        message=pick_message(payload),
        fetched_at=fetched_at or datetime.now(timezone.utc),
        rejected=rejected,
    )
