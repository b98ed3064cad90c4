import logging
from datetime import datetime, timezone, tzinfo
from typing import Any, Iterable, Mapping

from fleet_telemetry.coerce import coerce_float

logger = logging.getLogger(__name__)

# Anything above this is epoch-milliseconds; below it, epoch-seconds.
_EPOCH_MS_THRESHOLD = 1e12

# Tried after ISO-8601 for free-text dates. Day-first variants come from
# providers that format for an Indian locale.
_DATETIME_FORMATS = (
    "%d-%m-%Y %H:%M:%S",
    "%d/%m/%Y %H:%M:%S",
    "%d-%m-%Y %H:%M",
    "%d/%m/%Y %H:%M",
    "%Y/%m/%d %H:%M:%S",
    "%d-%m-%Y %I:%M:%S %p",
    "%d/%m/%Y, %I:%M:%S %p",
    "%m/%d/%Y, %I:%M:%S %p",
    "%d-%m-%Y",
    "%d/%m/%Y",
)


def _from_epoch(value: float) -> datetime | None:
    if value <= 0:
        return None
    if value > _EPOCH_MS_THRESHOLD:
        value = value / 1000
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _parse_text(text: str, assume_tz: tzinfo) -> datetime | None:
    try:
        dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        dt = None
    if dt is None:
        for fmt in _DATETIME_FORMATS:
            try:
                dt = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=assume_tz)
    return dt


def parse_timestamp(value: Any, assume_tz: tzinfo = timezone.utc) -> datetime | None:
    """Parse one timestamp value in any of the encodings providers use.

    Numbers and numeric strings are epoch time (milliseconds when above
    1e12, seconds otherwise). Other strings are parsed as dates; naive
    results are taken to be in ``assume_tz``. Returns None when the value
    cannot be read.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=assume_tz)
    number = coerce_float(value)
    if number is not None:
        return _from_epoch(number)
    if isinstance(value, str) and value.strip():
        return _parse_text(value.strip(), assume_tz)
    return None


def resolve(
    raw: Mapping[str, Any],
    candidate_keys: Iterable[str],
    assume_tz: tzinfo = timezone.utc,
) -> datetime | None:
    """Resolve a record's timestamp for history use.

    Keys are tried in order; absent or unparseable values fall through to
    the next key. None means the record has no usable timestamp and must
    be dropped. This never substitutes the current time.
    """
    for key in candidate_keys:
        if key not in raw:
            continue
        ts = parse_timestamp(raw[key], assume_tz)
        if ts is not None:
            return ts
        logger.debug("Unparseable timestamp under %r: %r", key, raw[key])
    return None


def resolve_live(
    raw: Mapping[str, Any],
    candidate_keys: Iterable[str],
    now: datetime,
    assume_tz: tzinfo = timezone.utc,
) -> datetime:
    """Resolve a live sample's timestamp, falling back to observation time."""
    ts = resolve(raw, candidate_keys, assume_tz)
    return ts if ts is not None else now
