"""Reconcile vehicle identifiers across systems that spell them differently.

Upstream systems pad, truncate and punctuate the same registration plate
differently ("UP-16 KT 1737", "up16kt1737", "UP16KT1737X"). Matching
trades precision for recall within tight bounds: the shorter id must be
at least MIN_PARTIAL_LENGTH characters and at most MAX_LENGTH_DIFF
shorter than the other. Changing either bound changes behaviour.

match() is symmetric but not transitive.
"""

import re
from typing import Iterable

from fleet_telemetry.samples import CanonicalVehicleId

MIN_PARTIAL_LENGTH = 5
MAX_LENGTH_DIFF = 3

_NON_ALNUM_RE = re.compile(r"[^A-Z0-9]")
# 2 letters (state), 1-2 digits (district), 1-2 letters (series), 3-4 digits
_PLATE_RE = re.compile(r"[A-Z]{2}[0-9]{1,2}[A-Z]{1,2}[0-9]{3,4}")


def canonicalize(raw_id) -> CanonicalVehicleId:
    if raw_id is None:
        return CanonicalVehicleId("")
    stripped = _NON_ALNUM_RE.sub("", str(raw_id).upper())
    plate = _PLATE_RE.search(stripped)
    return CanonicalVehicleId(plate.group(0) if plate else stripped)


def _canonical_match(a: str, b: str) -> bool:
    if not a or not b:
        return False
    if a == b:
        return True
    shorter, longer = (a, b) if len(a) <= len(b) else (b, a)
    if len(shorter) < MIN_PARTIAL_LENGTH:
        return False
    if len(longer) - len(shorter) > MAX_LENGTH_DIFF:
        return False
    return longer.startswith(shorter) or longer.endswith(shorter)


def match(id_a, id_b) -> bool:
    """Return True if two raw ids plausibly name the same vehicle."""
    return _canonical_match(canonicalize(id_a), canonicalize(id_b))


def find_match(raw_id, candidates: Iterable[str]) -> str | None:
    """Return the candidate that best matches raw_id, or None.

    An exact canonical match beats a partial one; among partial matches
    the first candidate in iteration order wins.
    """
    target = canonicalize(raw_id)
    if not target:
        return None
    partial = None
    for candidate in candidates:
        key = canonicalize(candidate)
        if key == target:
            return candidate
        if partial is None and _canonical_match(target, key):
            partial = candidate
    return partial
