from __future__ import annotations

from typing import Any


def overlaps(start_a: Any, end_a: Any, start_b: Any, end_b: Any) -> bool:
    """
    Half-open interval overlap: [start_a, end_a) and [start_b, end_b) overlap iff
    start_a < end_b and start_b < end_a. Back-to-back intervals do not overlap.
    Bounds may be `time` or `timedelta` values as long as all four are comparable.
    """
    if start_a is None or end_a is None or start_b is None or end_b is None:
        raise ValueError("interval bounds must not be None")
    return start_a < end_b and start_b < end_a
