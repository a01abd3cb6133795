"""Score normalization for client-reported values."""

from __future__ import annotations

import math
from typing import Final

MAX_SCORE: Final[int] = 1_000_000_000


def normalize_score(raw: object) -> int:
    """Clamp an untrusted score into ``[0, MAX_SCORE]``.

    The value is floored to an integer. Anything that cannot be read as a
    finite number, or that is negative, becomes 0. Never raises.
    """
    if isinstance(raw, int):
        value = int(raw)
    else:
        try:
            number = float(raw)  # type: ignore[arg-type]
        except (TypeError, ValueError, OverflowError):
            return 0
        if not math.isfinite(number):
            return 0
        value = math.floor(number)

    if value < 0:
        return 0
    return min(value, MAX_SCORE)
