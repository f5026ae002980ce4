"""
Emotion Colors
==============

Stable display colors for emotion labels and day ratings.

Label colors are assigned round-robin from a fixed palette the first
time a label is seen and memoized for the lifetime of the assigner.
The mapping is in-memory only; callers needing cross-restart stability
persist ``snapshot()`` themselves.
"""

import logging
import threading
from typing import Sequence

logger = logging.getLogger(__name__)

# (lower bound, color) checked top-down; anything below 2 falls through
# to the darkest color.
_RATING_BUCKETS: tuple[tuple[float, str], ...] = (
    (9.0, "C2E5C9"),
    (8.0, "B5E2D5"),
    (6.0, "B5D5E2"),
    (4.0, "E2DCB5"),
    (2.0, "E2C9B5"),
)
_RATING_FLOOR_COLOR = "A28497"

# Endpoints for the continuous sad -> neutral -> happy scale.
SAD_COLOR = "1E3D59"
NEUTRAL_COLOR = "94A7B7"
HAPPY_COLOR = "B784A7"


def normalize_label(label: str) -> str:
    """Trim and case-fold an emotion label."""
    return label.strip().casefold()


class EmotionColorAssigner:
    """
    Thread-safe, memoized label -> color mapping.

    The check-and-insert for a new label happens under a single lock so
    two concurrent first sightings can never bind different colors.
    """

    def __init__(self, palette: Sequence[str]):
        if not palette:
            raise ValueError("palette must contain at least one color")
        self._palette = tuple(palette)
        self._colors: dict[str, str] = {}
        self._lock = threading.Lock()

    @property
    def palette(self) -> tuple[str, ...]:
        return self._palette

    def color_for(self, label: str) -> str:
        """Return the color bound to *label*, binding a new one if unseen."""
        key = normalize_label(label)
        if not key:
            raise ValueError("emotion label must not be blank")

        with self._lock:
            color = self._colors.get(key)
            if color is None:
                color = self._palette[len(self._colors) % len(self._palette)]
                self._colors[key] = color
                logger.debug("Bound emotion %r to color %s", key, color)
            return color

    def snapshot(self) -> dict[str, str]:
        """Copy of the current label -> color mapping."""
        with self._lock:
            return dict(self._colors)

    @staticmethod
    def color_for_rating(rating: float) -> str:
        """Bucket color for a 0-10 day rating."""
        for lower, color in _RATING_BUCKETS:
            if rating >= lower:
                return color
        return _RATING_FLOOR_COLOR


def interpolate_hex(start: str, end: str, fraction: float) -> str:
    """Linear blend between two ``RRGGBB`` colors, *fraction* clamped to [0, 1]."""
    fraction = min(max(fraction, 0.0), 1.0)
    a = [int(start[i:i + 2], 16) for i in (0, 2, 4)]
    b = [int(end[i:i + 2], 16) for i in (0, 2, 4)]
    mixed = [round(x + (y - x) * fraction) for x, y in zip(a, b)]
    return "".join(f"{channel:02X}" for channel in mixed)


def mood_scale_color(rating: float) -> str:
    """Continuous sad (1) -> neutral (5) -> happy (10) color for a mean rating."""
    if rating <= 5:
        return interpolate_hex(SAD_COLOR, NEUTRAL_COLOR, (rating - 1) / 4)
    return interpolate_hex(NEUTRAL_COLOR, HAPPY_COLOR, (rating - 5) / 5)
