"""Roof orientation analysis.

Derives the direction a roof section faces from its outline and grades
that direction against the empirical orientation efficiency curve.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

import geometry
from constants import (
    AZIMUTH_ROUNDING_STEP,
    COMPASS_DIRECTIONS,
    DEFAULT_AZIMUTH,
    ORIENTATION_EFFICIENCY_BANDS,
    ORIENTATION_QUALITY,
)

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoofOrientation:
    """Orientation of one roof section."""

    azimuth: float
    direction: str
    efficiency: int
    quality: str
    confidence: int
    vertex_angles: list = field(default_factory=list)
    source: str = "geometry"  # geometry | override | default

    def to_dict(self) -> dict:
        return {
            "azimuth": self.azimuth,
            "direction": self.direction,
            "efficiency": self.efficiency,
            "quality": self.quality,
            "confidence": self.confidence,
            "vertex_angles": list(self.vertex_angles),
            "source": self.source,
        }


def normalize_azimuth(value: float) -> float:
    return float(value) % 360


def round_azimuth(value: float, step: int = AZIMUTH_ROUNDING_STEP) -> float:
    """Round half up to the nearest step, wrapping 360 to 0."""
    return float(math.floor(value / step + 0.5) * step) % 360


def azimuth_to_direction(azimuth: float) -> str:
    """Compass label for an azimuth, 45 degree buckets.

    A bucket boundary belongs to the direction clockwise of it, so 22.5 is NE.
    """
    index = int((normalize_azimuth(azimuth) + 22.5) // 45) % len(COMPASS_DIRECTIONS)
    return COMPASS_DIRECTIONS[index]


def orientation_efficiency(azimuth: float) -> int:
    """Percentage of due-south output for a panel facing ``azimuth``."""
    offset = geometry.angular_difference(normalize_azimuth(azimuth), 180.0)
    for max_offset, efficiency in ORIENTATION_EFFICIENCY_BANDS:
        if offset <= max_offset:
            return efficiency
    return ORIENTATION_EFFICIENCY_BANDS[-1][1]


def orientation_quality(efficiency: float) -> str:
    for threshold, label in ORIENTATION_QUALITY:
        if efficiency >= threshold:
            return label
    return ORIENTATION_QUALITY[-1][1]


def longest_edge(ring) -> tuple:
    """The longest edge of the ring; the first one wins a tie."""
    best = None
    best_length = -1.0
    for p1, p2 in geometry.edges(ring):
        length = geometry.distance(p1, p2)
        if length > best_length:
            best, best_length = (p1, p2), length
    return best


def calculate_azimuth(local_ring) -> float:
    """Panel-facing azimuth of a ring in a local metric frame.

    The longest edge stands in for the ridge. Of its two perpendiculars,
    the one pointing away from the polygon centroid is the facing direction.
    Rings with fewer than three vertices face due south.
    """
    if len(local_ring) < 3:
        return DEFAULT_AZIMUTH

    p1, p2 = longest_edge(local_ring)
    ridge_bearing = geometry.bearing(p1, p2)
    candidates = [(ridge_bearing + 90) % 360, (ridge_bearing + 270) % 360]

    center = geometry.centroid(local_ring)
    midpoint = ((p1[0] + p2[0]) / 2, (p1[1] + p2[1]) / 2)
    outward = geometry.bearing(center, midpoint)

    facing = min(candidates, key=lambda c: geometry.angular_difference(c, outward))
    return round_azimuth(facing)


def vertex_angles(local_ring) -> list:
    n = len(local_ring)
    if n < 3:
        return []
    return [
        geometry.interior_angle(local_ring[i - 1], local_ring[i], local_ring[(i + 1) % n])
        for i in range(n)
    ]


def azimuth_confidence(local_ring) -> int:
    """Score 0-100 for how trustworthy the longest-edge heuristic is.

    Complex outlines, outlines without a clearly dominant edge and outlines
    that fill little of their bounding box all lower the score.
    """
    if len(local_ring) < 3:
        return 0

    score = 100
    if len(local_ring) > 8:
        score -= 15
    elif len(local_ring) > 6:
        score -= 10

    lengths = sorted((geometry.distance(p1, p2) for p1, p2 in geometry.edges(local_ring)),
                     reverse=True)
    if lengths[1] > 0:
        dominance = lengths[0] / lengths[1]
        if dominance < 1.2:
            score -= 20
        elif dominance < 1.5:
            score -= 10

    minx, miny, maxx, maxy = geometry.bounding_box(local_ring)
    box_area = (maxx - minx) * (maxy - miny)
    if box_area > 0:
        fill = geometry.polygon_area(local_ring) / box_area
        if fill < 0.5:
            score -= 15
        elif fill < 0.7:
            score -= 8

    return max(0, min(100, score))


def _default_orientation(reason: str) -> RoofOrientation:
    _LOGGER.warning("Using default south-facing azimuth: %s", reason)
    return _build(DEFAULT_AZIMUTH, confidence=0, angles=[], source="default")


def _build(azimuth: float, confidence: int, angles: list, source: str) -> RoofOrientation:
    efficiency = orientation_efficiency(azimuth)
    return RoofOrientation(
        azimuth=azimuth,
        direction=azimuth_to_direction(azimuth),
        efficiency=efficiency,
        quality=orientation_quality(efficiency),
        confidence=confidence,
        vertex_angles=angles,
        source=source,
    )


def analyze_roof_orientation(coordinates, override_azimuth: float = None,
                             geographic: bool = True) -> RoofOrientation:
    """Analyse one roof outline.

    Args:
        coordinates: Ring of (lng, lat) pairs, or local (x, y) metres when
            ``geographic`` is False. Closure is optional.
        override_azimuth: Explicit facing direction; skips the geometry.
        geographic: Whether ``coordinates`` are longitude/latitude.

    Returns:
        RoofOrientation. Never raises; unusable outlines face due south.
    """
    if override_azimuth is not None:
        try:
            azimuth = normalize_azimuth(override_azimuth)
        except (TypeError, ValueError):
            return _default_orientation("override azimuth %r is not a number" % (override_azimuth,))
        if math.isfinite(azimuth):
            return _build(azimuth, confidence=100, angles=[], source="override")
        return _default_orientation("override azimuth is not finite")

    points = [p for p in (coordinates or []) if geometry.is_valid_coordinate(p)]
    ring = geometry.normalize_ring(points)
    if len(ring) < 3:
        return _default_orientation("outline has %d usable vertices" % len(ring))

    projection = geometry.LocalProjection.for_points(ring, geographic=geographic)
    local_ring = projection.ring_to_local(ring)
    if geometry.polygon_area(local_ring) <= 0:
        return _default_orientation("outline has zero area")

    azimuth = calculate_azimuth(local_ring)
    result = _build(
        azimuth,
        confidence=azimuth_confidence(local_ring),
        angles=vertex_angles(local_ring),
        source="geometry",
    )
    _LOGGER.debug("Roof faces %s (%.0f deg), efficiency %d%%, confidence %d",
                  result.direction, result.azimuth, result.efficiency, result.confidence)
    return result
