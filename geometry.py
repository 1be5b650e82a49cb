"""Geometry helpers for roof polygons.

Everything the roof code needs from a geometry backend goes through this
module: projection into a local metric frame, area, bearings, edge
clearances, containment and bounding boxes. Shapely does the polygon work;
the rest is plain trigonometry.

Local frames use metres with x pointing east and y pointing north.
Bearings are compass bearings (degrees clockwise from north). Rotation
angles passed to `rotate_points` are mathematical (counter-clockwise from
the x axis), matching `shapely.affinity.rotate`.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import shapely
from shapely import affinity
from shapely.geometry import LineString, Point, Polygon, box
from shapely.geometry.polygon import orient
from shapely.ops import unary_union
from shapely.prepared import prep

from constants import METERS_PER_DEGREE

# Slack used for containment tests on floating point footprints (m)
CONTAINMENT_TOLERANCE = 1e-6


@dataclass(frozen=True)
class LocalProjection:
    """Equirectangular projection around an origin.

    Geographic points are (lng, lat) pairs, GeoJSON order. A projection
    built with ``geographic=False`` passes coordinates through unchanged.
    """

    origin_lng: float = 0.0
    origin_lat: float = 0.0
    geographic: bool = True

    @classmethod
    def for_points(cls, points, geographic: bool = True) -> "LocalProjection":
        if not geographic or not points:
            return cls(geographic=False)
        lng = sum(p[0] for p in points) / len(points)
        lat = sum(p[1] for p in points) / len(points)
        return cls(origin_lng=lng, origin_lat=lat)

    @property
    def _lng_scale(self) -> float:
        return METERS_PER_DEGREE * math.cos(math.radians(self.origin_lat))

    def to_local(self, point) -> tuple:
        if not self.geographic:
            return (float(point[0]), float(point[1]))
        x = (point[0] - self.origin_lng) * self._lng_scale
        y = (point[1] - self.origin_lat) * METERS_PER_DEGREE
        return (x, y)

    def to_source(self, point) -> tuple:
        if not self.geographic:
            return (point[0], point[1])
        lng = self.origin_lng + point[0] / self._lng_scale
        lat = self.origin_lat + point[1] / METERS_PER_DEGREE
        return (lng, lat)

    def ring_to_local(self, ring) -> list:
        return [self.to_local(p) for p in ring]


def normalize_ring(coordinates) -> list:
    """Return the ring as an open list of distinct consecutive vertices.

    A closing vertex equal to the first one is dropped, as are repeated
    consecutive points.
    """
    ring = []
    for point in coordinates or []:
        p = (float(point[0]), float(point[1]))
        if ring and p == ring[-1]:
            continue
        ring.append(p)
    if len(ring) > 1 and ring[0] == ring[-1]:
        ring.pop()
    return ring


def is_valid_coordinate(point) -> bool:
    try:
        return len(point) >= 2 and all(math.isfinite(float(v)) for v in point[:2])
    except (TypeError, ValueError):
        return False


def edges(ring) -> list:
    """Consecutive vertex pairs of a closed ring."""
    n = len(ring)
    return [(ring[i], ring[(i + 1) % n]) for i in range(n)]


def distance(p1, p2) -> float:
    return math.hypot(p2[0] - p1[0], p2[1] - p1[1])


def bearing(p1, p2) -> float:
    """Compass bearing from p1 to p2 in [0, 360)."""
    angle = math.degrees(math.atan2(p2[0] - p1[0], p2[1] - p1[1]))
    return angle % 360


def angular_difference(a: float, b: float) -> float:
    diff = abs(a % 360 - b % 360)
    return 360 - diff if diff > 180 else diff


def axis_angle(p1, p2) -> float:
    """Counter-clockwise angle of the segment from the x axis, mod 180."""
    return math.degrees(math.atan2(p2[1] - p1[1], p2[0] - p1[0])) % 180


def make_polygon(ring) -> Polygon:
    polygon = Polygon(ring)
    if not polygon.is_valid:
        polygon = polygon.buffer(0)
    return polygon


def polygon_area(ring) -> float:
    if len(ring) < 3:
        return 0.0
    return make_polygon(ring).area


def centroid(ring) -> tuple:
    polygon = make_polygon(ring)
    if polygon.is_empty or polygon.area == 0:
        xs = [p[0] for p in ring]
        ys = [p[1] for p in ring]
        return (sum(xs) / len(xs), sum(ys) / len(ys))
    c = polygon.centroid
    return (c.x, c.y)


def bounding_box(ring) -> tuple:
    xs = [p[0] for p in ring]
    ys = [p[1] for p in ring]
    return (min(xs), min(ys), max(xs), max(ys))


def counter_clockwise(ring) -> list:
    """Ring re-ordered counter-clockwise, open form."""
    oriented = orient(make_polygon(ring), sign=1.0)
    return list(oriented.exterior.coords)[:-1]


def outward_normal_bearing(p1, p2) -> float:
    """Bearing of the outward normal of an edge of a counter-clockwise ring."""
    dx = p2[0] - p1[0]
    dy = p2[1] - p1[1]
    return bearing((0.0, 0.0), (dy, -dx))


def remove_edge_clearances(polygon, edge_distances):
    """Remove a clearance strip along each edge.

    ``edge_distances`` is a list of ((p1, p2), distance) pairs. The result
    is every point of the polygon at least ``distance`` away from each edge,
    and may be empty or a multi-part geometry.
    """
    strips = [LineString([p1, p2]).buffer(d)
              for (p1, p2), d in edge_distances if d > 0]
    if not strips:
        return polygon
    return polygon.difference(unary_union(strips))


def minimum_oriented_box(ring) -> tuple:
    """Minimum-area oriented rectangle of the ring.

    Returns (corners, angle) where angle is the counter-clockwise angle of
    the rectangle's first side, mod 180.
    """
    rectangle = shapely.minimum_rotated_rectangle(make_polygon(ring))
    if rectangle.geom_type != "Polygon":
        return (list(ring), 0.0)
    corners = list(rectangle.exterior.coords)[:-1]
    return (corners, axis_angle(corners[0], corners[1]))


def rotate_geometry(geometry, angle_deg: float):
    return affinity.rotate(geometry, angle_deg, origin=(0.0, 0.0))


def rotate_points(points, angle_deg: float) -> list:
    """Rotate points counter-clockwise about the origin."""
    theta = math.radians(angle_deg)
    c, s = math.cos(theta), math.sin(theta)
    return [(x * c - y * s, x * s + y * c) for x, y in points]


def rectangle(minx: float, miny: float, maxx: float, maxy: float):
    return box(minx, miny, maxx, maxy)


def prepared_region(geometry):
    """Prepared geometry for repeated containment tests, with slack."""
    return prep(geometry.buffer(CONTAINMENT_TOLERANCE))


def interior_angle(p1, p2, p3) -> int:
    """Angle at p2 between p1 and p3, in whole degrees from 0 to 180."""
    a1 = math.atan2(p1[1] - p2[1], p1[0] - p2[0])
    a2 = math.atan2(p3[1] - p2[1], p3[0] - p2[0])
    angle = abs(math.degrees(a1 - a2))
    if angle > 180:
        angle = 360 - angle
    return round(angle)


class BoxIndex:
    """Axis-aligned bounding box index for overlap queries.

    Boxes live in a flat arena list and are referenced by position from a
    uniform grid of buckets, so a query only inspects boxes in the cells its
    own bounds touch.
    """

    def __init__(self, cell_size: float):
        self.cell_size = cell_size if cell_size > 0 else 1.0
        self.boxes = []
        self._cells = {}

    def __len__(self):
        return len(self.boxes)

    def _cell_range(self, bounds):
        minx, miny, maxx, maxy = bounds
        size = self.cell_size
        for i in range(math.floor(minx / size), math.floor(maxx / size) + 1):
            for j in range(math.floor(miny / size), math.floor(maxy / size) + 1):
                yield (i, j)

    def insert(self, bounds) -> int:
        index = len(self.boxes)
        self.boxes.append(tuple(bounds))
        for cell in self._cell_range(bounds):
            self._cells.setdefault(cell, []).append(index)
        return index

    def query(self, bounds, margin: float = 0.0) -> list:
        """Indices of stored boxes overlapping ``bounds`` shrunk by ``margin``."""
        minx, miny, maxx, maxy = bounds
        minx, miny = minx + margin, miny + margin
        maxx, maxy = maxx - margin, maxy - margin
        if minx >= maxx or miny >= maxy:
            return []
        hits = set()
        for cell in self._cell_range((minx, miny, maxx, maxy)):
            for index in self._cells.get(cell, ()):
                bx0, by0, bx1, by1 = self.boxes[index]
                if bx0 < maxx and minx < bx1 and by0 < maxy and miny < by1:
                    hits.add(index)
        return sorted(hits)

    def intersects_any(self, bounds, margin: float = 0.0) -> bool:
        return bool(self.query(bounds, margin))


def boundary_distance(ring, point) -> float:
    """Distance from a point to the outline of a ring."""
    return make_polygon(ring).boundary.distance(Point(point))
