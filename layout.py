"""Panel layout engine.

Places a rectangular grid of panels on each roof section. Each section is
handled independently in its own frame aligned to the dominant roof edge:
clearances are cut away from the outline, then rows of candidate footprints
are swept across what is left for every rotation and orientation variant,
and the variant holding the most panels wins.

The search is exhaustive over a fixed list of variants, so the same inputs
always produce the same panels.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import geometry
from constants import (
    DEFAULT_PANEL,
    DEFAULT_SETBACKS,
    ROTATION_DEDUPE_DEGREES,
)
from errors import ValidationError
from orientation import analyze_roof_orientation

_LOGGER = logging.getLogger(__name__)

LAYOUT_STYLES = ["auto", "landscape", "portrait", "brick", "aligned"]

# Edges of another section closer than this share a valley (m)
VALLEY_TOLERANCE_M = 0.05

# Panel cells overlapping by less than this are treated as touching (m)
OVERLAP_TOLERANCE_M = 1e-9


@dataclass(frozen=True)
class PanelSpec:
    """Physical panel dimensions and spacing, metres and watts."""

    width_m: float = DEFAULT_PANEL["width_m"]
    height_m: float = DEFAULT_PANEL["height_m"]
    watts: float = DEFAULT_PANEL["watts"]
    row_spacing_m: float = DEFAULT_PANEL["row_spacing_m"]
    column_spacing_m: float = DEFAULT_PANEL["column_spacing_m"]

    def __post_init__(self):
        if self.width_m <= 0 or self.height_m <= 0:
            raise ValidationError("Panel dimensions must be positive", field="panel")
        if self.watts <= 0:
            raise ValidationError("Panel wattage must be positive", field="panel")
        if self.row_spacing_m < 0 or self.column_spacing_m < 0:
            raise ValidationError("Panel spacing cannot be negative", field="panel")

    @property
    def area_m2(self) -> float:
        return self.width_m * self.height_m

    @property
    def kw(self) -> float:
        return self.watts / 1000

    def footprint(self, orientation: str) -> tuple:
        """(across-row, along-slope) size for an orientation."""
        long_side = max(self.width_m, self.height_m)
        short_side = min(self.width_m, self.height_m)
        if orientation == "landscape":
            return (long_side, short_side)
        return (short_side, long_side)


@dataclass(frozen=True)
class SetbackConfig:
    """Clearance from each kind of roof edge, metres."""

    eave: float = DEFAULT_SETBACKS["eave"]
    ridge: float = DEFAULT_SETBACKS["ridge"]
    valley: float = DEFAULT_SETBACKS["valley"]
    rake: float = DEFAULT_SETBACKS["rake"]

    def __post_init__(self):
        if min(self.eave, self.ridge, self.valley, self.rake) < 0:
            raise ValidationError("Setbacks cannot be negative", field="setbacks")

    @classmethod
    def uniform(cls, distance_m: float) -> "SetbackConfig":
        return cls(eave=distance_m, ridge=distance_m, valley=distance_m, rake=distance_m)

    def for_edge(self, edge_type: str) -> float:
        return getattr(self, edge_type)


@dataclass
class RoofSection:
    """One roof face.

    ``coordinates`` is a ring of (lng, lat) pairs, or local metres when
    ``geographic`` is False.
    """

    id: str
    coordinates: list
    azimuth: float = None
    geographic: bool = True


@dataclass(frozen=True)
class PanelPosition:
    section_id: str
    footprint: tuple
    center: tuple
    rotation: float
    orientation: str
    row: int
    column: int

    def to_dict(self) -> dict:
        return {
            "section_id": self.section_id,
            "footprint": [list(p) for p in self.footprint],
            "center": list(self.center),
            "rotation": self.rotation,
            "orientation": self.orientation,
            "row": self.row,
            "column": self.column,
        }


@dataclass
class SectionLayout:
    section_id: str
    panel_count: int = 0
    azimuth: float = 180.0
    rotation: float = 0.0
    orientation: str = None
    staggered: bool = False
    area_m2: float = 0.0
    usable_area_m2: float = 0.0
    panels: list = field(default_factory=list)


@dataclass
class LayoutResult:
    panel_count: int
    capacity_kw: float
    panels: list
    section_counts: dict
    coverage_ratio: float
    roof_area_m2: float
    sections: list = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.panel_count == 0

    @property
    def primary_azimuth(self) -> float:
        """Azimuth of the largest section."""
        if not self.sections:
            return 180.0
        return max(self.sections, key=lambda s: s.area_m2).azimuth

    def to_dict(self) -> dict:
        return {
            "panel_count": self.panel_count,
            "capacity_kw": self.capacity_kw,
            "section_counts": dict(self.section_counts),
            "coverage_ratio": self.coverage_ratio,
            "roof_area_m2": self.roof_area_m2,
            "panels": [p.to_dict() for p in self.panels],
        }


def classify_edges(local_ring, azimuth: float, neighbours=()) -> list:
    """Label each edge of a counter-clockwise ring as eave, ridge, rake or valley.

    The eave faces downslope (towards the azimuth), the ridge upslope,
    rakes run along the slope. Edges lying on another section are valleys.
    """
    labelled = []
    for p1, p2 in geometry.edges(local_ring):
        midpoint = ((p1[0] + p2[0]) / 2, (p1[1] + p2[1]) / 2)
        if any(geometry.boundary_distance(other, midpoint) <= VALLEY_TOLERANCE_M
               for other in neighbours):
            labelled.append(((p1, p2), "valley"))
            continue
        normal = geometry.outward_normal_bearing(p1, p2)
        if geometry.angular_difference(normal, azimuth) <= 45:
            labelled.append(((p1, p2), "eave"))
        elif geometry.angular_difference(normal, azimuth + 180) < 45:
            labelled.append(((p1, p2), "ridge"))
        else:
            labelled.append(((p1, p2), "rake"))
    return labelled


def usable_region(local_ring, azimuth: float, setbacks: SetbackConfig, neighbours=()):
    """Section polygon minus the edge clearances.

    Clearances are fixed per edge type and do not depend on the section size.
    """
    polygon = geometry.make_polygon(local_ring)
    edge_distances = [(edge, setbacks.for_edge(kind))
                      for edge, kind in classify_edges(local_ring, azimuth, neighbours)]
    return geometry.remove_edge_clearances(polygon, edge_distances)


def candidate_rotations(local_ring) -> list:
    """Rotations to try: oriented box, longest edge, and the true axes."""
    _, box_angle = geometry.minimum_oriented_box(local_ring)
    edge = max(geometry.edges(local_ring), key=lambda e: geometry.distance(*e))
    edge_angle = geometry.axis_angle(*edge)

    rotations = []
    for angle in (box_angle, box_angle + 90, edge_angle, edge_angle + 90, 0.0, 90.0):
        angle = angle % 180
        if all(_axis_difference(angle, r) >= ROTATION_DEDUPE_DEGREES for r in rotations):
            rotations.append(angle)
    return rotations


def _axis_difference(a: float, b: float) -> float:
    diff = abs(a - b) % 180
    return min(diff, 180 - diff)


def _style_variants(style: str) -> list:
    """(orientation, staggered) pairs a style tries."""
    if style == "landscape":
        return [("landscape", False)]
    if style == "portrait":
        return [("portrait", False)]
    if style == "brick":
        return [("landscape", True), ("portrait", True)]
    if style == "aligned":
        return [("landscape", False), ("portrait", False)]
    return [("landscape", False), ("portrait", False),
            ("landscape", True), ("portrait", True)]


def _axis_positions(low: float, high: float, size: float, pitch: float,
                    from_high: bool = False, offset: float = 0.0) -> list:
    """Start coordinates of cells of ``size`` laid at ``pitch`` from one end of [low, high]."""
    slack = geometry.CONTAINMENT_TOLERANCE
    positions = []
    step = 0
    while True:
        if from_high:
            start = high - size - offset - step * pitch
            if start < low - slack:
                break
        else:
            start = low + offset + step * pitch
            if start + size > high + slack:
                break
        positions.append(start)
        step += 1
    return sorted(positions)


def _grid_rows(inside, bounds, across: float, along: float, pitch_x: float,
               pitch_y: float, staggered: bool, rows_from_top: bool) -> list:
    """Rows of contained cells, each row packed from whichever side fits more.

    Returns a list of (row, column, cell bounds).
    """
    minx, miny, maxx, maxy = bounds
    cells = []
    for row, y in enumerate(_axis_positions(miny, maxy, along, pitch_y, rows_from_top)):
        offset = pitch_x / 2 if staggered and row % 2 else 0.0
        best_row = []
        for from_right in (False, True):
            row_cells = []
            for column, x in enumerate(_axis_positions(minx, maxx, across, pitch_x,
                                                       from_right, offset)):
                cell = (x, y, x + across, y + along)
                if inside.contains(geometry.rectangle(*cell)):
                    row_cells.append((row, column, cell))
            if len(row_cells) > len(best_row):
                best_row = row_cells
        cells.extend(best_row)
    return cells


def sweep_rows(region, rotation: float, panel: PanelSpec, orientation: str,
               staggered: bool = False) -> list:
    """Fill ``region`` with panels row by row in a frame rotated by ``rotation``.

    Rows are anchored at the bottom and at the top of the region, and each
    row is packed from the left or the right. The better row set is kept,
    then cells from the other one are added wherever they keep clear of the
    panels already placed, spacing included.

    Returns a list of (row, column, corners) with corners in the unrotated
    local frame; row and column count within the grid the panel came from.
    """
    frame = geometry.rotate_geometry(region, -rotation)
    if frame.is_empty:
        return []
    across, along = panel.footprint(orientation)
    pitch_x = across + panel.column_spacing_m
    pitch_y = along + panel.row_spacing_m
    inside = geometry.prepared_region(frame)

    grids = [_grid_rows(inside, frame.bounds, across, along, pitch_x, pitch_y, staggered,
                        rows_from_top) for rows_from_top in (False, True)]
    base, other = grids
    if len(other) > len(base):
        base, other = other, base

    # Cells are indexed with their spacing so neighbours keep the panel gaps
    index = geometry.BoxIndex(cell_size=max(pitch_x, pitch_y))
    chosen = []
    for row, column, (x0, y0, x1, y1) in base + other:
        spaced = (x0, y0, x0 + pitch_x, y0 + pitch_y)
        if index.intersects_any(spaced, margin=OVERLAP_TOLERANCE_M):
            continue
        index.insert(spaced)
        chosen.append((row, column, (x0, y0, x1, y1)))

    placed = []
    for row, column, (x0, y0, x1, y1) in chosen:
        corners = [(x0, y0), (x1, y0), (x1, y1), (x0, y1)]
        placed.append((row, column, geometry.rotate_points(corners, rotation)))
    return placed


def layout_section(section_id: str, local_ring, panel: PanelSpec,
                   setbacks: SetbackConfig, azimuth: float, style: str = "auto",
                   neighbours=()) -> tuple:
    """Best layout for one section.

    Returns (SectionLayout, placements) where placements are the raw
    (row, column, corners) tuples in the local frame.
    """
    area = geometry.polygon_area(local_ring)
    result = SectionLayout(section_id=section_id, azimuth=azimuth, area_m2=area)
    if len(local_ring) < 3 or area <= 0:
        _LOGGER.warning("Section %s is degenerate, no panels placed", section_id)
        return result, []

    region = usable_region(local_ring, azimuth, setbacks, neighbours)
    result.usable_area_m2 = region.area
    if region.is_empty or region.area < panel.area_m2:
        _LOGGER.debug("Section %s usable area %.2f m2 is too small", section_id, region.area)
        return result, []

    ridge = max(geometry.edges(local_ring), key=lambda e: geometry.distance(*e))
    ridge_angle = geometry.axis_angle(*ridge)
    rotations = candidate_rotations(local_ring)
    if style == "aligned":
        rotations = rotations[:2]

    best = []
    best_key = None
    for rotation in rotations:
        for orientation, staggered in _style_variants(style):
            placed = sweep_rows(region, rotation, panel, orientation, staggered)
            _LOGGER.debug("Section %s rotation %.1f %s%s: %d panels", section_id, rotation,
                          orientation, " staggered" if staggered else "", len(placed))
            key = (len(placed), -_axis_difference(rotation, ridge_angle))
            if best_key is None or key > best_key:
                best, best_key = placed, key
                result.rotation = rotation
                result.orientation = orientation
                result.staggered = staggered

    result.panel_count = len(best)
    return result, best


def _projection_for(sections) -> geometry.LocalProjection:
    geographic = all(s.geographic for s in sections)
    points = [p for s in sections for p in geometry.normalize_ring(s.coordinates)]
    return geometry.LocalProjection.for_points(points, geographic=geographic)


def validate_sections(sections) -> None:
    if not sections:
        raise ValidationError("At least one roof section is required", field="sections")
    seen = set()
    for section in sections:
        if section.id in seen:
            raise ValidationError("Duplicate roof section id %r" % section.id, field="sections")
        seen.add(section.id)
        for point in section.coordinates or []:
            if not geometry.is_valid_coordinate(point):
                raise ValidationError("Section %s has a malformed coordinate" % section.id,
                                      field="sections")
            if section.geographic and not (-180 <= point[0] <= 180 and -90 <= point[1] <= 90):
                raise ValidationError("Section %s has an out-of-range coordinate" % section.id,
                                      field="sections")
    if len({s.geographic for s in sections}) > 1:
        raise ValidationError("Sections mix geographic and local coordinates", field="sections")


def layout_panels(sections, panel: PanelSpec = None, setbacks: SetbackConfig = None,
                  style: str = "auto") -> LayoutResult:
    """Lay out panels across all roof sections.

    Sections too small for a single panel contribute zero panels; the
    result is empty only when every section is. Malformed coordinates raise
    ValidationError.
    """
    panel = panel or PanelSpec()
    setbacks = setbacks or SetbackConfig()
    if style not in LAYOUT_STYLES:
        raise ValidationError("Unknown layout style %r" % style, field="style")
    validate_sections(sections)

    projection = _projection_for(sections)
    local_rings = {}
    azimuths = {}
    for section in sections:
        local = projection.ring_to_local(geometry.normalize_ring(section.coordinates))
        if section.azimuth is not None:
            azimuths[section.id] = section.azimuth % 360
        else:
            azimuths[section.id] = analyze_roof_orientation(local, geographic=False).azimuth
        if len(local) >= 3 and geometry.polygon_area(local) > 0:
            local = geometry.counter_clockwise(local)
        local_rings[section.id] = local

    panels = []
    section_layouts = []
    section_counts = {}
    roof_area = 0.0
    for section in sections:
        local_ring = local_rings[section.id]
        azimuth = azimuths[section.id]
        neighbours = [r for sid, r in local_rings.items() if sid != section.id and len(r) >= 3]

        section_layout, placed = layout_section(section.id, local_ring, panel, setbacks,
                                                azimuth, style, neighbours)
        for row, column, corners in placed:
            footprint = tuple(projection.to_source(p) for p in corners)
            cx = sum(p[0] for p in corners) / 4
            cy = sum(p[1] for p in corners) / 4
            position = PanelPosition(
                section_id=section.id,
                footprint=footprint,
                center=projection.to_source((cx, cy)),
                rotation=section_layout.rotation,
                orientation=section_layout.orientation,
                row=row,
                column=column,
            )
            section_layout.panels.append(position)
            panels.append(position)

        section_layouts.append(section_layout)
        section_counts[section.id] = section_layout.panel_count
        roof_area += section_layout.area_m2
        _LOGGER.debug("Section %s: %d panels at rotation %.1f", section.id,
                      section_layout.panel_count, section_layout.rotation)

    count = len(panels)
    coverage = count * panel.area_m2 / roof_area if roof_area > 0 else 0.0
    if count == 0:
        _LOGGER.warning("No panels fit on any of %d roof sections", len(sections))

    return LayoutResult(
        panel_count=count,
        capacity_kw=count * panel.kw,
        panels=panels,
        section_counts=section_counts,
        coverage_ratio=coverage,
        roof_area_m2=roof_area,
        sections=section_layouts,
    )
