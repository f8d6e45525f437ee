"""
Translate spatial queries into coverings of S2 cells.

Each query shape (radius, bounding box, route) is validated, turned into an
s2sphere region and covered with a region coverer. The resulting cells are
re-tagged with the storage level of the index being queried so that their
trimmed IDs can be used as partition keys.

Coverings over-fetch by design. Every candidate found through a covering
must be post-filtered by true distance or containment.
"""
import logging
import math
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Sequence

import s2sphere

from .coverer import AREA_COVERER, POLYLINE_COVERER, build_region_coverer, resolve_coverer
from .errors import EmptyCovering, InvalidPath, InvalidRadius
from .grid import EARTH_RADIUS_METERS, GeoHash, to_point, validate_coordinate
from .models import MAX_LEVEL, MIN_LEVEL, Coordinate, RegionCovererConfig

logger = logging.getLogger(__name__)

# Expanding a coarse covering cell into more partitions than this is logged
# as a warning: the index level is probably much finer than the coverer.
PARTITION_EXPANSION_WARNING = 256


@dataclass(frozen=True)
class KeyRange:
    """Range scan bounds: leaf IDs in [lower, upper] within one partition."""
    partition: int
    lower: int
    upper: int


class PolylineRegion:
    """
    s2sphere region for a polyline, usable with s2sphere.RegionCoverer.

    A cell may intersect the polyline if it contains one of its vertices or
    if one of the polyline edges crosses one of the cell edges. The polyline
    never contains a cell, so coverings stop at the coverer's max level.
    """

    def __init__(self, points: Sequence[s2sphere.Point]):
        self.points = list(points)

    def edges(self) -> Iterator[tuple]:
        return zip(self.points, self.points[1:])

    def get_cap_bound(self) -> s2sphere.Cap:
        x = sum(p[0] for p in self.points)
        y = sum(p[1] for p in self.points)
        z = sum(p[2] for p in self.points)
        axis = s2sphere.Point(x, y, z)
        if axis.norm() < 1e-12:
            return s2sphere.Cap.full()
        axis = axis.normalize()
        angle = max(axis.angle(p) for p in self.points)
        # A cap narrower than a hemisphere is convex, so it also contains
        # every great-circle edge between the vertices.
        if angle >= math.pi / 2:
            return s2sphere.Cap.full()
        return s2sphere.Cap.from_axis_angle(axis, s2sphere.Angle.from_radians(angle + 1e-12))

    def get_rect_bound(self) -> s2sphere.LatLngRect:
        return self.get_cap_bound().get_rect_bound()

    def contains(self, other) -> bool:
        return False

    def may_intersect(self, cell: s2sphere.Cell) -> bool:
        for point in self.points:
            if cell.contains(point):
                return True
        vertices = [cell.get_vertex(k) for k in range(4)]
        for a, b in self.edges():
            for k in range(4):
                if _edges_cross(a, b, vertices[k], vertices[(k + 1) % 4]):
                    return True
        return False


def _sign(value: float) -> int:
    return (value > 0) - (value < 0)


def _on_arc(x, a, b) -> bool:
    # For x on the great circle through a and b: whether it lies between them
    normal = a.cross_prod(b)
    return x.dot_prod(normal.cross_prod(a)) >= 0 and x.dot_prod(b.cross_prod(normal)) >= 0


def _edges_cross(a, b, c, d) -> bool:
    """
    True if great-circle edges AB and CD cross or touch.

    Touching counts: a polyline running along a cell edge or through a cell
    vertex must keep the cells on both sides of it.
    """
    ab = a.cross_prod(b)
    cd = c.cross_prod(d)
    signs = {
        _sign(-ab.dot_prod(c)),
        _sign(ab.dot_prod(d)),
        _sign(-cd.dot_prod(b)),
        _sign(cd.dot_prod(a)),
    }
    signs.discard(0)
    if signs:
        return len(signs) == 1
    # All four points on one great circle
    return _on_arc(c, a, b) or _on_arc(d, a, b) or _on_arc(a, c, d)


def _cover(region, config: RegionCovererConfig, level: int, query: str) -> List[GeoHash]:
    cells = build_region_coverer(config).get_covering(region)
    if not cells:
        raise EmptyCovering(query)
    logger.debug(
        "%s covering: %d cells (levels %d-%d, max %d), storage level %d",
        query, len(cells), config.min_level, config.max_level, config.max_cells, level,
    )
    return [GeoHash(cell_id=cell.id(), level=level) for cell in cells]


def hashes_from_radius_center(
    center: Coordinate,
    radius: float,
    level: int,
    coverer: Optional[RegionCovererConfig] = None,
) -> List[GeoHash]:
    """
    Cover a circle on the sphere.

    Args:
        center: Center of the search
        radius: Radius in meters
        level: Storage level the resulting cells are tagged with
        coverer: Coverer override (defaults to AREA_COVERER)

    Returns:
        List of GeoHash, to be treated as a set

    Raises:
        InvalidCoordinate: If the center is out of range
        InvalidRadius: If the radius is negative or not finite
    """
    validate_coordinate(center, "search center")
    if not math.isfinite(radius) or radius < 0:
        raise InvalidRadius(radius)
    angle = s2sphere.Angle.from_radians(radius / EARTH_RADIUS_METERS)
    region = s2sphere.Cap.from_axis_angle(to_point(center), angle)
    return _cover(region, resolve_coverer(coverer, AREA_COVERER), level, "radius")


def hashes_from_bbox(
    ne: Coordinate,
    sw: Coordinate,
    level: int,
    coverer: Optional[RegionCovererConfig] = None,
) -> List[GeoHash]:
    """
    Cover the smallest lat/lng rectangle containing both corners.

    The corner roles are not enforced: swapped corners describe the same
    rectangle.

    Raises:
        InvalidCoordinate: If either corner is out of range
    """
    validate_coordinate(ne, "bounding box north-east corner")
    validate_coordinate(sw, "bounding box south-west corner")
    region = s2sphere.LatLngRect.from_point_pair(
        s2sphere.LatLng.from_degrees(ne.latitude, ne.longitude),
        s2sphere.LatLng.from_degrees(sw.latitude, sw.longitude),
    )
    return _cover(region, resolve_coverer(coverer, AREA_COVERER), level, "bbox")


def hashes_from_route(
    path: Sequence[Coordinate],
    level: int,
    coverer: Optional[RegionCovererConfig] = None,
) -> List[GeoHash]:
    """
    Cover a polyline through the path.

    The cells along the line are wider than the line itself, which acts as
    an implicit corridor around the route.

    Raises:
        InvalidPath: If the path has fewer than 2 points
        InvalidCoordinate: If any point is out of range
    """
    if len(path) < 2:
        raise InvalidPath(len(path))
    for point in path:
        validate_coordinate(point, "route point")
    region = PolylineRegion([to_point(point) for point in path])
    return _cover(region, resolve_coverer(coverer, POLYLINE_COVERER), level, "route")


def _ranges_for(geo_hash: GeoHash) -> Iterator[KeyRange]:
    cell = s2sphere.CellId(geo_hash.cell_id)
    level = geo_hash.level
    if level < MIN_LEVEL or level > MAX_LEVEL or cell.level() >= level:
        yield KeyRange(geo_hash.trimmed, geo_hash.min, geo_hash.max)
        return

    expansion = 4 ** (level - cell.level())
    if expansion > PARTITION_EXPANSION_WARNING:
        logger.warning(
            "covering cell at level %d expands into %d partitions at level %d",
            cell.level(), expansion, level,
        )
    child = cell.child_begin(level)
    end = cell.child_end(level)
    while child != end:
        yield KeyRange(child.id(), child.range_min().id(), child.range_max().id())
        child = child.next()


def key_ranges(hashes: Iterable[GeoHash]) -> List[KeyRange]:
    """
    Turn re-tagged covering cells into range scans.

    A cell at or below the storage level lies inside a single partition (its
    trimmed ID) and scans its own subtree there. A cell coarser than the
    storage level spans several partitions and is expanded into all of them.

    Args:
        hashes: Covering cells tagged with the storage level

    Returns:
        Unique key ranges, in covering order
    """
    seen = set()
    ranges = []
    for geo_hash in hashes:
        for key_range in _ranges_for(geo_hash):
            if key_range not in seen:
                seen.add(key_range)
                ranges.append(key_range)
    return ranges
