"""
Spatial indexing using the S2 hierarchical cell system.

Every coordinate maps to a leaf cell (level 30, ~1cm). Coarser ancestors are
derived by trimming the leaf id to a level, and every cell covers a closed,
contiguous range of leaf ids, which is what makes range scans on a key-value
store work.

Level guide (average cell edge):
    9  = ~18km
    13 = ~1.1km
    15 = ~280m
    30 = ~1cm (leaf)
"""
import math
from dataclasses import dataclass
from typing import Sequence

import s2sphere

from .errors import InvalidCoordinate, InvalidLevel
from .models import Coordinate, MAX_LEVEL, MIN_LEVEL

EARTH_RADIUS_METERS = 6371000.0

MIN_LATITUDE = -90.0
MAX_LATITUDE = 90.0
MIN_LONGITUDE = -180.0
MAX_LONGITUDE = 180.0


def is_valid_latlon(lat: float, lon: float) -> bool:
    """Check latitude/longitude bounds (NaN is never valid)."""
    return (MIN_LATITUDE <= lat <= MAX_LATITUDE
            and MIN_LONGITUDE <= lon <= MAX_LONGITUDE)


def validate_coordinate(coordinate: Coordinate, context: str = "coordinates") -> Coordinate:
    """
    Reject an out-of-range coordinate.

    Args:
        coordinate: Coordinate to check
        context: What the coordinate is used for, included in the error

    Returns:
        The same coordinate, for chaining

    Raises:
        InvalidCoordinate: If latitude or longitude is out of range
    """
    if not is_valid_latlon(coordinate.latitude, coordinate.longitude):
        raise InvalidCoordinate(coordinate.latitude, coordinate.longitude, context)
    return coordinate


def to_point(coordinate: Coordinate) -> s2sphere.Point:
    """Unit vector on the sphere for a coordinate."""
    return s2sphere.LatLng.from_degrees(coordinate.latitude, coordinate.longitude).to_point()


def latlon_to_cell(lat: float, lon: float) -> int:
    """
    Convert lat/lon to a leaf S2 cell ID.

    Args:
        lat: Latitude
        lon: Longitude

    Returns:
        64-bit leaf cell ID (e.g. 9749618446378729607)

    Raises:
        InvalidCoordinate: If lat/lon is out of range
    """
    if not is_valid_latlon(lat, lon):
        raise InvalidCoordinate(lat, lon)
    return s2sphere.CellId.from_lat_lng(s2sphere.LatLng.from_degrees(lat, lon)).id()


def encode(coordinate: Coordinate) -> int:
    """Leaf cell ID for a coordinate."""
    return latlon_to_cell(coordinate.latitude, coordinate.longitude)


def trim(cell_id: int, level: int) -> int:
    """
    Get the cell at `level` on the path of `cell_id`.

    For an ancestor level this is the ancestor. Levels outside [0, 30] mean
    "no trimming" and return the ID unchanged.

    Args:
        cell_id: S2 cell ID
        level: Target level

    Returns:
        Trimmed cell ID
    """
    if level < MIN_LEVEL or level > MAX_LEVEL:
        return cell_id
    cell = s2sphere.CellId(cell_id)
    # pos() keeps the leaf position, so a coarse cell re-tagged at a finer
    # level resolves to the descendant on its center path
    return s2sphere.CellId.from_face_pos_level(cell.face(), cell.pos(), level).id()


def range_min(cell_id: int) -> int:
    """Smallest leaf cell ID in the subtree of `cell_id`."""
    return s2sphere.CellId(cell_id).range_min().id()


def range_max(cell_id: int) -> int:
    """Largest leaf cell ID in the subtree of `cell_id`."""
    return s2sphere.CellId(cell_id).range_max().id()


def cell_level(cell_id: int) -> int:
    """Level encoded in a cell ID (30 for leaves)."""
    return s2sphere.CellId(cell_id).level()


def cell_to_latlon(cell_id: int) -> tuple[float, float]:
    """
    Convert an S2 cell ID back to lat/lon (center of the cell).

    Args:
        cell_id: S2 cell ID

    Returns:
        Tuple of (lat, lon)
    """
    latlng = s2sphere.CellId(cell_id).to_lat_lng()
    return latlng.lat().degrees, latlng.lng().degrees


def distance_meters(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance between two coordinates."""
    return to_point(a).angle(to_point(b)) * EARTH_RADIUS_METERS


def _edge_distance(x: s2sphere.Point, a: s2sphere.Point, b: s2sphere.Point) -> float:
    # Angle between x and the great-circle edge AB
    normal = a.cross_prod(b)
    if normal.norm() > 0 and x.dot_prod(normal.cross_prod(a)) > 0 and x.dot_prod(b.cross_prod(normal)) > 0:
        return math.asin(min(1.0, abs(x.dot_prod(normal)) / normal.norm()))
    return min(x.angle(a), x.angle(b))


def distance_to_path_meters(coordinate: Coordinate, path: Sequence[Coordinate]) -> float:
    """
    Shortest great-circle distance from a coordinate to a polyline.

    Args:
        coordinate: Point to measure from
        path: Polyline vertices (at least one)

    Returns:
        Distance in meters
    """
    x = to_point(coordinate)
    points = [to_point(p) for p in path]
    if len(points) == 1:
        return x.angle(points[0]) * EARTH_RADIUS_METERS
    return min(_edge_distance(x, a, b) for a, b in zip(points, points[1:])) * EARTH_RADIUS_METERS


def bbox_contains(ne: Coordinate, sw: Coordinate, coordinate: Coordinate) -> bool:
    """Whether a coordinate lies in the smallest rectangle spanned by two corners."""
    rect = s2sphere.LatLngRect.from_point_pair(
        s2sphere.LatLng.from_degrees(ne.latitude, ne.longitude),
        s2sphere.LatLng.from_degrees(sw.latitude, sw.longitude),
    )
    return rect.contains(s2sphere.LatLng.from_degrees(coordinate.latitude, coordinate.longitude))


@dataclass(frozen=True)
class GeoHash:
    """
    A cell ID tagged with the storage level it is trimmed to.

    Hides the S2 details from the attribute and repository layers: `hash` is
    the raw ID, `trimmed` the ID at `level`, `min`/`max` the subtree range.
    """
    cell_id: int
    level: int

    @classmethod
    def from_coordinate(cls, coordinate: Coordinate, level: int) -> "GeoHash":
        encoded = encode(coordinate)
        if level < MIN_LEVEL or level > MAX_LEVEL:
            raise InvalidLevel(level)
        return cls(cell_id=encoded, level=level)

    @property
    def hash(self) -> int:
        return self.cell_id

    @property
    def trimmed(self) -> int:
        return trim(self.cell_id, self.level)

    @property
    def min(self) -> int:
        return range_min(self.cell_id)

    @property
    def max(self) -> int:
        return range_max(self.cell_id)
