from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .errors import InvalidLevel

# S2 hierarchy levels: 0 = face cell, 30 = leaf cell (~1cm)
MIN_LEVEL = 0
MAX_LEVEL = 30

# A single record may participate in at most this many geo indices
MAX_GEO_INDICES = 10


class Coordinate(BaseModel):
    """
    Latitude/longitude pair in degrees.

    Only the types are checked here. Ranges are checked by every operation
    that accepts a coordinate (see grid.validate_coordinate) so that an
    out-of-range value raises InvalidCoordinate instead of being clamped.
    """
    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float


@dataclass(frozen=True)
class GeoIndexConfig:
    """
    Metadata of one spatial index a record can participate in.

    hash_key_attribute_name holds the leaf cell id, sort_key_attribute_name
    holds the cell id trimmed to `level`. An empty attribute name means the
    attribute is not written.
    """
    hash_key_attribute_name: str
    sort_key_attribute_name: str
    index_name: str
    level: int

    def __post_init__(self):
        if not MIN_LEVEL <= self.level <= MAX_LEVEL:
            raise InvalidLevel(self.level)


@dataclass(frozen=True)
class RegionCovererConfig:
    """Level/cardinality trade-off used when covering query regions."""
    min_level: int
    max_level: int
    max_cells: int
    level_mod: int = 1

    def __post_init__(self):
        for level in (self.min_level, self.max_level):
            if not MIN_LEVEL <= level <= MAX_LEVEL:
                raise InvalidLevel(level)
        if self.min_level > self.max_level:
            raise InvalidLevel(
                self.min_level,
                f"min_level must not exceed max_level ({self.max_level})",
            )
        if self.max_cells < 1:
            raise ValueError(f"max_cells must be >= 1, got {self.max_cells}")
        if self.level_mod not in (1, 2, 3):
            raise ValueError(f"level_mod must be 1, 2 or 3, got {self.level_mod}")


class GeoItem(BaseModel):
    """A record stored with geo index attributes."""
    id: str = Field(..., min_length=1)
    latitude: float
    longitude: float
    data: Dict[str, Any] = Field(default_factory=dict)

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(latitude=self.latitude, longitude=self.longitude)


class BatchGeoItemRequest(BaseModel):
    """Batch of items for high-volume ingestion."""
    items: List[GeoItem] = Field(..., min_length=1, max_length=1000, description="List of items (max 1000)")


class RouteQuery(BaseModel):
    """Ordered path of coordinates describing a route corridor."""
    path: List[Coordinate]
    index: Optional[str] = Field(default=None, description="Geo index to query (defaults to the first)")
    buffer_meters: Optional[float] = Field(default=None, ge=0, description="Corridor half-width used to post-filter candidates")
