"""
Error taxonomy for the geo indexing core.

Every error carries the offending value(s) so callers can diagnose a failure
without re-deriving it. Nothing in the core retries; retries belong to the
I/O layer.
"""


class GeoIndexError(Exception):
    """Base class for all geo indexing errors."""


class InvalidCoordinate(GeoIndexError, ValueError):
    """Latitude or longitude outside [-90, 90] / [-180, 180]."""

    def __init__(self, latitude: float, longitude: float, context: str = "coordinates"):
        self.latitude = latitude
        self.longitude = longitude
        super().__init__(f"invalid {context}: latitude={latitude}, longitude={longitude}")


class InvalidLevel(GeoIndexError, ValueError):
    """Precision level outside [0, 30] used to select precision at construction time."""

    def __init__(self, level: int, reason: str = "level must be between 0 and 30"):
        self.level = level
        super().__init__(f"invalid level: {level}, {reason}")


class InvalidPath(GeoIndexError, ValueError):
    """Route with fewer than two points."""

    def __init__(self, length: int):
        self.length = length
        super().__init__(f"invalid path: length={length}, a route needs at least 2 points")


class InvalidRadius(GeoIndexError, ValueError):
    """Negative or non-finite search radius."""

    def __init__(self, radius: float):
        self.radius = radius
        super().__init__(f"invalid radius: {radius}, radius must be a finite number of meters >= 0")


class TooManyIndices(GeoIndexError, ValueError):
    """More geo index configurations than a single record may carry."""

    def __init__(self, count: int, maximum: int):
        self.count = count
        self.maximum = maximum
        super().__init__(
            f"maximum number of geo indices exceeded, maximum is {maximum}, but got {count}"
        )


class DuplicateIndex(GeoIndexError, ValueError):
    """Two configurations on one record share an index name."""

    def __init__(self, index_name: str):
        self.index_name = index_name
        super().__init__(f"duplicate geo index name: {index_name!r}")


class DuplicateAttribute(GeoIndexError, ValueError):
    """Two geo hash attributes of one record would be written under the same name."""

    def __init__(self, attribute_name: str):
        self.attribute_name = attribute_name
        super().__init__(f"duplicate geo hash attribute name: {attribute_name!r}")


class MalformedAttributeValue(GeoIndexError, TypeError):
    """Attribute value of the wrong structural shape during deserialization."""

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(f"expected {expected} attribute value, got {actual}")


class UnsupportedType(GeoIndexError, TypeError):
    """Value that neither the primitive fast path nor the fallback codec can handle."""

    def __init__(self, type_name: str, reason: str = ""):
        self.type_name = type_name
        message = f"unsupported type: {type_name}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class EmptyCovering(GeoIndexError, RuntimeError):
    """The coverer produced no cells for a valid, non-degenerate region."""

    def __init__(self, query: str):
        self.query = query
        super().__init__(f"covering for {query} query is empty")


class UnknownIndex(GeoIndexError, LookupError):
    """Query against a geo index the repository was not configured with."""

    def __init__(self, index_name: str):
        self.index_name = index_name
        super().__init__(f"unknown geo index: {index_name!r}")
