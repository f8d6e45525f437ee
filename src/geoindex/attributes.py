"""
Bind encoded coordinates to named store attributes.

A GeoAttributes value holds the leaf hash and the trimmed hash of one
coordinate for one GeoIndexConfig, and knows under which attribute names
they are written. MultiGeoAttributes fans the same coordinate out over
several configurations so one record can be found through several indices
(e.g. a coarse city-level index and a fine street-level index).

Reading back is the inverse of writing, but only for configurations the
receiver already knows: attribute names alone do not tell which index they
belong to, so configurations are always supplied before unmarshaling.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .errors import DuplicateAttribute, DuplicateIndex, MalformedAttributeValue, TooManyIndices
from .grid import GeoHash
from .models import MAX_GEO_INDICES, Coordinate, GeoIndexConfig
from .serialization import AttributeType, AttributeValue, HashKind, marshal_value, unmarshal_value

LATITUDE_ATTRIBUTE = "latitude"
LONGITUDE_ATTRIBUTE = "longitude"


def _expect_map(av: Any) -> Dict[str, AttributeValue]:
    if not isinstance(av, AttributeValue):
        raise MalformedAttributeValue(AttributeType.MAP.value, type(av).__name__)
    if av.type is not AttributeType.MAP:
        raise MalformedAttributeValue(AttributeType.MAP.value, av.type.value)
    return av.value


def check_index_configs(configs: Sequence[GeoIndexConfig]) -> None:
    """
    Raises:
        TooManyIndices: If more than MAX_GEO_INDICES configurations are given
        DuplicateIndex: If two configurations share an index name
        DuplicateAttribute: If an attribute name is used twice, within one
            configuration or across several, or shadows a coordinate
            attribute
    """
    if len(configs) > MAX_GEO_INDICES:
        raise TooManyIndices(len(configs), MAX_GEO_INDICES)
    seen = set()
    attribute_names = set()
    for config in configs:
        if config.index_name in seen:
            raise DuplicateIndex(config.index_name)
        seen.add(config.index_name)
        for name in (config.hash_key_attribute_name, config.sort_key_attribute_name):
            if not name:
                continue
            if name in attribute_names or name in (LATITUDE_ATTRIBUTE, LONGITUDE_ATTRIBUTE):
                raise DuplicateAttribute(name)
            attribute_names.add(name)


@dataclass
class GeoAttributes:
    """Leaf and trimmed hash of one coordinate for one geo index."""
    config: GeoIndexConfig
    geo_hash: Any = None
    trimmed_geo_hash: Any = None
    kind: Optional[HashKind] = HashKind.UINT64
    # Target type for the fallback codec, used when kind is None
    value_type: Any = None

    @property
    def index_name(self) -> str:
        return self.config.index_name

    @property
    def level(self) -> int:
        return self.config.level

    @property
    def hash_key_attribute_name(self) -> str:
        return self.config.hash_key_attribute_name

    @property
    def sort_key_attribute_name(self) -> str:
        return self.config.sort_key_attribute_name

    def attribute_names(self) -> List[str]:
        return [name for name in (self.hash_key_attribute_name, self.sort_key_attribute_name) if name]

    def marshal(self) -> AttributeValue:
        """
        Map with the hash under the hash key attribute name and the trimmed
        hash under the sort key attribute name. Empty names and unset
        (None) hashes are skipped, so a partially loaded value marshals
        to a partial map.
        """
        attrs = {}
        if self.hash_key_attribute_name and self.geo_hash is not None:
            attrs[self.hash_key_attribute_name] = marshal_value(self.geo_hash, self.kind)
        if self.sort_key_attribute_name and self.trimmed_geo_hash is not None:
            attrs[self.sort_key_attribute_name] = marshal_value(self.trimmed_geo_hash, self.kind)
        return AttributeValue.map(attrs)

    def unmarshal(self, av: AttributeValue) -> None:
        """
        Load the hashes from a map attribute value.

        Keys missing from the map leave the corresponding field untouched,
        so partial projections can be loaded.

        Raises:
            MalformedAttributeValue: If `av` is not a map, or a present key
                does not hold a value of the expected kind
        """
        attrs = _expect_map(av)
        if self.hash_key_attribute_name and self.hash_key_attribute_name in attrs:
            self.geo_hash = unmarshal_value(attrs[self.hash_key_attribute_name], self.kind, self.value_type)
        if self.sort_key_attribute_name and self.sort_key_attribute_name in attrs:
            self.trimmed_geo_hash = unmarshal_value(attrs[self.sort_key_attribute_name], self.kind, self.value_type)


@dataclass
class MultiGeoAttributes:
    """GeoAttributes of one coordinate, keyed by index name."""
    attributes: Dict[str, GeoAttributes] = field(default_factory=dict)

    @classmethod
    def expecting(
        cls,
        configs: Sequence[GeoIndexConfig],
        kind: Optional[HashKind] = HashKind.UINT64,
        value_type: Any = None,
    ) -> "MultiGeoAttributes":
        """Empty receiver for unmarshaling attributes of known indices."""
        check_index_configs(configs)
        return cls({
            config.index_name: GeoAttributes(config, kind=kind, value_type=value_type)
            for config in configs
        })

    def geo_hash(self, index: str) -> Any:
        geo_attr = self.attributes.get(index)
        return geo_attr.geo_hash if geo_attr is not None else None

    def trimmed_geo_hash(self, index: str) -> Any:
        geo_attr = self.attributes.get(index)
        return geo_attr.trimmed_geo_hash if geo_attr is not None else None

    def geo_indices(self) -> List[str]:
        return list(self.attributes)

    def geo_index_level(self, index: str) -> int:
        """Level of an index, -1 if the index is unknown."""
        geo_attr = self.attributes.get(index)
        return geo_attr.level if geo_attr is not None else -1

    def marshal(self) -> AttributeValue:
        """All indices' attributes merged into one flat map."""
        merged = {}
        for geo_attr in self.attributes.values():
            merged.update(geo_attr.marshal().value)
        return AttributeValue.map(merged)

    def unmarshal(self, av: AttributeValue) -> None:
        """
        Distribute a flat map over the known indices.

        Raises:
            MalformedAttributeValue: If `av` is not a map or an index's
                attributes cannot be decoded
        """
        attrs = _expect_map(av)
        for geo_attr in self.attributes.values():
            index_attrs = {name: attrs[name] for name in geo_attr.attribute_names() if name in attrs}
            geo_attr.unmarshal(AttributeValue.map(index_attrs))


def _coordinate_attributes(coordinate: Optional[Coordinate]) -> Dict[str, AttributeValue]:
    if coordinate is None:
        return {}
    return {
        LATITUDE_ATTRIBUTE: marshal_value(coordinate.latitude),
        LONGITUDE_ATTRIBUTE: marshal_value(coordinate.longitude),
    }


def _coordinate_from_item(item: Mapping[str, AttributeValue]) -> Optional[Coordinate]:
    # A projection without the coordinate leaves it unset. Half a
    # coordinate cannot be represented.
    present = [name for name in (LATITUDE_ATTRIBUTE, LONGITUDE_ATTRIBUTE) if name in item]
    if not present:
        return None
    for name in (LATITUDE_ATTRIBUTE, LONGITUDE_ATTRIBUTE):
        if name not in present:
            raise MalformedAttributeValue(f"{name} number", "missing")
    return Coordinate(
        latitude=unmarshal_value(item[LATITUDE_ATTRIBUTE], target=float),
        longitude=unmarshal_value(item[LONGITUDE_ATTRIBUTE], target=float),
    )


@dataclass
class S2GeoAttributes:
    """A coordinate and its S2 hashes for a single index."""
    coordinate: Optional[Coordinate]
    geo: GeoAttributes

    @classmethod
    def create(cls, config: GeoIndexConfig, coordinate: Coordinate) -> "S2GeoAttributes":
        """
        Raises:
            InvalidCoordinate: If the coordinate is out of range
        """
        geo_hash = GeoHash.from_coordinate(coordinate, config.level)
        return cls(coordinate, GeoAttributes(config, geo_hash.hash, geo_hash.trimmed))

    @property
    def geo_hash(self) -> int:
        return self.geo.geo_hash

    @property
    def trimmed_geo_hash(self) -> int:
        return self.geo.trimmed_geo_hash

    def to_item(self) -> Dict[str, AttributeValue]:
        item = _coordinate_attributes(self.coordinate)
        item.update(self.geo.marshal().value)
        return item

    @classmethod
    def from_item(cls, item: Mapping[str, AttributeValue], config: GeoIndexConfig) -> "S2GeoAttributes":
        geo = GeoAttributes(config)
        geo.unmarshal(AttributeValue.map(item))
        return cls(_coordinate_from_item(item), geo)


@dataclass
class S2MultiGeoAttributes:
    """A coordinate and its S2 hashes for several indices."""
    coordinate: Optional[Coordinate]
    geo: MultiGeoAttributes

    @classmethod
    def create(cls, configs: Sequence[GeoIndexConfig], coordinate: Coordinate) -> "S2MultiGeoAttributes":
        """
        Encode the coordinate once per configuration.

        Either every index is populated or an error is raised; a partially
        indexed record is never returned.

        Raises:
            TooManyIndices: If more than 10 configurations are given
            DuplicateIndex: If two configurations share an index name
            DuplicateAttribute: If two configurations share an attribute name
            InvalidCoordinate: If the coordinate is out of range
        """
        check_index_configs(configs)
        attributes = {}
        for config in configs:
            geo_hash = GeoHash.from_coordinate(coordinate, config.level)
            attributes[config.index_name] = GeoAttributes(config, geo_hash.hash, geo_hash.trimmed)
        return cls(coordinate, MultiGeoAttributes(attributes))

    def to_item(self) -> Dict[str, AttributeValue]:
        item = _coordinate_attributes(self.coordinate)
        item.update(self.geo.marshal().value)
        return item

    @classmethod
    def from_item(
        cls,
        item: Mapping[str, AttributeValue],
        configs: Sequence[GeoIndexConfig],
    ) -> "S2MultiGeoAttributes":
        geo = MultiGeoAttributes.expecting(configs)
        geo.unmarshal(AttributeValue.map(item))
        return cls(_coordinate_from_item(item), geo)
