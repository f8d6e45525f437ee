"""
Redis-backed geo repository.

Layout:
    <prefix>:item:<id>                      -> JSON document of the item
    <prefix>:idx:<index>:<trimmed hash>     -> sorted set of "<leaf hash>:<id>"

Every index entry has score 0 and the leaf hash is zero-padded to 20 digits,
so ZRANGEBYLEX over a member prefix is an exact range scan over 64-bit leaf
IDs (sorted set scores are doubles and cannot hold them exactly).

A query covers its region, turns the covering into key ranges (partition +
leaf range) and scans them in one pipeline. Results are candidates: callers
post-filter by true distance or containment.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from redis import Redis

from . import metrics
from .attributes import S2MultiGeoAttributes, check_index_configs
from .config import KEY_PREFIX
from .covering import (
    hashes_from_bbox,
    hashes_from_radius_center,
    hashes_from_route,
    key_ranges,
)
from .errors import MalformedAttributeValue, UnknownIndex
from .grid import GeoHash
from .models import Coordinate, GeoIndexConfig, GeoItem, RegionCovererConfig
from .serialization import AttributeValue

logger = logging.getLogger(__name__)


@dataclass
class GeoRecord:
    """A stored item together with its decoded geo index attributes."""
    item: GeoItem
    geo: S2MultiGeoAttributes


@dataclass
class QueryResult:
    """Candidates of a spatial query and what it took to find them."""
    index_name: str
    cells: int
    ranges: int
    candidates: List[GeoRecord] = field(default_factory=list)


def _member(leaf_hash: int, item_id: str) -> str:
    return f"{leaf_hash:020d}:{item_id}"


class GeoRepository:
    """Stores items under every configured geo index and answers spatial queries."""

    def __init__(
        self,
        redis_client: Redis,
        index_configs: Sequence[GeoIndexConfig],
        key_prefix: str = KEY_PREFIX,
    ):
        if not index_configs:
            raise ValueError("at least one geo index configuration is required")
        check_index_configs(index_configs)
        self.r = redis_client
        self.index_configs = list(index_configs)
        self.key_prefix = key_prefix
        self._configs_by_name = {config.index_name: config for config in self.index_configs}

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def item_key(self, item_id: str) -> str:
        return f"{self.key_prefix}:item:{item_id}"

    def partition_key(self, index_name: str, partition: int) -> str:
        return f"{self.key_prefix}:idx:{index_name}:{partition}"

    def index_config(self, index_name: Optional[str] = None) -> GeoIndexConfig:
        """Configuration of an index; the first one when no name is given."""
        if index_name is None:
            return self.index_configs[0]
        try:
            return self._configs_by_name[index_name]
        except KeyError:
            raise UnknownIndex(index_name) from None

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def _document(self, item: GeoItem, geo: S2MultiGeoAttributes) -> str:
        return json.dumps({
            "id": item.id,
            "data": item.model_dump(mode="json")["data"],
            "attributes": {name: av.to_wire() for name, av in geo.to_item().items()},
        })

    def _record_from_document(self, raw: str) -> GeoRecord:
        doc = json.loads(raw)
        attrs = {name: AttributeValue.from_wire(wire) for name, wire in doc["attributes"].items()}
        geo = S2MultiGeoAttributes.from_item(attrs, self.index_configs)
        if geo.coordinate is None:
            raise MalformedAttributeValue("latitude and longitude", "missing")
        item = GeoItem(
            id=doc["id"],
            latitude=geo.coordinate.latitude,
            longitude=geo.coordinate.longitude,
            data=doc.get("data") or {},
        )
        return GeoRecord(item=item, geo=geo)

    def _queue_index_entries(self, pipe, item_id: str, geo: S2MultiGeoAttributes, remove: bool = False) -> None:
        for geo_attr in geo.geo.attributes.values():
            if geo_attr.geo_hash is None or geo_attr.trimmed_geo_hash is None:
                continue
            key = self.partition_key(geo_attr.index_name, geo_attr.trimmed_geo_hash)
            member = _member(geo_attr.geo_hash, item_id)
            if remove:
                pipe.zrem(key, member)
            else:
                pipe.zadd(key, {member: 0})

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def put_item(self, item: GeoItem) -> GeoRecord:
        """
        Write an item and its entries in every configured index.

        Entries of a previous version of the item are removed, so moving an
        item does not leave it discoverable at its old location.

        Raises:
            InvalidCoordinate: If the item's coordinate is out of range
        """
        return self.batch_put_items([item])[0]

    def batch_put_items(self, items: Sequence[GeoItem]) -> List[GeoRecord]:
        """
        Write several items in a single pipeline.

        All items are encoded before anything is written: one invalid
        coordinate aborts the whole batch. When an ID appears more than once
        the last occurrence wins, and one record is returned per ID.
        """
        encoded = [(item, S2MultiGeoAttributes.create(self.index_configs, item.coordinate)) for item in items]
        # Keyed by ID: first-seen position, last-seen value
        encoded = list({item.id: (item, geo) for item, geo in encoded}.values())

        previous = self.r.mget([self.item_key(item.id) for item, _ in encoded]) if encoded else []

        pipe = self.r.pipeline()
        for (item, geo), old_raw in zip(encoded, previous):
            if old_raw is not None:
                old = self._record_from_document(old_raw)
                self._queue_index_entries(pipe, item.id, old.geo, remove=True)
            pipe.set(self.item_key(item.id), self._document(item, geo))
            self._queue_index_entries(pipe, item.id, geo)
        pipe.execute()
        metrics.redis_operations_total.labels(operation="pipeline_put", status="success").inc()

        logger.debug("stored %d items in %d geo indices", len(encoded), len(self.index_configs))
        return [GeoRecord(item=item, geo=geo) for item, geo in encoded]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_item(self, item_id: str) -> Optional[GeoRecord]:
        raw = self.r.get(self.item_key(item_id))
        metrics.redis_operations_total.labels(operation="get", status="success").inc()
        if raw is None:
            return None
        return self._record_from_document(raw)

    def get_item_by_geo_hash(
        self,
        geo_hash: int,
        trimmed_geo_hash: int,
        index_name: Optional[str] = None,
    ) -> Optional[GeoRecord]:
        """First item stored under an exact (trimmed hash, leaf hash) key."""
        config = self.index_config(index_name)
        members = self.r.zrangebylex(
            self.partition_key(config.index_name, trimmed_geo_hash),
            f"[{geo_hash:020d}:",
            f"[{geo_hash:020d};",
            start=0,
            num=1,
        )
        metrics.redis_operations_total.labels(operation="zrangebylex", status="success").inc()
        if not members:
            return None
        return self.get_item(members[0].split(":", 1)[1])

    def _load_records(self, item_ids: List[str]) -> List[GeoRecord]:
        if not item_ids:
            return []
        docs = self.r.mget([self.item_key(item_id) for item_id in item_ids])
        metrics.redis_operations_total.labels(operation="mget", status="success").inc()
        # Skip entries whose document is gone
        return [self._record_from_document(raw) for raw in docs if raw is not None]

    def _scan(self, hashes: Iterable[GeoHash], config: GeoIndexConfig) -> QueryResult:
        hashes = list(hashes)
        ranges = key_ranges(hashes)

        pipe = self.r.pipeline()
        for key_range in ranges:
            pipe.zrangebylex(
                self.partition_key(config.index_name, key_range.partition),
                f"[{key_range.lower:020d}:",
                f"[{key_range.upper:020d};",
            )
        results = pipe.execute()
        metrics.redis_operations_total.labels(operation="pipeline_scan", status="success").inc()

        # Unique IDs, first-seen order
        item_ids = dict.fromkeys(
            member.split(":", 1)[1]
            for members in results
            for member in members
        )
        logger.debug(
            "scanned %d ranges from %d cells in index %s: %d candidates",
            len(ranges), len(hashes), config.index_name, len(item_ids),
        )
        return QueryResult(
            index_name=config.index_name,
            cells=len(hashes),
            ranges=len(ranges),
            candidates=self._load_records(list(item_ids)),
        )

    def get_items_in_radius(
        self,
        center: Coordinate,
        radius: float,
        index_name: Optional[str] = None,
        coverer: Optional[RegionCovererConfig] = None,
    ) -> QueryResult:
        config = self.index_config(index_name)
        return self._scan(hashes_from_radius_center(center, radius, config.level, coverer), config)

    def get_items_in_bbox(
        self,
        ne: Coordinate,
        sw: Coordinate,
        index_name: Optional[str] = None,
        coverer: Optional[RegionCovererConfig] = None,
    ) -> QueryResult:
        config = self.index_config(index_name)
        return self._scan(hashes_from_bbox(ne, sw, config.level, coverer), config)

    def get_items_on_route(
        self,
        path: Sequence[Coordinate],
        index_name: Optional[str] = None,
        coverer: Optional[RegionCovererConfig] = None,
    ) -> QueryResult:
        config = self.index_config(index_name)
        return self._scan(hashes_from_route(path, config.level, coverer), config)
