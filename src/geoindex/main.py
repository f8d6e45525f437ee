"""
Geo Index API
FastAPI application storing items in Redis under S2 cell indices and answering
radius, bounding box and route queries.
"""
import logging
import time
from typing import Optional

from fastapi import FastAPI, HTTPException, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from redis.exceptions import RedisError

from src.geoindex import metrics
from src.geoindex.config import LOG_LEVEL, ROUTE_BUFFER_METERS, get_index_configs
from src.geoindex.errors import GeoIndexError, UnknownIndex
from src.geoindex.grid import (
    bbox_contains,
    distance_meters,
    distance_to_path_meters,
    encode,
    range_max,
    range_min,
    trim,
)
from src.geoindex.models import BatchGeoItemRequest, Coordinate, GeoItem, RouteQuery
from src.geoindex.redis_client import get_redis_client
from src.geoindex.repository import GeoRecord, GeoRepository, QueryResult

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

INDEX_CONFIGS = get_index_configs()


def get_repository() -> GeoRepository:
    return GeoRepository(get_redis_client(), INDEX_CONFIGS)


def to_http_error(exc: GeoIndexError) -> HTTPException:
    """
    Translate a core error into an HTTP error.

    Unknown indices are 404, everything else is a bad request.
    """
    logger.info("rejected request: %s", exc)
    if isinstance(exc, UnknownIndex):
        return HTTPException(status_code=404, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def record_to_dict(record: GeoRecord, **extra) -> dict:
    data = record.item.model_dump()
    data["geo_hashes"] = {
        index: {
            "geo_hash": record.geo.geo.geo_hash(index),
            "trimmed_geo_hash": record.geo.geo.trimmed_geo_hash(index),
            "level": record.geo.geo.geo_index_level(index),
        }
        for index in record.geo.geo.geo_indices()
    }
    data.update(extra)
    return data


def query_response(result: QueryResult, items: list) -> dict:
    return {
        "index": result.index_name,
        "cells": result.cells,
        "ranges": result.ranges,
        "candidates": len(result.candidates),
        "total_items": len(items),
        "items": items,
    }


# Initialize FastAPI application
app = FastAPI(
    title="Geo Index",
    description="Spatial queries over Redis using hierarchical S2 cell indexing",
    version="1.0.0"
)


@app.get("/metrics")
def get_metrics():
    """
    Prometheus metrics endpoint.

    Returns:
        Response: Prometheus-formatted metrics
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
        dict: API status, Redis connection status and configured indices
    """
    try:
        redis_client = get_redis_client()
        redis_client.ping()
        redis_status = "connected"
        metrics.redis_operations_total.labels(operation="ping", status="success").inc()
    except RedisError:
        redis_status = "disconnected"
        metrics.redis_operations_total.labels(operation="ping", status="error").inc()

    return {
        "status": "healthy",
        "redis": redis_status,
        "indices": {config.index_name: config.level for config in INDEX_CONFIGS},
    }


@app.get("/v1/cells")
def get_cells(lat: float, lon: float):
    """
    Show how a coordinate is indexed.

    Args:
        lat: Latitude
        lon: Longitude

    Returns:
        dict: Leaf cell ID plus, per index, the trimmed cell and the leaf
            range it covers (the bounds of a range scan over that partition)
    """
    coordinate = Coordinate(latitude=lat, longitude=lon)
    try:
        cell_id = encode(coordinate)
    except GeoIndexError as exc:
        raise to_http_error(exc)

    indices = []
    for config in INDEX_CONFIGS:
        trimmed = trim(cell_id, config.level)
        indices.append({
            "index": config.index_name,
            "level": config.level,
            "trimmed_geo_hash": trimmed,
            "range_min": range_min(trimmed),
            "range_max": range_max(trimmed),
        })

    return {"cell_id": cell_id, "indices": indices}


@app.post("/v1/items")
def create_item(item: GeoItem):
    """
    Store an item under every configured geo index.

    Process:
    1. Encode the coordinate to a leaf S2 cell
    2. Trim the leaf cell to each index level (the partition)
    3. Write the item document and one sorted set entry per index

    Raises:
        HTTPException 400: If the coordinate is out of range
    """
    start_time = time.time()
    repository = get_repository()

    try:
        record = repository.put_item(item)
    except GeoIndexError as exc:
        metrics.item_writes_total.labels(status="invalid").inc()
        raise to_http_error(exc)

    metrics.item_writes_total.labels(status="success").inc()
    metrics.request_duration_seconds.labels(endpoint="create_item").observe(time.time() - start_time)

    return {"message": "Item stored", **record_to_dict(record)}


@app.post("/v1/items/batch")
def create_items_batch(batch: BatchGeoItemRequest):
    """
    Store several items in a single Redis pipeline.

    The batch is all-or-nothing: one invalid coordinate rejects every item.

    Raises:
        HTTPException 400: If any coordinate is out of range
    """
    start_time = time.time()
    repository = get_repository()

    try:
        records = repository.batch_put_items(batch.items)
    except GeoIndexError as exc:
        metrics.item_writes_total.labels(status="invalid").inc()
        raise to_http_error(exc)

    metrics.item_writes_total.labels(status="success").inc(len(records))
    metrics.request_duration_seconds.labels(endpoint="create_items_batch").observe(time.time() - start_time)

    return {
        "message": "Batch processed",
        "total_items": len(records),
        "processing_time_ms": round((time.time() - start_time) * 1000, 2)
    }


@app.get("/v1/items/radius")
def items_in_radius(lat: float, lon: float, radius: float = 1000, index: Optional[str] = None):
    """
    Find items within `radius` meters of a point.

    Candidates come from range scans over the cells covering the circle and
    are post-filtered by great-circle distance.

    Args:
        lat: Latitude of the center
        lon: Longitude of the center
        radius: Radius in meters
        index: Geo index to query (defaults to the first configured one)

    Returns:
        dict: Query statistics and matching items sorted by distance
    """
    start_time = time.time()
    center = Coordinate(latitude=lat, longitude=lon)

    try:
        result = get_repository().get_items_in_radius(center, radius, index_name=index)
    except GeoIndexError as exc:
        metrics.query_requests_total.labels(query="radius", status="invalid").inc()
        raise to_http_error(exc)

    items = []
    for record in result.candidates:
        distance = distance_meters(center, record.item.coordinate)
        if distance <= radius:
            items.append(record_to_dict(record, distance_m=round(distance, 1)))
    items.sort(key=lambda x: x["distance_m"])

    metrics.query_requests_total.labels(query="radius", status="success").inc()
    metrics.covering_cells.labels(query="radius").observe(result.cells)
    metrics.candidates_per_query.labels(query="radius").observe(len(result.candidates))
    metrics.request_duration_seconds.labels(endpoint="items_in_radius").observe(time.time() - start_time)

    return query_response(result, items)


@app.get("/v1/items/bbox")
def items_in_bbox(
    ne_lat: float,
    ne_lon: float,
    sw_lat: float,
    sw_lon: float,
    index: Optional[str] = None,
):
    """
    Find items inside a bounding box given by its north-east and south-west
    corners.

    Returns:
        dict: Query statistics and items inside the box
    """
    start_time = time.time()
    ne = Coordinate(latitude=ne_lat, longitude=ne_lon)
    sw = Coordinate(latitude=sw_lat, longitude=sw_lon)

    try:
        result = get_repository().get_items_in_bbox(ne, sw, index_name=index)
    except GeoIndexError as exc:
        metrics.query_requests_total.labels(query="bbox", status="invalid").inc()
        raise to_http_error(exc)

    items = [
        record_to_dict(record)
        for record in result.candidates
        if bbox_contains(ne, sw, record.item.coordinate)
    ]

    metrics.query_requests_total.labels(query="bbox", status="success").inc()
    metrics.covering_cells.labels(query="bbox").observe(result.cells)
    metrics.candidates_per_query.labels(query="bbox").observe(len(result.candidates))
    metrics.request_duration_seconds.labels(endpoint="items_in_bbox").observe(time.time() - start_time)

    return query_response(result, items)


@app.post("/v1/items/route")
def items_on_route(query: RouteQuery):
    """
    Find items along a route.

    Candidates come from the cells covering the polyline and are kept when
    they lie within `buffer_meters` of it.

    Returns:
        dict: Query statistics and matching items sorted by distance to the route
    """
    start_time = time.time()
    buffer_meters = ROUTE_BUFFER_METERS if query.buffer_meters is None else query.buffer_meters

    try:
        result = get_repository().get_items_on_route(query.path, index_name=query.index)
    except GeoIndexError as exc:
        metrics.query_requests_total.labels(query="route", status="invalid").inc()
        raise to_http_error(exc)

    items = []
    for record in result.candidates:
        distance = distance_to_path_meters(record.item.coordinate, query.path)
        if distance <= buffer_meters:
            items.append(record_to_dict(record, distance_m=round(distance, 1)))
    items.sort(key=lambda x: x["distance_m"])

    metrics.query_requests_total.labels(query="route", status="success").inc()
    metrics.covering_cells.labels(query="route").observe(result.cells)
    metrics.candidates_per_query.labels(query="route").observe(len(result.candidates))
    metrics.request_duration_seconds.labels(endpoint="items_on_route").observe(time.time() - start_time)

    return query_response(result, items)


@app.get("/v1/items/{item_id}")
def get_item(item_id: str):
    """
    Fetch a stored item with its decoded geo index attributes.

    Raises:
        HTTPException 404: If the item does not exist
    """
    record = get_repository().get_item(item_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Item {item_id!r} not found")
    return record_to_dict(record)
