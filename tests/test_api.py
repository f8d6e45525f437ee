"""
Integration tests for FastAPI endpoints.
"""
from unittest.mock import Mock, patch

import pytest
from fastapi.testclient import TestClient
from redis.exceptions import RedisError

from src.geoindex.attributes import S2MultiGeoAttributes
from src.geoindex.grid import encode, trim
from src.geoindex.main import app
from src.geoindex.models import GeoIndexConfig, GeoItem
from src.geoindex.repository import GeoRepository

CONFIGS = [
    GeoIndexConfig("city_geohash", "city_geohash_trimmed", "city", 9),
    GeoIndexConfig("district_geohash", "district_geohash_trimmed", "district", 11),
]

SF = {"id": "sf", "latitude": 37.7749, "longitude": -122.4194, "data": {"name": "Ferry Building"}}
# ~2.2km north of SF
NORTH = {"id": "north", "latitude": 37.7949, "longitude": -122.4194, "data": {}}
NYC = {"id": "nyc", "latitude": 40.7128, "longitude": -74.0060, "data": {}}


def document(raw):
    item = GeoItem(**raw)
    geo = S2MultiGeoAttributes.create(CONFIGS, item.coordinate)
    return GeoRepository(Mock(), CONFIGS)._document(item, geo)


def member(raw):
    item = GeoItem(**raw)
    return f"{encode(item.coordinate):020d}:{item.id}"


@pytest.fixture(autouse=True)
def index_configs():
    """Pin the geo indices regardless of the environment."""
    with patch("src.geoindex.main.INDEX_CONFIGS", CONFIGS):
        yield


@pytest.fixture
def client():
    """Create a test client for the FastAPI app."""
    return TestClient(app)


@pytest.fixture
def mock_pipe():
    """Create a mock Redis pipeline."""
    mock = Mock()
    mock.execute.return_value = []
    return mock


@pytest.fixture
def mock_redis(mock_pipe):
    """Create a mock Redis client with no stored items."""
    mock = Mock()
    mock.pipeline.return_value = mock_pipe
    mock.mget.return_value = [None]
    mock.get.return_value = None
    return mock


def stored(mock_redis, mock_pipe, *items):
    """Make every range scan find `items` and mget return their documents."""
    mock_pipe.execute.return_value = [[member(raw) for raw in items]]
    mock_redis.mget.return_value = [document(raw) for raw in items]


@pytest.mark.unit
class TestHealthEndpoint:
    """Test suite for /health endpoint."""

    def test_health_redis_connected(self, client, mock_redis):
        """Test health check when Redis is connected."""
        mock_redis.ping.return_value = True

        with patch("src.geoindex.main.get_redis_client", return_value=mock_redis):
            response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["redis"] == "connected"
        assert data["indices"] == {"city": 9, "district": 11}
        mock_redis.ping.assert_called_once()

    def test_health_redis_disconnected(self, client, mock_redis):
        """Test health check when Redis is disconnected."""
        mock_redis.ping.side_effect = RedisError("Connection failed")

        with patch("src.geoindex.main.get_redis_client", return_value=mock_redis):
            response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["redis"] == "disconnected"


@pytest.mark.unit
class TestMetricsEndpoint:
    """Test suite for /metrics endpoint."""

    def test_metrics(self, client):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "query_requests_total" in response.text


@pytest.mark.unit
class TestCellsEndpoint:
    """Test suite for GET /v1/cells endpoint."""

    def test_cells(self, client):
        response = client.get("/v1/cells?lat=37.7749&lon=-122.4194")

        assert response.status_code == 200
        data = response.json()
        leaf = encode(GeoItem(**SF).coordinate)
        assert data["cell_id"] == leaf
        assert [i["index"] for i in data["indices"]] == ["city", "district"]
        city = data["indices"][0]
        assert city["trimmed_geo_hash"] == trim(leaf, 9)
        assert city["range_min"] <= leaf <= city["range_max"]

    def test_cells_invalid_coordinate(self, client):
        response = client.get("/v1/cells?lat=95&lon=0")

        assert response.status_code == 400
        assert "invalid coordinates" in response.json()["detail"]


@pytest.mark.unit
class TestCreateItemEndpoint:
    """Test suite for POST /v1/items endpoint."""

    def test_create_item_success(self, client, mock_redis, mock_pipe):
        with patch("src.geoindex.main.get_redis_client", return_value=mock_redis):
            response = client.post("/v1/items", json=SF)

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Item stored"
        assert data["id"] == "sf"
        assert data["data"] == {"name": "Ferry Building"}
        leaf = encode(GeoItem(**SF).coordinate)
        assert data["geo_hashes"]["city"] == {"geo_hash": leaf, "trimmed_geo_hash": trim(leaf, 9), "level": 9}
        assert data["geo_hashes"]["district"]["trimmed_geo_hash"] == trim(leaf, 11)

        mock_pipe.set.assert_called_once()
        assert mock_pipe.zadd.call_count == 2
        mock_pipe.execute.assert_called_once()

    def test_create_item_invalid_coordinate(self, client, mock_redis):
        with patch("src.geoindex.main.get_redis_client", return_value=mock_redis):
            response = client.post("/v1/items", json={**SF, "latitude": 95.0})

        assert response.status_code == 400
        mock_redis.pipeline.assert_not_called()

    def test_create_item_invalid_data(self, client):
        response = client.post("/v1/items", json={**SF, "latitude": "north"})
        assert response.status_code == 422

    def test_create_item_missing_id(self, client):
        response = client.post("/v1/items", json={"latitude": 1.0, "longitude": 2.0})
        assert response.status_code == 422


@pytest.mark.unit
class TestBatchEndpoint:
    """Test suite for POST /v1/items/batch endpoint."""

    def test_batch_success(self, client, mock_redis, mock_pipe):
        mock_redis.mget.return_value = [None, None]

        with patch("src.geoindex.main.get_redis_client", return_value=mock_redis):
            response = client.post("/v1/items/batch", json={"items": [SF, NYC]})

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Batch processed"
        assert data["total_items"] == 2
        assert "processing_time_ms" in data
        assert mock_pipe.set.call_count == 2

    def test_batch_invalid_item(self, client, mock_redis):
        with patch("src.geoindex.main.get_redis_client", return_value=mock_redis):
            response = client.post("/v1/items/batch", json={"items": [SF, {**NYC, "longitude": 200.0}]})

        assert response.status_code == 400
        mock_redis.pipeline.assert_not_called()

    def test_batch_empty(self, client):
        response = client.post("/v1/items/batch", json={"items": []})
        assert response.status_code == 422


@pytest.mark.unit
class TestRadiusEndpoint:
    """Test suite for GET /v1/items/radius endpoint."""

    def test_radius_post_filters_by_distance(self, client, mock_redis, mock_pipe):
        """Test that candidates outside the circle are dropped."""
        stored(mock_redis, mock_pipe, NORTH, SF, NYC)

        with patch("src.geoindex.main.get_redis_client", return_value=mock_redis):
            response = client.get("/v1/items/radius?lat=37.7749&lon=-122.4194&radius=1000")

        assert response.status_code == 200
        data = response.json()
        assert data["index"] == "city"
        assert data["candidates"] == 3
        assert data["total_items"] == 1
        assert data["items"][0]["id"] == "sf"
        assert data["items"][0]["distance_m"] == 0.0

    def test_radius_sorted_by_distance(self, client, mock_redis, mock_pipe):
        stored(mock_redis, mock_pipe, NORTH, SF)

        with patch("src.geoindex.main.get_redis_client", return_value=mock_redis):
            response = client.get("/v1/items/radius?lat=37.7749&lon=-122.4194&radius=5000&index=district")

        data = response.json()
        assert data["index"] == "district"
        assert [item["id"] for item in data["items"]] == ["sf", "north"]
        assert 2000 < data["items"][1]["distance_m"] < 2500

    def test_radius_unknown_index(self, client, mock_redis):
        with patch("src.geoindex.main.get_redis_client", return_value=mock_redis):
            response = client.get("/v1/items/radius?lat=37.7749&lon=-122.4194&index=street")

        assert response.status_code == 404

    def test_radius_negative(self, client, mock_redis):
        with patch("src.geoindex.main.get_redis_client", return_value=mock_redis):
            response = client.get("/v1/items/radius?lat=37.7749&lon=-122.4194&radius=-5")

        assert response.status_code == 400

    def test_radius_invalid_center(self, client, mock_redis):
        with patch("src.geoindex.main.get_redis_client", return_value=mock_redis):
            response = client.get("/v1/items/radius?lat=37.7749&lon=-190")

        assert response.status_code == 400
        assert "search center" in response.json()["detail"]


@pytest.mark.unit
class TestBBoxEndpoint:
    """Test suite for GET /v1/items/bbox endpoint."""

    def test_bbox_post_filters_by_containment(self, client, mock_redis, mock_pipe):
        stored(mock_redis, mock_pipe, SF, NORTH)

        with patch("src.geoindex.main.get_redis_client", return_value=mock_redis):
            response = client.get("/v1/items/bbox?ne_lat=37.78&ne_lon=-122.41&sw_lat=37.77&sw_lon=-122.43")

        assert response.status_code == 200
        data = response.json()
        assert data["candidates"] == 2
        assert [item["id"] for item in data["items"]] == ["sf"]

    def test_bbox_invalid_corner(self, client, mock_redis):
        with patch("src.geoindex.main.get_redis_client", return_value=mock_redis):
            response = client.get("/v1/items/bbox?ne_lat=91&ne_lon=-122.41&sw_lat=37.77&sw_lon=-122.43")

        assert response.status_code == 400

    def test_bbox_missing_corner(self, client):
        response = client.get("/v1/items/bbox?ne_lat=37.78&ne_lon=-122.41")
        assert response.status_code == 422


@pytest.mark.unit
class TestRouteEndpoint:
    """Test suite for POST /v1/items/route endpoint."""

    PATH = [
        {"latitude": 37.7749, "longitude": -122.4194},
        {"latitude": 37.7749, "longitude": -122.3994},
    ]

    def test_route_default_buffer(self, client, mock_redis, mock_pipe):
        """Test that candidates beyond the default 500m corridor are dropped."""
        stored(mock_redis, mock_pipe, SF, NORTH)

        with patch("src.geoindex.main.get_redis_client", return_value=mock_redis):
            response = client.post("/v1/items/route", json={"path": self.PATH})

        assert response.status_code == 200
        data = response.json()
        assert [item["id"] for item in data["items"]] == ["sf"]

    def test_route_wide_buffer(self, client, mock_redis, mock_pipe):
        stored(mock_redis, mock_pipe, NORTH, SF)

        with patch("src.geoindex.main.get_redis_client", return_value=mock_redis):
            response = client.post(
                "/v1/items/route",
                json={"path": self.PATH, "buffer_meters": 3000, "index": "district"},
            )

        data = response.json()
        assert data["index"] == "district"
        assert [item["id"] for item in data["items"]] == ["sf", "north"]

    def test_route_short_path(self, client, mock_redis):
        with patch("src.geoindex.main.get_redis_client", return_value=mock_redis):
            response = client.post("/v1/items/route", json={"path": self.PATH[:1]})

        assert response.status_code == 400
        assert "at least 2 points" in response.json()["detail"]


@pytest.mark.unit
class TestGetItemEndpoint:
    """Test suite for GET /v1/items/{item_id} endpoint."""

    def test_get_item(self, client, mock_redis):
        mock_redis.get.return_value = document(SF)

        with patch("src.geoindex.main.get_redis_client", return_value=mock_redis):
            response = client.get("/v1/items/sf")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == "sf"
        assert data["latitude"] == 37.7749
        assert data["geo_hashes"]["district"]["level"] == 11

    def test_get_item_not_found(self, client, mock_redis):
        with patch("src.geoindex.main.get_redis_client", return_value=mock_redis):
            response = client.get("/v1/items/missing")

        assert response.status_code == 404
