"""
Demo script to show how items are indexed and found by spatial queries.

This script stores a handful of San Francisco points of interest and runs:
1. A radius search around the Ferry Building
2. A bounding box search over downtown
3. A route search along Market Street

For each query it shows how many covering cells and range scans were
needed and how many candidates survived post-filtering.

Usage:
    uvicorn src.geoindex.main:app --reload
    python scripts/demo_geo_queries.py
    python scripts/demo_geo_queries.py --radius 2500
    python scripts/demo_geo_queries.py --index district
"""
import argparse

import requests

PLACES = [
    {"id": "ferry_building", "latitude": 37.7955, "longitude": -122.3937, "data": {"name": "Ferry Building"}},
    {"id": "union_square", "latitude": 37.7880, "longitude": -122.4075, "data": {"name": "Union Square"}},
    {"id": "civic_center", "latitude": 37.7793, "longitude": -122.4193, "data": {"name": "Civic Center"}},
    {"id": "dolores_park", "latitude": 37.7596, "longitude": -122.4269, "data": {"name": "Dolores Park"}},
    {"id": "golden_gate_park", "latitude": 37.7694, "longitude": -122.4862, "data": {"name": "Golden Gate Park"}},
    {"id": "oakland_city_hall", "latitude": 37.8053, "longitude": -122.2725, "data": {"name": "Oakland City Hall"}},
]

FERRY_BUILDING = {"lat": 37.7955, "lon": -122.3937}

DOWNTOWN = {"ne_lat": 37.7980, "ne_lon": -122.3900, "sw_lat": 37.7750, "sw_lon": -122.4250}

MARKET_STREET = [
    {"latitude": 37.7955, "longitude": -122.3937},
    {"latitude": 37.7841, "longitude": -122.4078},
    {"latitude": 37.7700, "longitude": -122.4260},
]

API_URL = "http://localhost:8000"


def print_result(title: str, data: dict) -> None:
    print(title)
    print(f"  Index:       {data['index']}")
    print(f"  Cells:       {data['cells']}")
    print(f"  Range scans: {data['ranges']}")
    print(f"  Candidates:  {data['candidates']}")
    print(f"  Matches:     {data['total_items']}")
    for item in data["items"]:
        distance = f"  ({item['distance_m']} m)" if "distance_m" in item else ""
        print(f"    - {item['data'].get('name', item['id'])}{distance}")
    print()


def main():
    parser = argparse.ArgumentParser(description="Demo geo index queries")
    parser.add_argument("--radius", type=float, default=1500, help="Radius search in meters (default: 1500)")
    parser.add_argument("--buffer", type=float, default=300, help="Route corridor in meters (default: 300)")
    parser.add_argument("--index", default=None, help="Geo index to query (default: first configured)")
    args = parser.parse_args()

    print("=" * 60)
    print("GEO INDEX DEMO - S2 Cell Coverings over Redis")
    print("=" * 60)
    print()

    # Check API is running
    try:
        response = requests.get(f"{API_URL}/health", timeout=5)
        if response.status_code != 200:
            print("ERROR: API not healthy")
            return
        print(f"API is running, indices: {response.json()['indices']}")
    except requests.ConnectionError:
        print("ERROR: Cannot connect to API at", API_URL)
        print("Make sure to run: uvicorn src.geoindex.main:app --reload")
        return

    print()
    response = requests.post(f"{API_URL}/v1/items/batch", json={"items": PLACES})
    response.raise_for_status()
    print(f"Stored {response.json()['total_items']} places")
    print()

    response = requests.get(f"{API_URL}/v1/cells", params=FERRY_BUILDING)
    cells = response.json()
    print(f"Ferry Building leaf cell: {cells['cell_id']}")
    for index in cells["indices"]:
        print(f"  {index['index']:>10} (level {index['level']:2d}) -> partition {index['trimmed_geo_hash']}")
    print()
    print("-" * 60)

    params = {**FERRY_BUILDING, "radius": args.radius}
    if args.index:
        params["index"] = args.index
    response = requests.get(f"{API_URL}/v1/items/radius", params=params)
    print_result(f"RADIUS {args.radius:.0f} m around the Ferry Building:", response.json())

    params = dict(DOWNTOWN)
    if args.index:
        params["index"] = args.index
    response = requests.get(f"{API_URL}/v1/items/bbox", params=params)
    print_result("BOUNDING BOX over downtown:", response.json())

    response = requests.post(
        f"{API_URL}/v1/items/route",
        json={"path": MARKET_STREET, "index": args.index, "buffer_meters": args.buffer},
    )
    print_result(f"ROUTE along Market Street (corridor {args.buffer:.0f} m):", response.json())

    print("-" * 60)
    print("Candidates come from range scans over the covering cells and")
    print("are post-filtered by true distance or containment.")
    print("=" * 60)


if __name__ == "__main__":
    main()
