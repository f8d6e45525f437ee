"""
Service configuration from environment variables.

Values can also come from a .env file in the working directory.
"""
import os
from typing import List

from dotenv import load_dotenv

from .models import GeoIndexConfig

# Load environment variables from .env file
load_dotenv()

REDIS_HOST = os.getenv("REDIS_HOST", "127.0.0.1")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Prefix of every Redis key written by the repository
KEY_PREFIX = os.getenv("GEO_KEY_PREFIX", "geo")

# Comma separated <index name>:<level> pairs. The first index is the default
# one for queries.
# 9  = ~18km cells  <- city-level partitions
# 11 = ~4.5km cells <- district-level partitions
GEO_INDEXES = os.getenv("GEO_INDEXES", "city:9,district:11")

# Default corridor width (meters) used to post-filter route candidates
ROUTE_BUFFER_METERS = float(os.getenv("ROUTE_BUFFER_METERS", "500"))


def parse_index_configs(spec: str) -> List[GeoIndexConfig]:
    """
    Parse "name:level,name:level" into index configurations.

    Each index writes its leaf hash to "<name>_geohash" and its trimmed hash
    to "<name>_geohash_trimmed".

    Raises:
        ValueError: If an entry is not of the form name:level
        InvalidLevel: If a level is outside [0, 30]
    """
    configs = []
    for entry in spec.split(","):
        entry = entry.strip()
        if not entry:
            continue
        name, sep, level = entry.partition(":")
        if not sep or not name:
            raise ValueError(f"invalid geo index entry {entry!r}, expected name:level")
        configs.append(GeoIndexConfig(
            hash_key_attribute_name=f"{name}_geohash",
            sort_key_attribute_name=f"{name}_geohash_trimmed",
            index_name=name,
            level=int(level),
        ))
    return configs


def get_index_configs() -> List[GeoIndexConfig]:
    return parse_index_configs(GEO_INDEXES)
