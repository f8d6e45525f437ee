"""
Region coverer presets.

A covering trades precision for cardinality: coarser cells mean fewer range
scans but more candidates to post-filter. Cell size per level:
http://s2geometry.io/resources/s2cell_statistics.html
"""
from typing import Optional

import s2sphere

from .models import RegionCovererConfig

# Radius and bbox search. Intentionally coarse so that a zoomed-in or sparse
# area still returns enough candidates after post-filtering.
AREA_COVERER = RegionCovererConfig(
    min_level=9,
    max_level=13,
    max_cells=15,
    level_mod=1,
)

# Route search. A corridor is long and thin, so it needs more, smaller cells.
POLYLINE_COVERER = RegionCovererConfig(
    min_level=9,
    max_level=15,
    max_cells=100,
    level_mod=1,
)


def resolve_coverer(
    override: Optional[RegionCovererConfig],
    default: RegionCovererConfig,
) -> RegionCovererConfig:
    """Per-call override, or the preset when none is given."""
    return default if override is None else override


def build_region_coverer(config: RegionCovererConfig) -> s2sphere.RegionCoverer:
    """
    Build a fresh s2sphere coverer for one covering call.

    The coverer keeps internal state while covering, so it is never shared
    between calls.
    """
    coverer = s2sphere.RegionCoverer()
    coverer.min_level = config.min_level
    coverer.max_level = config.max_level
    coverer.max_cells = config.max_cells
    coverer.level_mod = config.level_mod
    return coverer
