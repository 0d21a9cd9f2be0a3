"""
s2engine - Cell unions on a hierarchical spherical cell index.
"""

from .cell_id import CellId, MAX_LEVEL, NUM_FACES
from .cell import Cell, Metric, MIN_WIDTH, AVG_AREA, AVG_LEAF_AREA
from .cell_union import CellUnion
from .geometry import (
    Cap,
    LatLngRect,
    R1Interval,
    S1Interval,
    angle_between,
    lat_lng_to_point,
    point_to_lat_lng,
)

__all__ = [
    "CellId",
    "MAX_LEVEL",
    "NUM_FACES",
    "Cell",
    "Metric",
    "MIN_WIDTH",
    "AVG_AREA",
    "AVG_LEAF_AREA",
    "CellUnion",
    "Cap",
    "LatLngRect",
    "R1Interval",
    "S1Interval",
    "angle_between",
    "lat_lng_to_point",
    "point_to_lat_lng",
]
