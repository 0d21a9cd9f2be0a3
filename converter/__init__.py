"""
Vector geometry <-> cell conversion and spatial predicates on cell unions.
"""

from .converter import (
    point_to_cell,
    points_to_cell_union,
    line_to_cells,
    polygon_to_cells,
    calculate_optimal_level,
    convert_geometry_to_cells,
    convert_geodataframe_to_cells,
    cell_to_polygon,
    rect_to_polygon,
    cell_union_to_multipolygon,
    area_m2,
    ContainmentMode,
    EARTH_MEAN_RADIUS_M,
)

from .predicates import (
    intersects,
    within,
    contains,
    touches,
    get_neighbors,
)

__all__ = [
    "point_to_cell",
    "points_to_cell_union",
    "line_to_cells",
    "polygon_to_cells",
    "calculate_optimal_level",
    "convert_geometry_to_cells",
    "convert_geodataframe_to_cells",
    "cell_to_polygon",
    "rect_to_polygon",
    "cell_union_to_multipolygon",
    "area_m2",
    "ContainmentMode",
    "EARTH_MEAN_RADIUS_M",
    "intersects",
    "within",
    "contains",
    "touches",
    "get_neighbors",
]
