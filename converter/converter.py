"""
Vector to cell conversion functions.

Supports conversion of points, lines, and polygons to cell unions with
automatic coordinate transformation, and the reverse direction (cells and
bounds to shapely geometries) for export and plotting.
"""

import math
from enum import Enum
from typing import Any, Iterable, List, Optional, Union

import numpy as np
from pyproj import CRS, Geod, Transformer
from shapely.geometry import (
    LineString,
    MultiLineString,
    MultiPoint,
    MultiPolygon,
    Point,
    Polygon,
    box,
)
from shapely.ops import transform

from s2engine import AVG_AREA, MAX_LEVEL, MIN_WIDTH, Cell, CellId, CellUnion, LatLngRect
from s2engine.geometry import lat_lng_to_point, normalize, point_to_lat_lng


# =============================================================================
# CONSTANTS
# =============================================================================

class ContainmentMode(Enum):
    """
    Containment modes for polygon_to_cells.

    The cell test runs on cells at the target level; cells found to lie
    fully inside the polygon at a coarser level are kept whole.
    """
    CENTER = "center"              # Cell center must be inside polygon
    FULL = "full"                  # Cell must be fully contained in polygon
    OVERLAPPING = "overlap"        # Cell overlaps polygon at any point (recommended)
    OVERLAPPING_BBOX = "overlap_bbox"  # Cell bounding rectangle overlaps polygon


# WGS84 ellipsoid for geodesic area calculations
_WGS84_GEOD = Geod(ellps='WGS84')

# Mean earth radius (2a + b) / 3, for steradian -> m² conversion
EARTH_MEAN_RADIUS_M = (2 * _WGS84_GEOD.a + _WGS84_GEOD.b) / 3


def _ensure_wgs84(geometry, source_crs: Optional[Union[str, int]] = None):
    """
    Transform geometry to WGS84 if needed.

    Args:
        geometry: Shapely geometry object
        source_crs: Source CRS (EPSG code as int, string like 'EPSG:2056', or None for WGS84)

    Returns:
        Transformed geometry in WGS84
    """
    if source_crs is None:
        return geometry

    if isinstance(source_crs, int):
        source_crs = f"EPSG:{source_crs}"

    transformer = Transformer.from_crs(
        CRS.from_user_input(source_crs),
        CRS.from_epsg(4326),  # WGS84
        always_xy=True
    )

    return transform(transformer.transform, geometry)


def _calculate_geodesic_area_m2(polygon: Union[Polygon, MultiPolygon]) -> float:
    """
    Calculate the geodesic area of a polygon in square meters using WGS84 ellipsoid.

    Args:
        polygon: Shapely Polygon or MultiPolygon in WGS84 coordinates

    Returns:
        Area in square meters (always positive)
    """
    area, _ = _WGS84_GEOD.geometry_area_perimeter(polygon)
    return abs(area)


def _check_level(level: int) -> None:
    if not 0 <= level <= MAX_LEVEL:
        raise ValueError(f"level must be in [0, {MAX_LEVEL}], got {level}")


# =============================================================================
# CELLS -> SHAPELY
# =============================================================================

def cell_to_polygon(cell_id: CellId) -> Union[Polygon, MultiPolygon]:
    """
    Cell outline as shapely geometry in (lng, lat) degrees.

    Edges are straight in lon/lat, so coarse cells are only approximated.
    Cells touching a pole or wrapping the antimeridian fall back to their
    lat/lng bounding rectangle (see rect_to_polygon).
    """
    cell = Cell(cell_id)
    rect = cell.get_rect_bound()
    if rect.lng.is_full() or rect.lng.is_inverted():
        return rect_to_polygon(rect)
    coords = []
    for vertex in cell.get_vertices():
        lat, lng = point_to_lat_lng(vertex)
        coords.append((lng, lat))
    return Polygon(coords)


def rect_to_polygon(rect: LatLngRect) -> Union[Polygon, MultiPolygon, None]:
    """
    Lat/lng rectangle as shapely geometry in (lng, lat) degrees.

    Rectangles wrapping the antimeridian are split into two boxes.
    Returns None for an empty rectangle.
    """
    if rect.is_empty():
        return None
    lng_lo, lat_lo, lng_hi, lat_hi = rect.bounds_degrees()
    if rect.lng.is_full():
        return box(-180.0, lat_lo, 180.0, lat_hi)
    if rect.lng.is_inverted():
        return MultiPolygon([
            box(lng_lo, lat_lo, 180.0, lat_hi),
            box(-180.0, lat_lo, lng_hi, lat_hi),
        ])
    return box(lng_lo, lat_lo, lng_hi, lat_hi)


def cell_union_to_multipolygon(union: CellUnion) -> MultiPolygon:
    """All cells of a union as one MultiPolygon (one part per cell, two for wrapped cells)."""
    parts = []
    for cell_id in union:
        geom = cell_to_polygon(cell_id)
        if isinstance(geom, MultiPolygon):
            parts.extend(geom.geoms)
        else:
            parts.append(geom)
    return MultiPolygon(parts)


def area_m2(union: CellUnion) -> float:
    """Exact area of a union in m², on a sphere with the WGS84 mean radius."""
    return union.exact_area() * EARTH_MEAN_RADIUS_M ** 2


# =============================================================================
# SHAPELY -> CELLS
# =============================================================================

def point_to_cell(point: Point, level: int = MAX_LEVEL,
                  source_crs: Optional[Union[str, int]] = None) -> CellId:
    """
    Convert a point geometry to the cell containing it.

    Args:
        point: Shapely Point geometry
        level: Cell level (0-30), default leaf level
        source_crs: Source CRS (e.g., 2056 for LV95, None for WGS84)

    Returns:
        CellId at the given level

    Example:
        >>> point = Point(7.5, 47.5)  # WGS84
        >>> cell_id = point_to_cell(point, level=15)
        >>> print(cell_id.to_token())
    """
    _check_level(level)
    point_wgs84 = _ensure_wgs84(point, source_crs)

    # Shapely uses (x, y) = (lng, lat)
    lng, lat = point_wgs84.x, point_wgs84.y

    return CellId.from_lat_lng(lat, lng).parent(level)


def points_to_cell_union(points: Iterable[Point], level: int = MAX_LEVEL,
                         source_crs: Optional[Union[str, int]] = None) -> CellUnion:
    """Normalized union of the cells containing the given points."""
    return CellUnion.from_cell_ids(point_to_cell(p, level, source_crs) for p in points)


def line_to_cells(line: LineString, level: int = 12,
                  source_crs: Optional[Union[str, int]] = None) -> CellUnion:
    """
    Cells along a line.

    Every segment is followed as a great circle and sampled at half the
    minimum cell width of the level, so consecutive samples fall into the
    same or adjacent cells.
    """
    _check_level(level)
    line_wgs84 = _ensure_wgs84(line, source_crs)
    step = 0.5 * MIN_WIDTH.get_value(level)

    coords = list(line_wgs84.coords)
    cells: List[CellId] = []
    for (lng1, lat1, *_), (lng2, lat2, *_) in zip(coords[:-1], coords[1:]):
        a = lat_lng_to_point(lat1, lng1)
        b = lat_lng_to_point(lat2, lng2)
        omega = math.atan2(float(np.linalg.norm(np.cross(a, b))), float(np.dot(a, b)))
        n = max(1, int(math.ceil(omega / step)))
        for k in range(n + 1):
            t = k / n
            if omega == 0:
                p = a
            else:
                # Slerp between the segment endpoints
                p = (math.sin((1 - t) * omega) * a + math.sin(t * omega) * b) / math.sin(omega)
            cells.append(CellId.from_point(normalize(p)).parent(level))

    return CellUnion.from_cell_ids(cells)


def _cell_matches(cell_id: CellId, polygon, mode: ContainmentMode) -> bool:
    if mode == ContainmentMode.CENTER:
        lat, lng = cell_id.to_lat_lng()
        return polygon.contains(Point(lng, lat))
    if mode == ContainmentMode.FULL:
        return polygon.contains(cell_to_polygon(cell_id))
    if mode == ContainmentMode.OVERLAPPING:
        return polygon.intersects(cell_to_polygon(cell_id))
    return polygon.intersects(rect_to_polygon(Cell(cell_id).get_rect_bound()))


def polygon_to_cells(
    polygon: Union[Polygon, MultiPolygon],
    level: int = 12,
    source_crs: Optional[Union[str, int]] = None,
    containment_mode: ContainmentMode = ContainmentMode.OVERLAPPING
) -> CellUnion:
    """
    Convert a polygon geometry to a normalized cell union.

    Descends the cell hierarchy from the six face cells, pruning cells whose
    bounding rectangle misses the polygon and keeping cells that lie fully
    inside it. Cells at the target level are tested with containment_mode.
    If the polygon is too small and no cells are found, falls back to the
    cell containing the polygon's centroid.

    Args:
        polygon: Shapely Polygon or MultiPolygon geometry
        level: Finest cell level (0-30), default 12
        source_crs: Source CRS (e.g., 2056 for LV95, None for WGS84)
        containment_mode: ContainmentMode enum (default: OVERLAPPING)

    Returns:
        CellUnion (at least one cell)

    Example:
        >>> polygon = Polygon([(7.5, 47.5), (7.6, 47.5), (7.6, 47.6), (7.5, 47.6)])
        >>> union = polygon_to_cells(polygon, level=12)
        >>> print(f"Polygon covered by {union.size()} cells")
    """
    _check_level(level)
    polygon_wgs84 = _ensure_wgs84(polygon, source_crs)

    cells: List[CellId] = []
    stack = [CellId.from_face_pos_level(face, 0, 0) for face in range(6)]
    while stack:
        cell_id = stack.pop()
        bound = rect_to_polygon(Cell(cell_id).get_rect_bound())
        if not polygon_wgs84.intersects(bound):
            continue

        if cell_id.level() == level:
            if _cell_matches(cell_id, polygon_wgs84, containment_mode):
                cells.append(cell_id)
        elif cell_id.level() >= 2 and polygon_wgs84.contains(bound):
            # Entire cell inside: all descendants qualify
            cells.append(cell_id)
        else:
            stack.extend(cell_id.children())

    if not cells:
        centroid = polygon_wgs84.centroid
        return CellUnion.from_cell_ids([CellId.from_lat_lng(centroid.y, centroid.x).parent(level)])

    return CellUnion.from_cell_ids(cells)


def calculate_optimal_level(
    polygon: Union[Polygon, MultiPolygon],
    target_cells: int = 1000,
    min_level: int = 5,
    max_level: int = 20,
    source_crs: Optional[Union[str, int]] = None,
) -> int:
    """
    Estimate the cell level that covers a polygon with about target_cells cells.

    Chooses the coarsest level whose average cell area is at most
    polygon_area / target_cells, so the covering errs on the side of more
    cells, not fewer.

    Args:
        polygon: Shapely Polygon or MultiPolygon geometry
        target_cells: Target number of cells (default: 1000)
        min_level: Minimum level to return (default: 5)
        max_level: Maximum level to return (default: 20)
        source_crs: Source CRS (e.g., 2056 for LV95, None for WGS84)

    Returns:
        Level in [min_level, max_level]
    """
    if target_cells < 1:
        raise ValueError(f"target_cells must be >= 1, got {target_cells}")

    polygon_wgs84 = _ensure_wgs84(polygon, source_crs)
    polygon_area_m2 = _calculate_geodesic_area_m2(polygon_wgs84)

    target_cell_area_sr = polygon_area_m2 / target_cells / EARTH_MEAN_RADIUS_M ** 2
    level = AVG_AREA.get_min_level(target_cell_area_sr)
    return max(min_level, min(max_level, level))


def convert_geometry_to_cells(
    geometry: Union[Point, LineString, Polygon, MultiPoint, MultiLineString, MultiPolygon],
    level: int = 12,
    source_crs: Optional[Union[str, int]] = None,
    containment_mode: ContainmentMode = ContainmentMode.OVERLAPPING
) -> CellUnion:
    """
    Convert any geometry type to a normalized cell union.

    Handles Point, LineString, Polygon, and Multi* variants.

    Raises:
        ValueError: If geometry type is not supported
    """
    if isinstance(geometry, Point):
        return CellUnion.from_cell_ids([point_to_cell(geometry, level, source_crs)])

    elif isinstance(geometry, LineString):
        return line_to_cells(geometry, level, source_crs)

    elif isinstance(geometry, Polygon):
        return polygon_to_cells(geometry, level, source_crs, containment_mode)

    elif isinstance(geometry, (MultiPoint, MultiLineString, MultiPolygon)):
        # Transform once before processing parts
        geometry_wgs84 = _ensure_wgs84(geometry, source_crs)
        result = CellUnion()
        for geom in geometry_wgs84.geoms:
            part = convert_geometry_to_cells(geom, level, None, containment_mode)
            merged = CellUnion()
            merged.get_union(result, part)
            result = merged
        return result

    else:
        raise ValueError(f"Unsupported geometry type: {type(geometry)}")


def convert_geodataframe_to_cells(
    gdf: Any,
    level: int = 12,
    geometry_column: str = 'geometry',
    containment_mode: ContainmentMode = ContainmentMode.OVERLAPPING
) -> List[CellUnion]:
    """
    Batch conversion of GeoDataFrame geometries to cell unions.

    Transforms all geometries to WGS84 in one operation before converting.

    Returns:
        List of CellUnions, one per row (empty union for missing geometries)
    """
    gdf_wgs84 = gdf.to_crs(epsg=4326)

    unions = []
    for geom in gdf_wgs84[geometry_column]:
        if geom is None or geom.is_empty:
            print("[convert_geodataframe_to_cells] Warning: empty geometry, using empty union.")
            unions.append(CellUnion())
            continue
        unions.append(convert_geometry_to_cells(geom, level, None, containment_mode))
    return unions
