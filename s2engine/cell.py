"""
Cell geometry: vertices, areas and bounds of a single CellId, plus the
per-level metrics used to pick expansion levels.
"""

import math
import sys
from typing import List

import numpy as np

from .cell_id import CellId, MAX_LEVEL, _face_uv_to_xyz
from .geometry import Cap, LatLngRect, R1Interval, S1Interval, normalize, triangle_area


# =============================================================================
# METRICS
# =============================================================================

class Metric:
    """
    A per-level cell quantity that shrinks by 2**dim with every level.

    dim is 1 for lengths and 2 for areas.
    """

    def __init__(self, dim: int, deriv: float):
        self.dim = dim
        self.deriv = deriv

    def get_value(self, level: int) -> float:
        return math.ldexp(self.deriv, -self.dim * level)

    def get_max_level(self, value: float) -> int:
        """Finest level at which the metric is still >= value (0 if none)."""
        if value <= 0:
            return MAX_LEVEL
        exponent = math.frexp(self.deriv / value)[1]
        return max(0, min(MAX_LEVEL, (exponent - 1) >> (self.dim - 1)))

    def get_min_level(self, value: float) -> int:
        """Coarsest level at which the metric is <= value."""
        if value <= 0:
            return MAX_LEVEL
        exponent = math.frexp(value / self.deriv)[1]
        return max(0, min(MAX_LEVEL, -((exponent - 1) >> (self.dim - 1))))


# Quadratic projection constants
MIN_WIDTH = Metric(1, 2 * math.sqrt(2) / 3)
AVG_AREA = Metric(2, 4 * math.pi / 6)

AVG_LEAF_AREA = AVG_AREA.get_value(MAX_LEVEL)

# Latitude of the face-2 / face-5 cell corners
_POLE_MIN_LAT = math.asin(math.sqrt(1.0 / 3)) - 0.5 * sys.float_info.epsilon
_RECT_MAX_ERROR = 1e-15

# Directions of the u and v axes per face (only the z component matters)
_U_AXIS_Z = (0, 0, 0, -1, -1, 0)
_V_AXIS_Z = (1, 1, 0, 0, 0, 0)


# =============================================================================
# CELL
# =============================================================================

class Cell:
    """
    Geometric view of a CellId.

    Cell edges are great-circle arcs, vertices are ordered counter-clockwise
    starting at (u_lo, v_lo).
    """

    __slots__ = ("cell_id", "face", "level", "uv")

    def __init__(self, cell_id: CellId):
        self.cell_id = cell_id
        self.level = cell_id.level()
        face, u, v = cell_id.get_uv_bounds()
        self.face = face
        self.uv = (u, v)

    def id(self) -> CellId:
        return self.cell_id

    def is_leaf(self) -> bool:
        return self.level == MAX_LEVEL

    def get_vertex_raw(self, k: int) -> np.ndarray:
        u, v = self.uv
        i = 1 if k in (1, 2) else 0
        j = 1 if k >> 1 else 0
        return _face_uv_to_xyz(self.face, u[i], v[j])

    def get_vertex(self, k: int) -> np.ndarray:
        return normalize(self.get_vertex_raw(k))

    def get_vertices(self) -> List[np.ndarray]:
        return [self.get_vertex(k) for k in range(4)]

    def get_center(self) -> np.ndarray:
        return self.cell_id.to_point()

    # -------------------------------------------------------------------------
    # Area
    # -------------------------------------------------------------------------

    @staticmethod
    def average_area(level: int) -> float:
        return AVG_AREA.get_value(level)

    def approx_area(self) -> float:
        """
        Area estimate from the planar quadrilateral of the vertices.

        Accurate to within 3% for all cell sizes; exact for level 0 and 1
        which use the average area directly.
        """
        if self.level < 2:
            return self.average_area(self.level)

        v0, v1, v2, v3 = self.get_vertices()
        flat_area = 0.5 * float(np.linalg.norm(np.cross(v2 - v0, v3 - v1)))
        # Correct for curvature: ratio of cap area to the flat disc area.
        return flat_area * 2 / (1 + math.sqrt(1 - min(flat_area / math.pi, 1.0)))

    def exact_area(self) -> float:
        v0, v1, v2, v3 = self.get_vertices()
        return triangle_area(v0, v1, v2) + triangle_area(v0, v2, v3)

    # -------------------------------------------------------------------------
    # Bounds
    # -------------------------------------------------------------------------

    def get_cap_bound(self) -> Cap:
        # Use the uv center as the axis; it is closer to the true centroid
        # than the (s, t) center for coarse cells.
        u, v = self.uv
        center = normalize(_face_uv_to_xyz(self.face, 0.5 * (u[0] + u[1]), 0.5 * (v[0] + v[1])))
        cap = Cap.from_axis_height(center, 0)
        for k in range(4):
            cap = cap.add_point(self.get_vertex(k))
        return cap

    def get_rect_bound(self) -> LatLngRect:
        if self.level > 0:
            # Below level 0 the latitude and longitude extremes sit on the
            # vertices: one diagonal pair bounds the latitude, the other the
            # longitude.
            u, v = self.uv
            u_sum = u[0] + u[1]
            v_sum = v[0] + v[1]
            i = int(u_sum < 0) if _U_AXIS_Z[self.face] == 0 else int(u_sum > 0)
            j = int(v_sum < 0) if _V_AXIS_Z[self.face] == 0 else int(v_sum > 0)
            lat = R1Interval.from_point_pair(self._latitude(i, j), self._latitude(1 - i, 1 - j))
            lng = S1Interval.from_point_pair(self._longitude(i, 1 - j), self._longitude(1 - i, j))
            return LatLngRect(lat, lng).expanded(_RECT_MAX_ERROR, _RECT_MAX_ERROR).polar_closure()

        quarter = math.pi / 4
        if self.face == 0:
            bound = LatLngRect(R1Interval(-quarter, quarter), S1Interval(-quarter, quarter))
        elif self.face == 1:
            bound = LatLngRect(R1Interval(-quarter, quarter), S1Interval(quarter, 3 * quarter))
        elif self.face == 2:
            bound = LatLngRect(R1Interval(_POLE_MIN_LAT, math.pi / 2), S1Interval.full())
        elif self.face == 3:
            bound = LatLngRect(R1Interval(-quarter, quarter), S1Interval(3 * quarter, -3 * quarter))
        elif self.face == 4:
            bound = LatLngRect(R1Interval(-quarter, quarter), S1Interval(-3 * quarter, -quarter))
        else:
            bound = LatLngRect(R1Interval(-math.pi / 2, -_POLE_MIN_LAT), S1Interval.full())
        return bound.expanded(_RECT_MAX_ERROR, _RECT_MAX_ERROR)

    def _latitude(self, i: int, j: int) -> float:
        p = _face_uv_to_xyz(self.face, self.uv[0][i], self.uv[1][j])
        return math.atan2(p[2], math.hypot(p[0], p[1]))

    def _longitude(self, i: int, j: int) -> float:
        p = _face_uv_to_xyz(self.face, self.uv[0][i], self.uv[1][j])
        return math.atan2(p[1], p[0])

    def contains_point(self, p) -> bool:
        return self.cell_id.contains(CellId.from_point(p))

    def __repr__(self):
        return f"Cell({self.cell_id.to_token()}, level={self.level})"
