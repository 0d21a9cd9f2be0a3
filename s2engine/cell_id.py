"""
Hierarchical cell identifiers on the unit sphere.

A CellId is a 64-bit key. The sphere is projected onto the six faces of a
cube, every face is subdivided as a quad-tree down to MAX_LEVEL, and the
cells of each face are enumerated along a Hilbert curve. The resulting key is
ordered along that curve, so every cell covers a contiguous range of leaf
keys: [range_min(), range_max()].

Only the ordering / range / level contract is meant to be used from outside
this module; the face and curve encoding helpers are private.
"""

import math
import re
import sys
from typing import List, Optional, Tuple

import numpy as np


# =============================================================================
# CONSTANTS
# =============================================================================

FACE_BITS = 3
NUM_FACES = 6
MAX_LEVEL = 30
POS_BITS = 2 * MAX_LEVEL + 1
MAX_SIZE = 1 << MAX_LEVEL

_MASK64 = (1 << 64) - 1
_TOKEN_RE = re.compile(r"[0-9a-fA-F]{1,16}")

# Hilbert curve lookup tables (4 levels = 8 bits of (i, j) per step)
_LOOKUP_BITS = 4
_SWAP_MASK = 0x01
_INVERT_MASK = 0x02

_POS_TO_IJ = (
    (0, 1, 3, 2),  # canonical order
    (0, 2, 3, 1),  # axes swapped
    (3, 2, 0, 1),  # bits inverted
    (3, 1, 0, 2),  # swapped & inverted
)
_POS_TO_ORIENTATION = (_SWAP_MASK, 0, 0, _INVERT_MASK | _SWAP_MASK)

_LOOKUP_POS: List[int] = [0] * (1 << (2 * _LOOKUP_BITS + 2))
_LOOKUP_IJ: List[int] = [0] * (1 << (2 * _LOOKUP_BITS + 2))


def _init_lookup_cell(level, i, j, orig_orientation, pos, orientation):
    if level == _LOOKUP_BITS:
        ij = (i << _LOOKUP_BITS) + j
        _LOOKUP_POS[(ij << 2) + orig_orientation] = (pos << 2) + orientation
        _LOOKUP_IJ[(pos << 2) + orig_orientation] = (ij << 2) + orientation
        return

    level += 1
    i <<= 1
    j <<= 1
    pos <<= 2
    r = _POS_TO_IJ[orientation]
    for index in range(4):
        _init_lookup_cell(
            level,
            i + (r[index] >> 1),
            j + (r[index] & 1),
            orig_orientation,
            pos + index,
            orientation ^ _POS_TO_ORIENTATION[index],
        )


for _orientation in range(4):
    _init_lookup_cell(0, 0, 0, _orientation, 0, _orientation)


# =============================================================================
# FACE / UV / ST PROJECTION
# =============================================================================

def _face_uv_to_xyz(face: int, u: float, v: float) -> np.ndarray:
    """Point on the cube face (not unit length)."""
    if face == 0:
        return np.array([1.0, u, v])
    if face == 1:
        return np.array([-u, 1.0, v])
    if face == 2:
        return np.array([-u, -v, 1.0])
    if face == 3:
        return np.array([-1.0, -v, -u])
    if face == 4:
        return np.array([v, -1.0, -u])
    return np.array([v, u, -1.0])


def _get_face(p) -> int:
    face = int(np.argmax(np.abs(p)))
    if p[face] < 0:
        face += 3
    return face


def _valid_face_xyz_to_uv(face: int, p) -> Tuple[float, float]:
    x, y, z = float(p[0]), float(p[1]), float(p[2])
    if face == 0:
        return y / x, z / x
    if face == 1:
        return -x / y, z / y
    if face == 2:
        return -x / z, -y / z
    if face == 3:
        return z / x, y / x
    if face == 4:
        return z / y, -x / y
    return -y / z, -x / z


def _xyz_to_face_uv(p) -> Tuple[int, float, float]:
    face = _get_face(p)
    u, v = _valid_face_xyz_to_uv(face, p)
    return face, u, v


def _uv_to_st(u: float) -> float:
    # Quadratic projection
    if u >= 0:
        return 0.5 * math.sqrt(1 + 3 * u)
    return 1 - 0.5 * math.sqrt(1 - 3 * u)


def _st_to_uv(s: float) -> float:
    if s >= 0.5:
        return (1 / 3.0) * (4 * s * s - 1)
    return (1 / 3.0) * (1 - 4 * (1 - s) * (1 - s))


def _st_to_ij(s: float) -> int:
    return max(0, min(MAX_SIZE - 1, int(math.floor(MAX_SIZE * s))))


# =============================================================================
# CELL ID
# =============================================================================

class CellId:
    """
    Opaque, totally ordered 64-bit cell identifier.

    Comparison, equality and hashing use the raw integer only. The lowest set
    bit encodes the level: a cell at level L has its lowest set bit at
    position 2 * (MAX_LEVEL - L).

    Example:
        >>> leaf = CellId.from_lat_lng(47.5, 7.5)
        >>> cell = leaf.parent(10)
        >>> cell.contains(leaf)
        True
    """

    __slots__ = ("_id",)

    MAX_LEVEL = MAX_LEVEL
    NUM_FACES = NUM_FACES
    MAX_SIZE = MAX_SIZE

    def __init__(self, id_: int):
        self._id = id_ & _MASK64

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def none(cls) -> "CellId":
        return cls(0)

    @classmethod
    def from_face_pos_level(cls, face: int, pos: int, level: int) -> "CellId":
        return cls((face << POS_BITS) + (pos | 1)).parent(level)

    @classmethod
    def begin(cls, level: int) -> "CellId":
        """First cell at the given level in curve order."""
        return cls.from_face_pos_level(0, 0, 0).child_begin(level)

    @classmethod
    def end(cls, level: int) -> "CellId":
        """Exclusive end of the cells at the given level in curve order."""
        return cls.from_face_pos_level(NUM_FACES - 1, 0, 0).child_end(level)

    @classmethod
    def from_face_ij(cls, face: int, i: int, j: int) -> "CellId":
        n = face << (POS_BITS - 1)
        bits = face & _SWAP_MASK
        mask = (1 << _LOOKUP_BITS) - 1
        for k in range(7, -1, -1):
            bits += ((i >> (k * _LOOKUP_BITS)) & mask) << (_LOOKUP_BITS + 2)
            bits += ((j >> (k * _LOOKUP_BITS)) & mask) << 2
            bits = _LOOKUP_POS[bits]
            n |= (bits >> 2) << (k * 2 * _LOOKUP_BITS)
            bits &= _SWAP_MASK | _INVERT_MASK
        return cls(n * 2 + 1)

    @classmethod
    def _from_face_ij_wrap(cls, face: int, i: int, j: int) -> "CellId":
        # Leaf cell just beyond the face boundary, found by projecting onto
        # the neighbouring face. The linear uv mapping is exact at the edges.
        i = max(-1, min(MAX_SIZE, i))
        j = max(-1, min(MAX_SIZE, j))
        scale = 1.0 / MAX_SIZE
        limit = 1.0 + sys.float_info.epsilon
        u = max(-limit, min(limit, scale * (2 * (i - MAX_SIZE // 2) + 1)))
        v = max(-limit, min(limit, scale * (2 * (j - MAX_SIZE // 2) + 1)))
        face, u, v = _xyz_to_face_uv(_face_uv_to_xyz(face, u, v))
        return cls.from_face_ij(face, _st_to_ij(0.5 * (u + 1)), _st_to_ij(0.5 * (v + 1)))

    @classmethod
    def _from_face_ij_same(cls, face: int, i: int, j: int, same_face: bool) -> "CellId":
        if same_face:
            return cls.from_face_ij(face, i, j)
        return cls._from_face_ij_wrap(face, i, j)

    @classmethod
    def from_point(cls, p) -> "CellId":
        """Leaf cell containing the point (need not be unit length)."""
        face, u, v = _xyz_to_face_uv(np.asarray(p, dtype=float))
        i = _st_to_ij(_uv_to_st(u))
        j = _st_to_ij(_uv_to_st(v))
        return cls.from_face_ij(face, i, j)

    @classmethod
    def from_lat_lng(cls, lat: float, lng: float) -> "CellId":
        """Leaf cell containing the given latitude / longitude in degrees."""
        phi = math.radians(lat)
        theta = math.radians(lng)
        cos_phi = math.cos(phi)
        return cls.from_point((cos_phi * math.cos(theta), cos_phi * math.sin(theta), math.sin(phi)))

    @classmethod
    def from_token(cls, token: str) -> "CellId":
        """
        Parse a hex token as produced by to_token().

        Raises:
            ValueError: If the token is empty, too long or not hexadecimal
        """
        if token in ("X", "x"):
            return cls.none()
        if _TOKEN_RE.fullmatch(token) is None:
            raise ValueError(f"Invalid cell token: {token!r}")
        return cls(int(token, 16) << (4 * (16 - len(token))))

    # -------------------------------------------------------------------------
    # Comparison
    # -------------------------------------------------------------------------

    def __eq__(self, other):
        if not isinstance(other, CellId):
            return NotImplemented
        return self._id == other._id

    def __ne__(self, other):
        if not isinstance(other, CellId):
            return NotImplemented
        return self._id != other._id

    def __lt__(self, other: "CellId") -> bool:
        return self._id < other._id

    def __le__(self, other: "CellId") -> bool:
        return self._id <= other._id

    def __gt__(self, other: "CellId") -> bool:
        return self._id > other._id

    def __ge__(self, other: "CellId") -> bool:
        return self._id >= other._id

    def __hash__(self):
        return hash(self._id)

    def __repr__(self):
        return f"CellId({self.to_token()})"

    def __int__(self):
        return self._id

    # -------------------------------------------------------------------------
    # Level encoding
    # -------------------------------------------------------------------------

    def id(self) -> int:
        return self._id

    def lowest_on_bit(self) -> int:
        return self._id & -self._id

    @staticmethod
    def lowest_on_bit_for_level(level: int) -> int:
        return 1 << (2 * (MAX_LEVEL - level))

    def is_valid(self) -> bool:
        return self.face() < NUM_FACES and (self.lowest_on_bit() & 0x1555555555555555) != 0

    def face(self) -> int:
        return self._id >> POS_BITS

    def pos(self) -> int:
        return self._id & (_MASK64 >> FACE_BITS)

    def level(self) -> int:
        if self._id & 1:
            return MAX_LEVEL
        return MAX_LEVEL - ((self.lowest_on_bit().bit_length() - 1) >> 1)

    def is_leaf(self) -> bool:
        return (self._id & 1) != 0

    def is_face(self) -> bool:
        return (self._id & (self.lowest_on_bit_for_level(0) - 1)) == 0

    def get_size_ij(self) -> int:
        return 1 << (MAX_LEVEL - self.level())

    # -------------------------------------------------------------------------
    # Hierarchy navigation
    # -------------------------------------------------------------------------

    def parent(self, level: Optional[int] = None) -> "CellId":
        if level is None:
            new_lsb = self.lowest_on_bit() << 2
        else:
            new_lsb = self.lowest_on_bit_for_level(level)
        return CellId((self._id & -new_lsb) | new_lsb)

    def child_begin(self, level: Optional[int] = None) -> "CellId":
        old_lsb = self.lowest_on_bit()
        if level is None:
            return CellId(self._id - old_lsb + (old_lsb >> 2))
        return CellId(self._id - old_lsb + self.lowest_on_bit_for_level(level))

    def child_end(self, level: Optional[int] = None) -> "CellId":
        old_lsb = self.lowest_on_bit()
        if level is None:
            return CellId(self._id + old_lsb + (old_lsb >> 2))
        return CellId(self._id + old_lsb + self.lowest_on_bit_for_level(level))

    def children(self, level: Optional[int] = None) -> List["CellId"]:
        """All descendants at the given level (default: next level) in order."""
        out = []
        end = self.child_end(level)
        child = self.child_begin(level)
        while child != end:
            out.append(child)
            child = child.next()
        return out

    def next(self) -> "CellId":
        return CellId(self._id + (self.lowest_on_bit() << 1))

    def prev(self) -> "CellId":
        return CellId(self._id - (self.lowest_on_bit() << 1))

    # -------------------------------------------------------------------------
    # Ranges
    # -------------------------------------------------------------------------

    def range_min(self) -> "CellId":
        return CellId(self._id - (self.lowest_on_bit() - 1))

    def range_max(self) -> "CellId":
        return CellId(self._id + (self.lowest_on_bit() - 1))

    def contains(self, other: "CellId") -> bool:
        return self.range_min() <= other <= self.range_max()

    def intersects(self, other: "CellId") -> bool:
        return other.range_min() <= self.range_max() and other.range_max() >= self.range_min()

    # -------------------------------------------------------------------------
    # Geometry
    # -------------------------------------------------------------------------

    def _to_face_ij(self) -> Tuple[int, int, int]:
        """Face and (i, j) of the leaf cell at the center of this cell's range."""
        i = 0
        j = 0
        face = self.face()
        bits = face & _SWAP_MASK
        for k in range(7, -1, -1):
            nbits = MAX_LEVEL - 7 * _LOOKUP_BITS if k == 7 else _LOOKUP_BITS
            bits += ((self._id >> (k * 2 * _LOOKUP_BITS + 1)) & ((1 << (2 * nbits)) - 1)) << 2
            bits = _LOOKUP_IJ[bits]
            i += (bits >> (_LOOKUP_BITS + 2)) << (k * _LOOKUP_BITS)
            j += ((bits >> 2) & ((1 << _LOOKUP_BITS) - 1)) << (k * _LOOKUP_BITS)
            bits &= _SWAP_MASK | _INVERT_MASK
        return face, i, j

    def _ij_bounds(self) -> Tuple[int, int, int, int]:
        """Face, lower-left leaf (i, j) and edge length in leaf cells."""
        face, i, j = self._to_face_ij()
        size = self.get_size_ij()
        return face, i & -size, j & -size, size

    def get_uv_bounds(self) -> Tuple[int, Tuple[float, float], Tuple[float, float]]:
        """Face plus the (u_lo, u_hi) and (v_lo, v_hi) extent of the cell."""
        face, i, j, size = self._ij_bounds()
        u = (_st_to_uv(i / MAX_SIZE), _st_to_uv((i + size) / MAX_SIZE))
        v = (_st_to_uv(j / MAX_SIZE), _st_to_uv((j + size) / MAX_SIZE))
        return face, u, v

    def to_point_raw(self) -> np.ndarray:
        face, i, j, size = self._ij_bounds()
        u = _st_to_uv((i + 0.5 * size) / MAX_SIZE)
        v = _st_to_uv((j + 0.5 * size) / MAX_SIZE)
        return _face_uv_to_xyz(face, u, v)

    def to_point(self) -> np.ndarray:
        """Unit vector at the center of the cell."""
        p = self.to_point_raw()
        return p / np.linalg.norm(p)

    def to_lat_lng(self) -> Tuple[float, float]:
        """Center of the cell as (lat, lng) in degrees."""
        x, y, z = self.to_point_raw()
        return math.degrees(math.atan2(z, math.hypot(x, y))), math.degrees(math.atan2(y, x))

    def get_all_neighbors(self, nbr_level: int) -> List["CellId"]:
        """
        All cells at nbr_level that touch this cell's boundary.

        Includes edge and vertex neighbours, across cube faces. Requires
        nbr_level >= level(). Results may contain duplicates.
        """
        if nbr_level < self.level():
            raise ValueError(f"nbr_level {nbr_level} is coarser than cell level {self.level()}")

        output: List[CellId] = []
        face, i, j, size = self._ij_bounds()
        nbr_size = 1 << (MAX_LEVEL - nbr_level)

        # Walk along the edges, collecting cells just outside the boundary.
        # k runs from one cell before the bottom-left corner to the
        # top-right corner.
        k = -nbr_size
        while True:
            if k < 0:
                same_face = j + k >= 0
            elif k >= size:
                same_face = j + k < MAX_SIZE
            else:
                same_face = True
                # Bottom and top neighbours
                output.append(self._from_face_ij_same(
                    face, i + k, j - nbr_size, j - size >= 0).parent(nbr_level))
                output.append(self._from_face_ij_same(
                    face, i + k, j + size, j + size < MAX_SIZE).parent(nbr_level))
            # Left, right and diagonal neighbours
            output.append(self._from_face_ij_same(
                face, i - nbr_size, j + k, same_face and i - size >= 0).parent(nbr_level))
            output.append(self._from_face_ij_same(
                face, i + size, j + k, same_face and i + size < MAX_SIZE).parent(nbr_level))
            if k >= size:
                break
            k += nbr_size

        return output

    # -------------------------------------------------------------------------
    # Tokens
    # -------------------------------------------------------------------------

    def to_token(self) -> str:
        if self._id == 0:
            return "X"
        return f"{self._id:016x}".rstrip("0")
