"""
Spherical geometry primitives used by cells and cell unions.

Points are unit 3-vectors stored as numpy arrays. Angles are in radians
unless a function says otherwise.
"""

import math
import sys
from typing import Tuple

import numpy as np


_EPS = sys.float_info.epsilon
_ROUND_UP = 1.0 + 2.0 * _EPS


# =============================================================================
# POINTS
# =============================================================================

def normalize(p) -> np.ndarray:
    p = np.asarray(p, dtype=float)
    n = np.linalg.norm(p)
    if n == 0:
        return p
    return p / n


def angle_between(a, b) -> float:
    """Angle between two (not necessarily unit) vectors, in [0, pi]."""
    return math.atan2(float(np.linalg.norm(np.cross(a, b))), float(np.dot(a, b)))


def lat_lng_to_point(lat: float, lng: float) -> np.ndarray:
    """Unit vector for latitude / longitude in degrees."""
    phi = math.radians(lat)
    theta = math.radians(lng)
    cos_phi = math.cos(phi)
    return np.array([cos_phi * math.cos(theta), cos_phi * math.sin(theta), math.sin(phi)])


def point_to_lat_lng(p) -> Tuple[float, float]:
    """(lat, lng) in degrees."""
    x, y, z = (float(c) for c in p)
    return math.degrees(math.atan2(z, math.hypot(x, y))), math.degrees(math.atan2(y, x))


def latitude(p) -> float:
    return math.atan2(float(p[2]), math.hypot(float(p[0]), float(p[1])))


def longitude(p) -> float:
    return math.atan2(float(p[1]), float(p[0]))


def triangle_area(a, b, c) -> float:
    """Area of the spherical triangle abc (l'Huilier's theorem)."""
    sa = angle_between(b, c)
    sb = angle_between(c, a)
    sc = angle_between(a, b)
    s = 0.5 * (sa + sb + sc)
    t = (math.tan(0.5 * s) * math.tan(0.5 * (s - sa))
         * math.tan(0.5 * (s - sb)) * math.tan(0.5 * (s - sc)))
    return 4 * math.atan(math.sqrt(max(0.0, t)))


# =============================================================================
# INTERVALS
# =============================================================================

class R1Interval:
    """Closed interval on the real line. Empty if lo > hi."""

    __slots__ = ("lo", "hi")

    def __init__(self, lo: float, hi: float):
        self.lo = lo
        self.hi = hi

    @classmethod
    def empty(cls) -> "R1Interval":
        return cls(1.0, 0.0)

    @classmethod
    def from_point_pair(cls, p1: float, p2: float) -> "R1Interval":
        if p1 <= p2:
            return cls(p1, p2)
        return cls(p2, p1)

    def is_empty(self) -> bool:
        return self.lo > self.hi

    def contains(self, p: float) -> bool:
        return self.lo <= p <= self.hi

    def contains_interval(self, y: "R1Interval") -> bool:
        if y.is_empty():
            return True
        return self.lo <= y.lo and y.hi <= self.hi

    def union(self, y: "R1Interval") -> "R1Interval":
        if self.is_empty():
            return y
        if y.is_empty():
            return self
        return R1Interval(min(self.lo, y.lo), max(self.hi, y.hi))

    def intersection(self, y: "R1Interval") -> "R1Interval":
        return R1Interval(max(self.lo, y.lo), min(self.hi, y.hi))

    def expanded(self, margin: float) -> "R1Interval":
        if self.is_empty():
            return self
        return R1Interval(self.lo - margin, self.hi + margin)

    def __eq__(self, other):
        if not isinstance(other, R1Interval):
            return NotImplemented
        return (self.lo == other.lo and self.hi == other.hi) or (self.is_empty() and other.is_empty())

    def __repr__(self):
        return f"R1Interval({self.lo}, {self.hi})"


class S1Interval:
    """
    Closed interval on the unit circle (longitudes).

    Endpoints lie in [-pi, pi]. lo > hi means the interval wraps through
    +/-pi. The full interval is [-pi, pi], the empty one [pi, -pi].
    """

    __slots__ = ("lo", "hi")

    def __init__(self, lo: float, hi: float):
        if lo == -math.pi and hi != math.pi:
            lo = math.pi
        if hi == -math.pi and lo != math.pi:
            hi = math.pi
        self.lo = lo
        self.hi = hi

    @classmethod
    def empty(cls) -> "S1Interval":
        return cls(math.pi, -math.pi)

    @classmethod
    def full(cls) -> "S1Interval":
        return cls(-math.pi, math.pi)

    @staticmethod
    def positive_distance(a: float, b: float) -> float:
        d = b - a
        if d >= 0:
            return d
        return (b + math.pi) - (a - math.pi)

    @classmethod
    def from_point_pair(cls, p1: float, p2: float) -> "S1Interval":
        if p1 == -math.pi:
            p1 = math.pi
        if p2 == -math.pi:
            p2 = math.pi
        if cls.positive_distance(p1, p2) <= math.pi:
            return cls(p1, p2)
        return cls(p2, p1)

    def is_full(self) -> bool:
        return self.hi - self.lo == 2 * math.pi

    def is_empty(self) -> bool:
        return self.lo - self.hi == 2 * math.pi

    def is_inverted(self) -> bool:
        return self.lo > self.hi

    def length(self) -> float:
        length = self.hi - self.lo
        if length >= 0:
            return length
        length += 2 * math.pi
        return length if length > 0 else -1.0

    def _fast_contains(self, p: float) -> bool:
        if self.is_inverted():
            return (p >= self.lo or p <= self.hi) and not self.is_empty()
        return self.lo <= p <= self.hi

    def contains(self, p: float) -> bool:
        if p == -math.pi:
            p = math.pi
        return self._fast_contains(p)

    def contains_interval(self, y: "S1Interval") -> bool:
        if self.is_inverted():
            if y.is_inverted():
                return y.lo >= self.lo and y.hi <= self.hi
            return (y.lo >= self.lo or y.hi <= self.hi) and not self.is_empty()
        if y.is_inverted():
            return self.is_full() or y.is_empty()
        return y.lo >= self.lo and y.hi <= self.hi

    def union(self, y: "S1Interval") -> "S1Interval":
        if y.is_empty():
            return self
        if self._fast_contains(y.lo):
            if self._fast_contains(y.hi):
                if self.contains_interval(y):
                    return self
                return S1Interval.full()
            return S1Interval(self.lo, y.hi)
        if self._fast_contains(y.hi):
            return S1Interval(y.lo, self.hi)

        # Neither endpoint of y is in self: either self is inside y, or the
        # two are disjoint and the smaller gap gets filled.
        if self.is_empty() or y._fast_contains(self.lo):
            return y
        dlo = self.positive_distance(y.hi, self.lo)
        dhi = self.positive_distance(self.hi, y.lo)
        if dlo < dhi:
            return S1Interval(y.lo, self.hi)
        return S1Interval(self.lo, y.hi)

    def expanded(self, margin: float) -> "S1Interval":
        if margin >= 0:
            if self.is_empty():
                return self
            if self.length() + 2 * margin + 2 * _EPS >= 2 * math.pi:
                return S1Interval.full()
        else:
            if self.is_full():
                return self
            if self.length() + 2 * margin - 2 * _EPS <= 0:
                return S1Interval.empty()
        lo = math.remainder(self.lo - margin, 2 * math.pi)
        hi = math.remainder(self.hi + margin, 2 * math.pi)
        if lo <= -math.pi:
            lo = math.pi
        return S1Interval(lo, hi)

    def __eq__(self, other):
        if not isinstance(other, S1Interval):
            return NotImplemented
        return self.lo == other.lo and self.hi == other.hi

    def __repr__(self):
        return f"S1Interval({self.lo}, {self.hi})"


# =============================================================================
# LAT / LNG RECTANGLE
# =============================================================================

class LatLngRect:
    """Latitude / longitude rectangle, stored in radians."""

    __slots__ = ("lat", "lng")

    def __init__(self, lat: R1Interval, lng: S1Interval):
        self.lat = lat
        self.lng = lng

    @classmethod
    def empty(cls) -> "LatLngRect":
        return cls(R1Interval.empty(), S1Interval.empty())

    @classmethod
    def full(cls) -> "LatLngRect":
        return cls(R1Interval(-math.pi / 2, math.pi / 2), S1Interval.full())

    def is_empty(self) -> bool:
        return self.lat.is_empty()

    def is_full(self) -> bool:
        return self.lat.lo == -math.pi / 2 and self.lat.hi == math.pi / 2 and self.lng.is_full()

    def contains_lat_lng(self, lat: float, lng: float) -> bool:
        """Containment test for a point given in degrees."""
        return self.lat.contains(math.radians(lat)) and self.lng.contains(math.radians(lng))

    def contains_point(self, p) -> bool:
        return self.lat.contains(latitude(p)) and self.lng.contains(longitude(p))

    def contains(self, other: "LatLngRect") -> bool:
        return self.lat.contains_interval(other.lat) and self.lng.contains_interval(other.lng)

    def union(self, other: "LatLngRect") -> "LatLngRect":
        return LatLngRect(self.lat.union(other.lat), self.lng.union(other.lng))

    def expanded(self, lat_margin: float, lng_margin: float) -> "LatLngRect":
        if self.is_empty():
            return self
        lat = self.lat.expanded(lat_margin).intersection(R1Interval(-math.pi / 2, math.pi / 2))
        return LatLngRect(lat, self.lng.expanded(lng_margin))

    def polar_closure(self) -> "LatLngRect":
        if self.lat.lo == -math.pi / 2 or self.lat.hi == math.pi / 2:
            return LatLngRect(self.lat, S1Interval.full())
        return self

    def bounds_degrees(self) -> Tuple[float, float, float, float]:
        """(lng_lo, lat_lo, lng_hi, lat_hi) in degrees."""
        return (
            math.degrees(self.lng.lo),
            math.degrees(self.lat.lo),
            math.degrees(self.lng.hi),
            math.degrees(self.lat.hi),
        )

    def __eq__(self, other):
        if not isinstance(other, LatLngRect):
            return NotImplemented
        return self.lat == other.lat and self.lng == other.lng

    def __repr__(self):
        lng_lo, lat_lo, lng_hi, lat_hi = self.bounds_degrees()
        return f"LatLngRect(lat=[{lat_lo:.6f}, {lat_hi:.6f}], lng=[{lng_lo:.6f}, {lng_hi:.6f}])"


# =============================================================================
# CAP
# =============================================================================

class Cap:
    """
    Spherical cap: all points within an angle of the axis.

    Stored as axis plus height h = 1 - cos(angle). h < 0 is empty, h >= 2
    is the whole sphere.
    """

    __slots__ = ("axis", "height")

    def __init__(self, axis, height: float):
        self.axis = np.asarray(axis, dtype=float)
        self.height = height

    @classmethod
    def empty(cls) -> "Cap":
        return cls((1.0, 0.0, 0.0), -1.0)

    @classmethod
    def full(cls) -> "Cap":
        return cls((1.0, 0.0, 0.0), 2.0)

    @classmethod
    def from_axis_height(cls, axis, height: float) -> "Cap":
        return cls(axis, height)

    @classmethod
    def from_axis_angle(cls, axis, angle: float) -> "Cap":
        if angle < 0:
            return cls.empty()
        if angle >= math.pi:
            return cls(axis, 2.0)
        d = math.sin(0.5 * angle)
        return cls(axis, 2 * d * d)

    def is_empty(self) -> bool:
        return self.height < 0

    def is_full(self) -> bool:
        return self.height >= 2

    def angle(self) -> float:
        if self.is_empty():
            return -1.0
        return 2 * math.asin(math.sqrt(0.5 * min(self.height, 2.0)))

    def area(self) -> float:
        return 2 * math.pi * max(0.0, self.height)

    def contains_point(self, p) -> bool:
        d = self.axis - np.asarray(p, dtype=float)
        return 0.5 * float(np.dot(d, d)) <= self.height

    def contains_cap(self, other: "Cap") -> bool:
        if self.is_full() or other.is_empty():
            return True
        return self.angle() >= angle_between(self.axis, other.axis) + other.angle()

    def add_point(self, p) -> "Cap":
        """Smallest cap with the same axis that also contains p."""
        p = np.asarray(p, dtype=float)
        if self.is_empty():
            return Cap(p, 0.0)
        d = self.axis - p
        return Cap(self.axis, max(self.height, _ROUND_UP * 0.5 * float(np.dot(d, d))))

    def add_cap(self, other: "Cap") -> "Cap":
        """Smallest cap with the same axis that also contains other."""
        if self.is_empty():
            return Cap(other.axis, other.height)
        if other.is_empty():
            return self
        angle = angle_between(self.axis, other.axis) + other.angle()
        if angle >= math.pi:
            return Cap(self.axis, 2.0)
        d = math.sin(0.5 * angle)
        return Cap(self.axis, max(self.height, _ROUND_UP * 2 * d * d))

    def __repr__(self):
        return f"Cap(axis={self.axis.tolist()}, angle={self.angle():.9f})"
