"""
CellUnion - region represented as a sorted, disjoint list of cells.

A normalized ("canonical") union satisfies:
  1. cell ids are strictly increasing
  2. no cell contains another
  3. no four consecutive cells are the four children of one parent

All queries and set operations assume canonical form. Every init_* entry
point except the raw variants normalizes; the set operations produce
canonical output themselves. Normalization is never done implicitly on the
caller's behalf: a raw-initialized union that is not canonical gives wrong
answers, not corrected ones.

Verwendung:
    from s2engine import CellId, CellUnion

    a = CellUnion.from_cell_ids(CellId.from_lat_lng(47.5, 7.5).parent(12).children())
    a.size()  # 1, the four children collapse into their parent

    b = CellUnion()
    b.get_intersection(a, some_other_union)
    b.expand(14)
"""

from bisect import bisect_left
from typing import Iterable, Iterator, List, Union

import numpy as np

from .cell import AVG_LEAF_AREA, MIN_WIDTH, Cell
from .cell_id import CellId, MAX_LEVEL
from .geometry import Cap, LatLngRect, normalize


class CellUnion:
    """
    Normalized collection of CellIds covering a region of the sphere.

    Attributes are not exposed directly; use cell_ids() for the underlying
    list. The union owns its list: init_* methods copy (or, for the swap
    variants, take and clear) the caller's list.
    """

    __slots__ = ("_cell_ids",)

    def __init__(self):
        self._cell_ids: List[CellId] = []

    @classmethod
    def from_cell_ids(cls, cell_ids: Iterable[CellId]) -> "CellUnion":
        union = cls()
        union.init_from_cell_ids(cell_ids)
        return union

    @classmethod
    def from_ids(cls, ids: Iterable[int]) -> "CellUnion":
        union = cls()
        union.init_from_ids(ids)
        return union

    # -------------------------------------------------------------------------
    # Initialisierung
    # -------------------------------------------------------------------------

    def init_from_cell_ids(self, cell_ids: Iterable[CellId]) -> None:
        self.init_raw_cell_ids(cell_ids)
        self.normalize()

    def init_from_ids(self, ids: Iterable[int]) -> None:
        """Populate from raw 64-bit ids, then normalize."""
        self.init_raw_ids(ids)
        self.normalize()

    def init_swap(self, cell_ids: List[CellId]) -> None:
        """Take the contents of cell_ids (leaving it empty), then normalize."""
        self.init_raw_swap(cell_ids)
        self.normalize()

    def init_raw_cell_ids(self, cell_ids: Iterable[CellId]) -> None:
        """
        Like init_from_cell_ids() but without normalizing.

        The caller guarantees canonical form, e.g. when restoring a union
        that was stored in normalized form.
        """
        self._cell_ids = list(cell_ids)

    def init_raw_ids(self, ids: Iterable[int]) -> None:
        self._cell_ids = [CellId(i) for i in ids]

    def init_raw_swap(self, cell_ids: List[CellId]) -> None:
        self._cell_ids = list(cell_ids)
        cell_ids.clear()

    # -------------------------------------------------------------------------
    # Zugriff
    # -------------------------------------------------------------------------

    def size(self) -> int:
        return len(self._cell_ids)

    def cell_id(self, i: int) -> CellId:
        return self._cell_ids[i]

    def cell_ids(self) -> List[CellId]:
        """Direct access to the underlying list."""
        return self._cell_ids

    def pack(self) -> None:
        # Python lists manage their own capacity; rebuilding drops any
        # over-allocation left behind by large removals.
        self._cell_ids = list(self._cell_ids)

    def clone(self) -> "CellUnion":
        copy = CellUnion()
        copy.init_raw_cell_ids(self._cell_ids)
        return copy

    def is_empty(self) -> bool:
        return not self._cell_ids

    def __len__(self) -> int:
        return len(self._cell_ids)

    def __getitem__(self, i: int) -> CellId:
        return self._cell_ids[i]

    def __iter__(self) -> Iterator[CellId]:
        return iter(self._cell_ids)

    def __eq__(self, other):
        if not isinstance(other, CellUnion):
            return NotImplemented
        return self._cell_ids == other._cell_ids

    def __ne__(self, other):
        if not isinstance(other, CellUnion):
            return NotImplemented
        return self._cell_ids != other._cell_ids

    def __hash__(self):
        value = 17
        for cell_id in self._cell_ids:
            value = (37 * value + hash(cell_id)) & 0xFFFFFFFFFFFFFFFF
        return value

    def __repr__(self):
        tokens = ", ".join(c.to_token() for c in self._cell_ids[:8])
        more = ", ..." if len(self._cell_ids) > 8 else ""
        return f"CellUnion([{tokens}{more}])"

    # -------------------------------------------------------------------------
    # Normalisierung
    # -------------------------------------------------------------------------

    def normalize(self) -> bool:
        """
        Bring the union into canonical form.

        Sorts the cells, discards cells contained in other cells and
        replaces every complete group of four siblings by their parent
        (repeatedly, so merges cascade upwards).

        Returns:
            True if the number of cells was reduced
        """
        self._cell_ids.sort()
        output: List[CellId] = []

        for cell_id in self._cell_ids:
            # Already covered by the previous cell
            if output and output[-1].contains(cell_id):
                continue

            # Drop previous cells covered by this one
            while output and cell_id.contains(output[-1]):
                output.pop()

            # Collapse the last three output cells plus this one into their
            # parent while they form a complete sibling group.
            while len(output) >= 3:
                a, b, c = output[-3].id(), output[-2].id(), output[-1].id()
                raw = cell_id.id()

                # Necessary condition, cheap: the four ids XOR to zero.
                if a ^ b ^ c != raw:
                    break

                # Exact test: everything except the two child-position bits
                # must agree.
                mask = cell_id.lowest_on_bit() << 1
                mask = ~(mask + (mask << 1))
                masked = raw & mask
                if (a & mask) != masked or (b & mask) != masked or (c & mask) != masked \
                        or cell_id.is_face():
                    break

                del output[-3:]
                cell_id = cell_id.parent()

            output.append(cell_id)

        if len(output) < len(self._cell_ids):
            self.init_raw_swap(output)
            return True
        return False

    def is_normalized(self) -> bool:
        """Read-only check for canonical form. Never modifies the union."""
        ids = self._cell_ids
        for i in range(1, len(ids)):
            if ids[i - 1].range_max() >= ids[i].range_min():
                return False
            if i >= 3 and not ids[i].is_face():
                parent = ids[i].parent()
                if ids[i - 3].level() == ids[i].level() \
                        and all(ids[k].parent() == parent for k in range(i - 3, i)):
                    return False
        return True

    def denormalize(self, min_level: int, level_mod: int) -> List[CellId]:
        """
        Expand cells so that every level is >= min_level and
        (level - min_level) is a multiple of level_mod.

        Useful for turning a normalized covering back into the list of cells
        a level-constrained covering would have produced.

        Args:
            min_level: Minimum output level (0-30)
            level_mod: Level step (1-3)

        Returns:
            New list of CellIds; the union itself is not modified

        Raises:
            ValueError: If min_level or level_mod are out of range
        """
        if not 0 <= min_level <= MAX_LEVEL:
            raise ValueError(f"min_level must be in [0, {MAX_LEVEL}], got {min_level}")
        if not 1 <= level_mod <= 3:
            raise ValueError(f"level_mod must be in [1, 3], got {level_mod}")

        output: List[CellId] = []
        for cell_id in self._cell_ids:
            level = cell_id.level()
            new_level = max(min_level, level)
            if level_mod > 1:
                # Round up; MAX_LEVEL is a multiple of 1, 2 and 3.
                new_level += (MAX_LEVEL - (new_level - min_level)) % level_mod
                new_level = min(MAX_LEVEL, new_level)
            if new_level == level:
                output.append(cell_id)
            else:
                output.extend(cell_id.children(new_level))
        return output

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def contains(self, other) -> bool:
        """
        Containment test for a CellId, Cell, CellUnion or point.

        Requires canonical form. O(log n) for single cells and points,
        O(m log n) for unions.
        """
        if isinstance(other, CellId):
            return self._contains_cell_id(other)
        if isinstance(other, CellUnion):
            return all(self._contains_cell_id(c) for c in other._cell_ids)
        if isinstance(other, Cell):
            return self._contains_cell_id(other.id())
        return self._contains_cell_id(CellId.from_point(other))

    def intersects(self, other) -> bool:
        """Intersection test for a CellId, Cell or CellUnion. Requires canonical form."""
        if isinstance(other, CellId):
            return self._intersects_cell_id(other)
        if isinstance(other, CellUnion):
            return any(self._intersects_cell_id(c) for c in other._cell_ids)
        if isinstance(other, Cell):
            return self._intersects_cell_id(other.id())
        raise TypeError(f"Unsupported type for intersects: {type(other)}")

    def may_intersect(self, cell: Cell) -> bool:
        return self._intersects_cell_id(cell.id())

    def _contains_cell_id(self, cell_id: CellId) -> bool:
        # Each cell is a contiguous span of the curve, and the cell id sits
        # at the center of its span. The cell is contained iff one of the two
        # neighbours of its insertion point contains it.
        ids = self._cell_ids
        pos = bisect_left(ids, cell_id)
        if pos < len(ids) and ids[pos].range_min() <= cell_id:
            return True
        return pos != 0 and ids[pos - 1].range_max() >= cell_id

    def _intersects_cell_id(self, cell_id: CellId) -> bool:
        ids = self._cell_ids
        pos = bisect_left(ids, cell_id)
        if pos < len(ids) and ids[pos].range_min() <= cell_id.range_max():
            return True
        return pos != 0 and ids[pos - 1].range_max() >= cell_id.range_min()

    # -------------------------------------------------------------------------
    # Set-Operationen
    # -------------------------------------------------------------------------

    def _check_operands(self, *operands) -> None:
        for operand in operands:
            if operand is self:
                raise ValueError("The receiver cannot be an operand of its own set operation")

    def get_union(self, x: "CellUnion", y: "CellUnion") -> None:
        """Replace this union with x | y. Neither operand may be self."""
        self._check_operands(x, y)
        self._cell_ids = x._cell_ids + y._cell_ids
        self.normalize()

    def get_intersection(self, x: "CellUnion", y: Union["CellUnion", CellId]) -> None:
        """
        Replace this union with x & y, where y is a CellUnion or a CellId.

        Both inputs must be normalized; the result is normalized without a
        further normalize() pass. Neither operand may be self.
        """
        self._check_operands(x, y)
        if isinstance(y, CellId):
            self._cell_ids = self._intersection_with_cell_id(x, y)
        else:
            self._cell_ids = self._intersection_with_union(x, y)

    def union(self, other: "CellUnion") -> "CellUnion":
        """New union covering self | other."""
        result = CellUnion()
        result.get_union(self, other)
        return result

    def intersection(self, other: Union["CellUnion", CellId]) -> "CellUnion":
        """New union covering self & other."""
        result = CellUnion()
        result.get_intersection(self, other)
        return result

    @staticmethod
    def _intersection_with_cell_id(x: "CellUnion", cell_id: CellId) -> List[CellId]:
        if x.contains(cell_id):
            return [cell_id]

        ids = x._cell_ids
        pos = bisect_left(ids, cell_id.range_min())
        id_max = cell_id.range_max()
        output = []
        while pos < len(ids) and ids[pos] <= id_max:
            output.append(ids[pos])
            pos += 1
        return output

    @staticmethod
    def _intersection_with_union(x: "CellUnion", y: "CellUnion") -> List[CellId]:
        # Merge scan with binary-search jumps over non-overlapping runs.
        # Constant time when all of x lies before or after all of y.
        xs = x._cell_ids
        ys = y._cell_ids
        output: List[CellId] = []
        i = 0
        j = 0

        while i < len(xs) and j < len(ys):
            imin = xs[i].range_min()
            jmin = ys[j].range_min()
            if imin > jmin:
                # Either ys[j] contains xs[i] or the two are disjoint.
                if xs[i] <= ys[j].range_max():
                    output.append(xs[i])
                    i += 1
                else:
                    # Advance j to the first cell possibly contained by xs[i];
                    # the cell before it may still contain xs[i].
                    j = bisect_left(ys, imin, j + 1)
                    if xs[i] <= ys[j - 1].range_max():
                        j -= 1
            elif jmin > imin:
                if ys[j] <= xs[i].range_max():
                    output.append(ys[j])
                    j += 1
                else:
                    i = bisect_left(xs, jmin, i + 1)
                    if ys[j] <= xs[i - 1].range_max():
                        i -= 1
            else:
                # Same range_min: the smaller id is the one contained.
                if xs[i] < ys[j]:
                    output.append(xs[i])
                    i += 1
                else:
                    output.append(ys[j])
                    j += 1

        return output

    # -------------------------------------------------------------------------
    # Expansion
    # -------------------------------------------------------------------------

    def expand(self, level: int) -> None:
        """
        Add every cell at the given level that touches the union.

        Cells coarser than level are kept as they are (their neighbours at
        level are still added); cells finer than level are first widened to
        their ancestor at level. Output size is exponential in
        (level - coarsest cell level).

        Raises:
            ValueError: If level is not in [0, 30]
        """
        if not 0 <= level <= MAX_LEVEL:
            raise ValueError(f"level must be in [0, {MAX_LEVEL}], got {level}")
        if not self._cell_ids:
            return

        output: List[CellId] = []
        level_lsb = CellId.lowest_on_bit_for_level(level)
        i = len(self._cell_ids) - 1
        while i >= 0:
            cell_id = self._cell_ids[i]
            if cell_id.lowest_on_bit() < level_lsb:
                cell_id = cell_id.parent(level)
                # Skip cells covered by the widened one; matters when many
                # small cells are expanded.
                while i > 0 and cell_id.contains(self._cell_ids[i - 1]):
                    i -= 1
            output.append(cell_id)
            output.extend(cell_id.get_all_neighbors(level))
            i -= 1

        self.init_swap(output)

    def expand_by_radius(self, min_radius: float, max_level_diff: int) -> None:
        """
        Expand so that every point within min_radius (radians) of the union
        is covered, using cells at most max_level_diff levels finer than the
        largest cell of the union.

        With max_level_diff == 4 the region grows by roughly 1/16 of its
        largest cell. The output can be up to 4 * (1 + 2 ** max_level_diff)
        times larger than the input.
        """
        if max_level_diff < 0:
            raise ValueError(f"max_level_diff must be >= 0, got {max_level_diff}")
        if not self._cell_ids:
            return

        min_level = min(c.level() for c in self._cell_ids)
        radius_level = MIN_WIDTH.get_max_level(min_radius)
        if radius_level == 0 and min_radius > MIN_WIDTH.get_value(0):
            # Radius wider than a face cell: expand once at level 0 first.
            self.expand(0)
        self.expand(min(min_level + max_level_diff, radius_level))

    # -------------------------------------------------------------------------
    # Flaeche / Bounds
    # -------------------------------------------------------------------------

    def leaf_cells_covered(self) -> int:
        """Number of leaf cells covered (at most 6 * 4**30)."""
        return sum(1 << ((MAX_LEVEL - c.level()) << 1) for c in self._cell_ids)

    def average_based_area(self) -> float:
        """
        Leaf count times the average leaf area (steradians).

        Ignores cell distortion, so it can be off by a factor of up to 1.7;
        fine for comparing regions against each other.
        """
        return AVG_LEAF_AREA * self.leaf_cells_covered()

    def approx_area(self) -> float:
        return float(sum(Cell(c).approx_area() for c in self._cell_ids))

    def exact_area(self) -> float:
        return float(sum(Cell(c).exact_area() for c in self._cell_ids))

    def get_cap_bound(self) -> Cap:
        """
        Cap around the area-weighted centroid that contains every cell.

        Not the minimal cap, but close. Built from the cell caps rather than
        the cell vertices since the bound may exceed a hemisphere.
        """
        if not self._cell_ids:
            return Cap.empty()

        centroid = np.zeros(3)
        for cell_id in self._cell_ids:
            centroid += Cell.average_area(cell_id.level()) * cell_id.to_point()

        if not centroid.any():
            centroid = np.array([1.0, 0.0, 0.0])
        else:
            centroid = normalize(centroid)

        cap = Cap.from_axis_height(centroid, 0)
        for cell_id in self._cell_ids:
            cap = cap.add_cap(Cell(cell_id).get_cap_bound())
        return cap

    def get_rect_bound(self) -> LatLngRect:
        bound = LatLngRect.empty()
        for cell_id in self._cell_ids:
            bound = bound.union(Cell(cell_id).get_rect_bound())
        return bound
