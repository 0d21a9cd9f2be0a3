"""
Spatial predicates for cell unions.

Provides functions to test spatial relationships between sets of cells,
analogous to traditional vector spatial predicates.

HIERARCHICAL SUPPORT:
Cells of any level can be mixed. Inputs are brought into canonical form
(sorted, disjoint, siblings merged) and compared via their leaf ranges, so
a coarse cell matches every finer cell it contains without expanding it.
"""

from typing import Iterable, Union

from s2engine import CellId, CellUnion


CellSet = Union[CellUnion, Iterable[CellId], Iterable[int]]


def _to_union(cells: CellSet) -> CellUnion:
    """
    Convert the input to a CellUnion.

    CellUnion instances are passed through unchanged and must already be
    normalized. Iterables of CellId or raw 64-bit ids are normalized here.
    """
    if isinstance(cells, CellUnion):
        return cells
    return CellUnion.from_cell_ids(c if isinstance(c, CellId) else CellId(c) for c in cells)


def _finest_level(union: CellUnion) -> int:
    return max(c.level() for c in union)


def intersects(cells_a: CellSet, cells_b: CellSet) -> bool:
    """
    Test if two cell sets share any area (hierarchical-aware).

    Args:
        cells_a: CellUnion or iterable of CellIds (any level)
        cells_b: CellUnion or iterable of CellIds (any level)

    Returns:
        True if at least one leaf cell is covered by both sets

    Example:
        >>> parent = CellId.from_lat_lng(47.5, 7.5).parent(5)
        >>> child = CellId.from_lat_lng(47.5, 7.5).parent(10)
        >>> intersects([parent], [child])
        True  # Hierarchical match!
    """
    union_a = _to_union(cells_a)
    union_b = _to_union(cells_b)
    return union_a.intersects(union_b)


def within(cells_a: CellSet, cells_b: CellSet) -> bool:
    """
    Test if all cells in A are covered by B (hierarchical-aware).

    Example:
        >>> children = CellId.from_lat_lng(47.5, 7.5).parent(9).children()
        >>> within(children, [children[0].parent()])
        True  # All children within parent!
    """
    union_a = _to_union(cells_a)
    union_b = _to_union(cells_b)
    return union_b.contains(union_a)


def contains(cells_a: CellSet, cells_b: CellSet) -> bool:
    """
    Test if A covers all cells in B (hierarchical-aware).

    This is the inverse of within: A contains B if B is within A.
    """
    return within(cells_b, cells_a)


def touches(cells_a: CellSet, cells_b: CellSet) -> bool:
    """
    Test if two cell sets touch (adjacent but not overlapping).

    A is expanded by one ring of neighbours at the finest level present in
    either set. At that level every neighbour cell lies inside a single cell
    of B or not at all, so a hit means B really borders A.

    Note: the ring size grows with 2 ** (finest level - coarsest level of A).

    Returns:
        True if the sets touch but don't intersect, False otherwise
    """
    union_a = _to_union(cells_a)
    union_b = _to_union(cells_b)

    if union_a.is_empty() or union_b.is_empty():
        return False

    # First check: they must not share area
    if union_a.intersects(union_b):
        return False

    ring = get_neighbors(union_a, max(_finest_level(union_a), _finest_level(union_b)))
    return ring.intersects(union_b)


def get_neighbors(cells: CellSet, level: int = None) -> CellUnion:
    """
    Get the ring of cells bordering a cell set.

    Args:
        cells: CellUnion or iterable of CellIds
        level: Level of the neighbour cells, default the finest level in cells

    Returns:
        CellUnion of cells at `level` touching the set (excluding the set itself)

    Example:
        >>> cell = CellId.from_lat_lng(47.5, 7.5).parent(10)
        >>> get_neighbors([cell]).size()  # 8 neighbours, possibly merged
    """
    union = _to_union(cells)
    if union.is_empty():
        return CellUnion()
    if level is None:
        level = _finest_level(union)

    neighbors = set()
    for cell_id in union:
        if cell_id.level() > level:
            cell_id = cell_id.parent(level)
        neighbors.update(cell_id.get_all_neighbors(level))

    # Remove cells of the set itself (we only want the bordering cells)
    return CellUnion.from_cell_ids(n for n in neighbors if not union.intersects(n))
