"""
Tests for s2engine/cell_union.py - canonical cell unions and set algebra.

Coverage targets:
- normalize(): sibling collapse, cascades, containment removal, idempotence
- contains() / intersects() for cells, unions and points
- get_union() / get_intersection() algebra on random unions
- expand() by level and by radius
- denormalize(), leaf counts, areas, cap and rect bounds
"""

import math
import random

import pytest

from s2engine import MAX_LEVEL, Cap, Cell, CellId, CellUnion


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

BASEL = CellId.from_lat_lng(47.5, 7.5)
SYDNEY = CellId.from_lat_lng(-33.9, 151.2)


def _random_descendant(rng: random.Random, cell_id: CellId, max_depth: int = 6) -> CellId:
    for _ in range(rng.randint(2, max_depth)):
        cell_id = cell_id.children()[rng.randrange(4)]
    return cell_id


def _random_union(seed: int, base: CellId = BASEL.parent(8), count: int = 40) -> CellUnion:
    rng = random.Random(seed)
    return CellUnion.from_cell_ids(_random_descendant(rng, base) for _ in range(count))


def _is_canonical(union: CellUnion) -> bool:
    return union.is_normalized() and not union.clone().normalize()


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


class TestNormalize:

    def test_four_children_collapse(self):
        parent = BASEL.parent(12)
        union = CellUnion.from_cell_ids(parent.children())
        assert union.cell_ids() == [parent]

    def test_collapse_cascades(self):
        parent = BASEL.parent(10)
        union = CellUnion.from_cell_ids(parent.children(13))
        assert union.cell_ids() == [parent]

    def test_order_does_not_matter(self):
        parent = BASEL.parent(10)
        cells = parent.children(12)
        random.Random(7).shuffle(cells)
        assert CellUnion.from_cell_ids(cells).cell_ids() == [parent]

    def test_contained_cells_are_discarded(self):
        parent = BASEL.parent(9)
        union = CellUnion.from_cell_ids([BASEL, BASEL.parent(20), parent, BASEL.parent(15)])
        assert union.cell_ids() == [parent]

    def test_three_of_four_children_stay(self):
        children = BASEL.parent(12).children()
        union = CellUnion.from_cell_ids(children[:3])
        assert union.size() == 3
        assert union.cell_ids() == children[:3]

    def test_faces_never_collapse(self):
        faces = [CellId.from_face_pos_level(f, 0, 0) for f in range(6)]
        assert CellUnion.from_cell_ids(faces).size() == 6
        assert CellUnion.from_cell_ids(faces[:2]).size() == 2

    def test_normalize_reports_shrink(self):
        union = CellUnion()
        union.init_raw_cell_ids(BASEL.parent(12).children())
        assert union.normalize()
        assert not union.normalize()

    def test_duplicates_removed(self):
        cell = BASEL.parent(14)
        assert CellUnion.from_cell_ids([cell, cell, cell]).cell_ids() == [cell]

    @pytest.mark.parametrize("seed", [1, 2, 3])
    def test_random_union_is_canonical(self, seed):
        union = _random_union(seed)
        assert _is_canonical(union)
        ids = union.cell_ids()
        assert ids == sorted(ids)
        assert all(a.range_max() < b.range_min() for a, b in zip(ids, ids[1:]))

    def test_is_normalized_detects_raw_input(self):
        union = CellUnion()
        union.init_raw_cell_ids(BASEL.parent(12).children())
        assert not union.is_normalized()
        # read-only
        assert union.size() == 4

    def test_normalize_preserves_leaf_count(self):
        union = CellUnion()
        cells = BASEL.parent(10).children(12) + [SYDNEY.parent(20)]
        union.init_raw_cell_ids(cells)
        before = union.leaf_cells_covered()
        union.normalize()
        assert union.leaf_cells_covered() == before


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class TestQueries:

    def test_contains_cell(self):
        cell = BASEL.parent(10)
        union = CellUnion.from_cell_ids([cell, SYDNEY.parent(5)])
        assert union.contains(cell)
        assert union.contains(cell.range_min())
        assert union.contains(cell.range_max())
        assert union.contains(BASEL)
        assert not union.contains(cell.parent())
        assert not union.contains(CellId.from_lat_lng(0.0, 0.0))

    def test_contains_point_and_cell_object(self):
        union = CellUnion.from_cell_ids([BASEL.parent(10)])
        assert union.contains(BASEL.to_point())
        assert union.contains(Cell(BASEL.parent(12)))
        assert not union.contains(SYDNEY.to_point())

    def test_contains_union(self):
        union = CellUnion.from_cell_ids([BASEL.parent(8)])
        inner = _random_union(4)
        assert union.contains(inner)
        assert not inner.contains(union)

    def test_intersects(self):
        union = CellUnion.from_cell_ids([BASEL.parent(10)])
        assert union.intersects(BASEL.parent(5))
        assert union.intersects(BASEL)
        assert not union.intersects(SYDNEY)
        assert union.intersects(CellUnion.from_cell_ids([BASEL.parent(3), SYDNEY]))
        assert not union.intersects(CellUnion.from_cell_ids([SYDNEY.parent(3)]))
        assert union.may_intersect(Cell(BASEL.parent(20)))

    def test_intersects_rejects_points(self):
        union = CellUnion.from_cell_ids([BASEL.parent(10)])
        with pytest.raises(TypeError):
            union.intersects(BASEL.to_point())

    def test_empty_union(self):
        union = CellUnion()
        assert union.is_empty()
        assert not union.contains(BASEL)
        assert not union.intersects(BASEL)
        assert union.contains(CellUnion())


# ---------------------------------------------------------------------------
# Set operations
# ---------------------------------------------------------------------------


class TestSetOperations:

    @pytest.mark.parametrize("seed", [10, 11, 12, 13])
    def test_inclusion_exclusion(self, seed):
        x = _random_union(seed)
        y = _random_union(seed + 100)
        union = x.union(y)
        intersection = x.intersection(y)
        assert (union.leaf_cells_covered() + intersection.leaf_cells_covered()
                == x.leaf_cells_covered() + y.leaf_cells_covered())

    @pytest.mark.parametrize("seed", [20, 21])
    def test_results_are_canonical(self, seed):
        x = _random_union(seed)
        y = _random_union(seed + 100)
        assert _is_canonical(x.union(y))
        assert _is_canonical(x.intersection(y))

    @pytest.mark.parametrize("seed", [30, 31])
    def test_commutative(self, seed):
        x = _random_union(seed)
        y = _random_union(seed + 100)
        assert x.union(y) == y.union(x)
        assert x.intersection(y) == y.intersection(x)

    @pytest.mark.parametrize("seed", [40, 41])
    def test_results_bound_operands(self, seed):
        x = _random_union(seed)
        y = _random_union(seed + 100)
        union = x.union(y)
        intersection = x.intersection(y)
        assert union.contains(x) and union.contains(y)
        assert x.contains(intersection) and y.contains(intersection)

    def test_identities(self):
        x = _random_union(50)
        assert x.intersection(x) == x
        assert x.union(x) == x
        assert x.union(CellUnion()) == x
        assert x.intersection(CellUnion()).is_empty()

    def test_disjoint_intersection_is_empty(self):
        x = CellUnion.from_cell_ids([BASEL.parent(10)])
        y = CellUnion.from_cell_ids([SYDNEY.parent(10)])
        assert x.intersection(y).is_empty()
        assert x.union(y).size() == 2

    def test_intersection_with_cell(self):
        x = _random_union(60)
        cell = BASEL.parent(10)
        result = CellUnion()
        result.get_intersection(x, cell)
        expected = x.intersection(CellUnion.from_cell_ids([cell]))
        assert result == expected

    def test_intersection_with_covering_cell(self):
        x = CellUnion.from_cell_ids([BASEL.parent(5)])
        assert x.intersection(BASEL.parent(12)).cell_ids() == [BASEL.parent(12)]

    def test_get_union_in_place(self):
        a = CellUnion.from_cell_ids([BASEL.parent(10)])
        b = CellUnion.from_cell_ids([SYDNEY.parent(10)])
        result = CellUnion.from_cell_ids([CellId.from_lat_lng(0.0, 0.0)])
        result.get_union(a, b)
        assert result.size() == 2
        assert result.contains(BASEL) and result.contains(SYDNEY)

    def test_receiver_cannot_be_operand(self):
        a = CellUnion.from_cell_ids([BASEL.parent(10)])
        b = CellUnion.from_cell_ids([SYDNEY.parent(10)])
        with pytest.raises(ValueError):
            a.get_union(a, b)
        with pytest.raises(ValueError):
            a.get_intersection(b, a)


# ---------------------------------------------------------------------------
# Expansion
# ---------------------------------------------------------------------------


class TestExpand:

    def test_expand_single_cell(self):
        cell = BASEL.parent(10)
        union = CellUnion.from_cell_ids([cell])
        union.expand(10)
        assert union.leaf_cells_covered() == 9 * 4 ** (MAX_LEVEL - 10)
        assert union.contains(cell)
        assert all(union.contains(n) for n in cell.get_all_neighbors(10))
        assert _is_canonical(union)

    def test_expand_widens_fine_cells(self):
        union = CellUnion.from_cell_ids([BASEL])
        union.expand(12)
        cell = BASEL.parent(12)
        assert union.contains(cell)
        assert all(union.contains(n) for n in cell.get_all_neighbors(12))

    def test_expand_mixed_levels(self):
        coarse = SYDNEY.parent(8)
        union = CellUnion.from_cell_ids([coarse, BASEL.parent(20)])
        union.expand(10)
        assert union.contains(coarse)
        assert all(union.contains(n) for n in coarse.get_all_neighbors(10))
        fine = BASEL.parent(10)
        assert all(union.contains(n) for n in fine.get_all_neighbors(10))

    def test_expand_empty_is_noop(self):
        union = CellUnion()
        union.expand(5)
        assert union.is_empty()

    @pytest.mark.parametrize("level", [-1, MAX_LEVEL + 1])
    def test_expand_invalid_level(self, level):
        with pytest.raises(ValueError):
            CellUnion.from_cell_ids([BASEL]).expand(level)

    def test_expand_by_huge_radius_covers_sphere(self):
        union = CellUnion.from_cell_ids([BASEL])
        union.expand_by_radius(2.0, 4)
        assert union.size() == 6
        assert all(c.is_face() for c in union)

    def test_expand_by_radius_covers_disc(self):
        cell = BASEL.parent(10)
        union = CellUnion.from_cell_ids([cell])
        radius = math.radians(0.5)
        union.expand_by_radius(radius, 4)
        assert union.contains(cell)
        center_lat, center_lng = cell.to_lat_lng()
        for dlat, dlng in [(0.3, 0.0), (-0.3, 0.0), (0.0, 0.4), (0.0, -0.4)]:
            assert union.contains(CellId.from_lat_lng(center_lat + dlat, center_lng + dlng))

    def test_expand_by_radius_level_limited(self):
        cell = BASEL.parent(10)
        union = CellUnion.from_cell_ids([cell])
        union.expand_by_radius(1e-9, 2)
        assert max(c.level() for c in union) <= 12
        assert union.contains(cell)

    def test_expand_by_radius_rejects_negative_diff(self):
        with pytest.raises(ValueError):
            CellUnion.from_cell_ids([BASEL]).expand_by_radius(0.01, -1)


# ---------------------------------------------------------------------------
# Denormalize
# ---------------------------------------------------------------------------


class TestDenormalize:

    def test_min_level(self):
        union = CellUnion.from_cell_ids([BASEL.parent(10)])
        cells = union.denormalize(12, 1)
        assert len(cells) == 16
        assert all(c.level() == 12 for c in cells)
        assert union.size() == 1

    def test_level_mod(self):
        union = CellUnion.from_cell_ids([BASEL.parent(11)])
        cells = union.denormalize(10, 3)
        assert len(cells) == 16
        assert all(c.level() == 13 for c in cells)

    def test_already_valid_cells_unchanged(self):
        cell = BASEL.parent(16)
        union = CellUnion.from_cell_ids([cell])
        assert union.denormalize(10, 2) == [cell]

    def test_round_trip(self):
        union = _random_union(70)
        assert CellUnion.from_cell_ids(union.denormalize(9, 2)) == union

    @pytest.mark.parametrize("min_level,level_mod", [(-1, 1), (31, 1), (5, 0), (5, 4)])
    def test_invalid_arguments(self, min_level, level_mod):
        with pytest.raises(ValueError):
            CellUnion.from_cell_ids([BASEL]).denormalize(min_level, level_mod)


# ---------------------------------------------------------------------------
# Measures + bounds
# ---------------------------------------------------------------------------


def _all_faces() -> CellUnion:
    return CellUnion.from_cell_ids(CellId.from_face_pos_level(f, 0, 0) for f in range(6))


class TestMeasures:

    def test_leaf_cells_covered(self):
        assert CellUnion().leaf_cells_covered() == 0
        assert CellUnion.from_cell_ids([BASEL]).leaf_cells_covered() == 1
        assert CellUnion.from_cell_ids([BASEL.parent(28)]).leaf_cells_covered() == 16
        assert _all_faces().leaf_cells_covered() == 6 * 4 ** MAX_LEVEL

    def test_sphere_areas(self):
        faces = _all_faces()
        assert faces.average_based_area() == pytest.approx(4 * math.pi)
        assert faces.approx_area() == pytest.approx(4 * math.pi)
        assert faces.exact_area() == pytest.approx(4 * math.pi)

    def test_areas_grow_with_union(self):
        x = CellUnion.from_cell_ids([BASEL.parent(10)])
        y = CellUnion.from_cell_ids([SYDNEY.parent(12)])
        union = x.union(y)
        assert union.exact_area() == pytest.approx(x.exact_area() + y.exact_area())
        assert union.average_based_area() > x.average_based_area()
        assert union.approx_area() > x.approx_area()

    def test_areas_non_negative(self):
        union = _random_union(80)
        assert union.exact_area() > 0
        assert union.approx_area() > 0
        assert CellUnion().exact_area() == 0


class TestBounds:

    def test_empty_bounds(self):
        assert CellUnion().get_cap_bound().is_empty()
        assert CellUnion().get_rect_bound().is_empty()

    def test_cap_bound_contains_cells(self):
        union = _random_union(90).union(CellUnion.from_cell_ids([BASEL.parent(6).next()]))
        cap = union.get_cap_bound()
        for cell_id in union:
            for vertex in Cell(cell_id).get_vertices():
                assert cap.contains_point(vertex)

    def test_cap_bound_opposite_faces(self):
        union = CellUnion.from_cell_ids([
            CellId.from_face_pos_level(0, 0, 0),
            CellId.from_face_pos_level(3, 0, 0),
        ])
        cap = union.get_cap_bound()
        assert isinstance(cap, Cap)
        for cell_id in union:
            for vertex in Cell(cell_id).get_vertices():
                assert cap.contains_point(vertex)

    def test_rect_bound_contains_centers(self):
        union = CellUnion.from_cell_ids([BASEL.parent(10), SYDNEY.parent(12)])
        rect = union.get_rect_bound()
        for cell_id in union:
            assert rect.contains_point(cell_id.to_point())


# ---------------------------------------------------------------------------
# Construction + identity
# ---------------------------------------------------------------------------


class TestConstruction:

    def test_init_swap_takes_list(self):
        cells = BASEL.parent(12).children()
        union = CellUnion()
        union.init_swap(cells)
        assert cells == []
        assert union.cell_ids() == [BASEL.parent(12)]

    def test_raw_init_keeps_input(self):
        cells = BASEL.parent(12).children()
        union = CellUnion()
        union.init_raw_cell_ids(cells)
        assert union.size() == 4
        assert len(cells) == 4

    def test_from_ids(self):
        cell = BASEL.parent(10)
        union = CellUnion.from_ids(c.id() for c in cell.children())
        assert union.cell_ids() == [cell]

        raw = CellUnion()
        raw.init_raw_ids([c.id() for c in cell.children()])
        assert raw.size() == 4

    def test_clone_is_independent(self):
        union = _random_union(100)
        copy = union.clone()
        assert copy == union
        assert hash(copy) == hash(union)
        copy.expand(10)
        assert copy != union

    def test_accessors(self):
        union = CellUnion.from_cell_ids([SYDNEY.parent(10), BASEL.parent(10)])
        assert len(union) == 2
        assert union.cell_id(0) == union[0] == min(SYDNEY.parent(10), BASEL.parent(10))
        assert list(union) == union.cell_ids()
        union.pack()
        assert union.size() == 2
