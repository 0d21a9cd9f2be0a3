"""
Tests for scripts/cell_union_ops.py - config validation, CSV input/output
and the batch operations.
"""

import pandas as pd
import pytest

from s2engine import CellId, CellUnion
from scripts.cell_union_ops import (
    apply_operation,
    load_config,
    read_csv_union,
    validate_config,
    write_output,
)


BASEL = CellId.from_lat_lng(47.5, 7.5)
ZURICH = CellId.from_lat_lng(47.37, 8.54)


def _config(tmp_path, **overrides) -> dict:
    input_file = tmp_path / "input.csv"
    input_file.write_text("cell_token\n" + BASEL.parent(10).to_token() + "\n")
    config = {
        "input_files": [str(input_file)],
        "output_file": str(tmp_path / "out.csv"),
        "level": 12,
        "containment_mode": "overlap",
        "operation": "union",
        "expand_level": None,
        "expand_radius_km": None,
        "max_level_diff": 4,
    }
    config.update(overrides)
    return config


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


class TestConfig:

    def test_load_missing_config(self, tmp_path):
        assert load_config(tmp_path / "missing.yaml") is None

    def test_load_config(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("level: 9\noperation: intersection\n")
        assert load_config(path) == {"level": 9, "operation": "intersection"}

    def test_valid_config_passes(self, tmp_path):
        validate_config(_config(tmp_path))

    @pytest.mark.parametrize("overrides", [
        {"level": 31},
        {"operation": "difference"},
        {"containment_mode": "inside"},
        {"operation": "expand"},
        {"operation": "expand", "expand_radius_km": -1.0},
        {"input_files": ["does/not/exist.csv"]},
    ])
    def test_invalid_config_exits(self, tmp_path, capsys, overrides):
        with pytest.raises(SystemExit):
            validate_config(_config(tmp_path, **overrides))
        assert "Fehler" in capsys.readouterr().out


# ---------------------------------------------------------------------------
# CSV input / output
# ---------------------------------------------------------------------------


class TestCsv:

    def test_read_tokens(self, tmp_path):
        path = tmp_path / "tokens.csv"
        tokens = [c.to_token() for c in BASEL.parent(12).children()]
        pd.DataFrame({"cell_token": tokens}).to_csv(path, index=False)
        assert read_csv_union(path, level=5).cell_ids() == [BASEL.parent(12)]

    def test_read_lat_lng(self, tmp_path):
        path = tmp_path / "points.csv"
        pd.DataFrame({"lat": [47.5, 47.37], "lng": [7.5, 8.54]}).to_csv(path, index=False)
        union = read_csv_union(path, level=11)
        assert union.contains(BASEL.parent(11))
        assert union.contains(ZURICH.parent(11))

    def test_read_unknown_columns(self, tmp_path):
        path = tmp_path / "bad.csv"
        pd.DataFrame({"x": [1]}).to_csv(path, index=False)
        with pytest.raises(ValueError):
            read_csv_union(path, level=11)

    def test_write_output_round_trip(self, tmp_path):
        union = CellUnion.from_cell_ids([BASEL.parent(10), ZURICH.parent(14)])
        path = write_output(union, str(tmp_path / "sub" / "result.txt"))
        assert path.suffix == ".csv"
        df = pd.read_csv(path)
        assert list(df.columns) == ["cell_token", "level"]
        assert sorted(df["level"]) == [10, 14]
        assert read_csv_union(path, level=0) == union


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


class TestOperations:

    def test_union_and_intersection(self, tmp_path):
        a = CellUnion.from_cell_ids([BASEL.parent(8)])
        b = CellUnion.from_cell_ids([BASEL.parent(12), ZURICH.parent(12)])

        union = apply_operation([a, b], _config(tmp_path, operation="union"))
        assert union.contains(a) and union.contains(b)

        intersection = apply_operation([a, b], _config(tmp_path, operation="intersection"))
        assert intersection.cell_ids() == [BASEL.parent(12)]

    def test_expand_by_level(self, tmp_path):
        cell = BASEL.parent(10)
        source = CellUnion.from_cell_ids([cell])
        result = apply_operation([source], _config(tmp_path, operation="expand", expand_level=10))
        assert result.leaf_cells_covered() == 9 * 4 ** 20
        # input stays untouched
        assert source.cell_ids() == [cell]

    def test_expand_by_radius(self, tmp_path):
        source = CellUnion.from_cell_ids([BASEL.parent(12)])
        config = _config(tmp_path, operation="expand", expand_radius_km=5.0, max_level_diff=None)
        result = apply_operation([source], config)
        assert result.contains(source)
        assert result.leaf_cells_covered() > source.leaf_cells_covered()
