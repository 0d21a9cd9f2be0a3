"""
Cell Union Batch-Operationen
----------------------------
Liest mehrere Dateien, baut pro Datei eine normalisierte CellUnion und
kombiniert sie mit der konfigurierten Operation.

Input-Formate:
  - CSV mit Spalte 'cell_token'            : Tokens werden direkt gelesen
  - CSV mit Spalten 'lat', 'lng'           : Punkte auf 'level'
  - Vektordaten (GPKG, GeoJSON, SHP, ...)  : Geometrien auf 'level' (containment_mode)

Operationen:
  - union         : Vereinigung aller Inputs
  - intersection  : Schnittmenge aller Inputs
  - expand        : Vereinigung, danach Expansion um expand_level
                    oder expand_radius_km (mit max_level_diff)

Output: CSV mit den Spalten cell_token, level

Verwendung:
  python scripts/cell_union_ops.py
"""

import sys
import time
from pathlib import Path

import geopandas as gpd
import pandas as pd
import yaml

# Projektverzeichnis zum Importpfad hinzufuegen
sys.path.insert(0, str(Path(__file__).parent.parent))
from converter.converter import (
    ContainmentMode,
    EARTH_MEAN_RADIUS_M,
    area_m2,
    convert_geodataframe_to_cells,
)
from s2engine import MAX_LEVEL, CellId, CellUnion


# ---------------------------------------------------------------------------
# Konstanten
# ---------------------------------------------------------------------------

CONFIG_PATH = Path(__file__).parent.parent / "config.yaml"

VALID_OPERATIONS = ("union", "intersection", "expand")

VALID_CONTAINMENT_MODES: dict[str, ContainmentMode] = {
    m.value: m for m in ContainmentMode
}


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


def load_config(path: Path) -> dict | None:
    """Liest config.yaml. Gibt None zurueck wenn die Datei nicht existiert."""
    if not path.exists():
        return None
    with open(path, "r") as f:
        return yaml.safe_load(f)


# ---------------------------------------------------------------------------
# Interaktive Eingabe
# ---------------------------------------------------------------------------


def _prompt_line(label: str) -> str:
    """Liest eine nicht-leere Zeile vom User."""
    while True:
        val = input(f"  {label}: ").strip()
        if val:
            return val
        print("    (nicht leer)")


def prompt_input_files() -> list[str]:
    """Fragt nach Input-Dateien, eine pro Zeile. Leere Zeile beendet die Eingabe."""
    print("\n  Input-Dateien (eine pro Zeile, leere Zeile zum Abschluss):")
    files: list[str] = []
    while True:
        val = input(f"    Datei {len(files) + 1}: ").strip()
        if not val:
            if not files:
                print("      Mindestens eine Datei erforderlich.")
                continue
            break
        files.append(val)
    return files


def prompt_int(
    label: str, min_val: int | None = None, max_val: int | None = None
) -> int:
    """Fragt nach einem Integer mit optionalen Grenzen."""
    while True:
        raw = input(f"  {label}: ").strip()
        try:
            val = int(raw)
        except ValueError:
            print("    Ungueltige Eingabe -- bitte eine Ganzzahl.")
            continue
        if min_val is not None and val < min_val:
            print(f"    Minimum: {min_val}")
            continue
        if max_val is not None and val > max_val:
            print(f"    Maximum: {max_val}")
            continue
        return val


def prompt_choice(label: str, options: list[str]) -> str:
    """Fragt nach einem Wert aus einer festen Liste."""
    print(f"  {label} -- gueltige Optionen: {options}")
    while True:
        val = input("    Auswahl: ").strip().lower()
        if val in options:
            return val
        print(f"    Gueltige Optionen: {options}")


def collect_params_interactive() -> dict:
    """Sammelt alle Parameter interaktiv vom User."""
    print("\n" + "-" * 60)
    print("  Parameter interaktiv eingeben")
    print("-" * 60)

    input_files = prompt_input_files()
    output_file = _prompt_line("Output-Datei (.csv)")
    level = prompt_int(f"Level fuer Punkte/Geometrien (0-{MAX_LEVEL})", min_val=0, max_val=MAX_LEVEL)
    containment = prompt_choice("Containment-Modus", list(VALID_CONTAINMENT_MODES.keys()))
    operation = prompt_choice("Operation", list(VALID_OPERATIONS))

    config = {
        "input_files": input_files,
        "output_file": output_file,
        "level": level,
        "containment_mode": containment,
        "operation": operation,
        "expand_level": None,
        "expand_radius_km": None,
        "max_level_diff": 4,
    }
    if operation == "expand":
        config["expand_level"] = prompt_int(
            f"Expand Level (0-{MAX_LEVEL})", min_val=0, max_val=MAX_LEVEL
        )
    return config


# ---------------------------------------------------------------------------
# Anzeige + Validierung
# ---------------------------------------------------------------------------


def display_config(config: dict) -> None:
    """Gibt die Konfiguration formatiert aus."""
    print("\n" + "=" * 60)
    print("  Konfiguration (aus config.yaml)")
    print("=" * 60)
    print("  Input-Dateien:")
    for f in config["input_files"]:
        print(f"      - {f}")
    print(f"  Output-Datei:       {config['output_file']}")
    print(f"  Level:              {config['level']}")
    print(f"  Containment-Modus:  {config['containment_mode']}")
    print(f"  Operation:          {config['operation']}")
    if config["operation"] == "expand":
        print(f"  Expand Level:       {config.get('expand_level')}")
        print(f"  Expand Radius (km): {config.get('expand_radius_km')}")
        print(f"  Max Level Diff:     {config.get('max_level_diff')}")
    print("=" * 60)


def validate_config(config: dict) -> None:
    """Prueft die Konfiguration auf Fehler."""
    errors: list[str] = []

    if not config.get("input_files"):
        errors.append("Keine Input-Dateien angegeben.")

    if not config.get("output_file"):
        errors.append("Kein Output-Pfad angegeben.")

    level = config.get("level")
    if not isinstance(level, int) or not 0 <= level <= MAX_LEVEL:
        errors.append(f"Ungueltiges level: {level!r} (0-{MAX_LEVEL})")

    mode = config.get("containment_mode")
    if mode not in VALID_CONTAINMENT_MODES:
        errors.append(
            f"Ungueltiger containment_mode: '{mode}'. "
            f"Gueltig: {list(VALID_CONTAINMENT_MODES.keys())}"
        )

    operation = config.get("operation")
    if operation not in VALID_OPERATIONS:
        errors.append(f"Ungueltige operation: '{operation}'. Gueltig: {list(VALID_OPERATIONS)}")

    if operation == "expand":
        expand_level = config.get("expand_level")
        radius_km = config.get("expand_radius_km")
        if expand_level is None and radius_km is None:
            errors.append("expand braucht expand_level oder expand_radius_km.")
        if expand_level is not None and not 0 <= expand_level <= MAX_LEVEL:
            errors.append(f"Ungueltiges expand_level: {expand_level} (0-{MAX_LEVEL})")
        if radius_km is not None and radius_km <= 0:
            errors.append(f"expand_radius_km muss > 0 sein: {radius_km}")
        if (config.get("max_level_diff") or 0) < 0:
            errors.append(f"max_level_diff muss >= 0 sein: {config['max_level_diff']}")

    for f in config.get("input_files", []):
        if not Path(f).exists():
            errors.append(f"Input-Datei nicht gefunden: {f}")

    if errors:
        print("\nFehler in der Konfiguration:")
        for e in errors:
            print(f"  - {e}")
        sys.exit(1)


# ---------------------------------------------------------------------------
# Laden
# ---------------------------------------------------------------------------


def read_csv_union(path: Path, level: int) -> CellUnion:
    """Baut eine CellUnion aus einer CSV-Datei (Tokens oder lat/lng)."""
    # Alles als Text lesen, sonst werden Tokens wie "4e5" zu Zahlen
    df = pd.read_csv(path, dtype=str)

    if "cell_token" in df.columns:
        tokens = df["cell_token"].dropna().astype(str)
        return CellUnion.from_cell_ids(CellId.from_token(t) for t in tokens)

    if {"lat", "lng"}.issubset(df.columns):
        rows = df[["lat", "lng"]].dropna().astype(float)
        return CellUnion.from_cell_ids(
            CellId.from_lat_lng(lat, lng).parent(level)
            for lat, lng in zip(rows["lat"], rows["lng"])
        )

    raise ValueError(
        f"{path}: CSV braucht Spalte 'cell_token' oder Spalten 'lat' und 'lng' "
        f"(gefunden: {list(df.columns)})"
    )


def read_vector_union(path: Path, level: int, mode: ContainmentMode) -> CellUnion:
    """Konvertiert alle Geometrien einer Vektordatei zu einer CellUnion."""
    gdf = gpd.read_file(path)
    print(f"     -> {len(gdf)} Zeilen | CRS: {gdf.crs}")
    result = CellUnion()
    for part in convert_geodataframe_to_cells(gdf, level=level, containment_mode=mode):
        merged = CellUnion()
        merged.get_union(result, part)
        result = merged
    return result


def load_unions(config: dict) -> list[CellUnion]:
    """Laedt alle Input-Dateien als normalisierte CellUnions."""
    input_paths = [Path(f) for f in config["input_files"]]
    level = config["level"]
    mode = VALID_CONTAINMENT_MODES[config["containment_mode"]]

    print(f"\n1. Laden der {len(input_paths)} Datensaetze...")

    unions: list[CellUnion] = []
    for path in input_paths:
        print(f"   Lese: {path}")
        if path.suffix.lower() == ".csv":
            union = read_csv_union(path, level)
        else:
            union = read_vector_union(path, level, mode)
        print(f"     -> {union.size():,} Cells (normalisiert)")
        unions.append(union)

    return unions


# ---------------------------------------------------------------------------
# Operationen
# ---------------------------------------------------------------------------


def apply_operation(unions: list[CellUnion], config: dict) -> CellUnion:
    """Kombiniert die Inputs gemaess config['operation']."""
    operation = config["operation"]
    print(f"\n2. Operation: {operation}")

    start = time.time()
    result = unions[0]
    for other in unions[1:]:
        if operation == "intersection":
            result = result.intersection(other)
        else:
            result = result.union(other)

    if operation == "expand":
        result = result.clone()
        if config.get("expand_radius_km") is not None:
            radius = config["expand_radius_km"] * 1000.0 / EARTH_MEAN_RADIUS_M
            max_level_diff = config.get("max_level_diff")
            if max_level_diff is None:
                max_level_diff = 4
            result.expand_by_radius(radius, max_level_diff)
        else:
            result.expand(config["expand_level"])

    print(f"   Dauer: {time.time() - start:.2f} s")
    return result


def print_statistics(union: CellUnion) -> None:
    """Gibt Statistiken ueber das Resultat aus."""
    print(f"\n3. Statistiken:")
    print(f"   Cells:                {union.size():,}")
    print(f"   Leaf Cells:           {union.leaf_cells_covered():,}")
    if union.is_empty():
        print("   (leere Union)")
        return

    levels = pd.Series([c.level() for c in union])
    print(f"   Level Min / Max:      {levels.min()} / {levels.max()}")
    print(f"   Flaeche (exakt):      {area_m2(union) / 1_000_000:,.3f} km²")
    print(f"   Flaeche (approx, sr): {union.approx_area():.6e}")
    print(f"   Flaeche (avg, sr):    {union.average_based_area():.6e}")
    print(f"   Rect Bound:           {union.get_rect_bound()}")
    print(f"   Cap Bound:            {union.get_cap_bound()}")

    print(f"\n   Level-Verteilung:")
    for level, count in levels.value_counts().sort_index().items():
        print(f"     Level {level:2d}: {count:7d} Cells")


def write_output(union: CellUnion, output_file: str) -> Path:
    """Schreibt die Cells als CSV (cell_token, level)."""
    output_path = Path(output_file)
    if output_path.suffix != ".csv":
        output_path = output_path.with_suffix(".csv")
    output_path.parent.mkdir(parents=True, exist_ok=True)

    df = pd.DataFrame({
        "cell_token": [c.to_token() for c in union],
        "level": [c.level() for c in union],
    })
    df.to_csv(output_path, index=False)
    return output_path


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


def run(config: dict) -> CellUnion:
    """Hauptfunktion: Laden -> Kombinieren -> Schreiben."""
    unions = load_unions(config)
    result = apply_operation(unions, config)
    print_statistics(result)

    output_path = write_output(result, config["output_file"])
    print(f"\n4. Output geschrieben: {output_path}")
    return result


def main():
    print("\n" + "=" * 60)
    print("  Cell Union Batch-Operationen")
    print("=" * 60)

    config = load_config(CONFIG_PATH)

    if config:
        display_config(config)
        choice = input("\nConfig-Defaults verwenden? [y/n]: ").strip().lower()
        if choice != "y":
            config = collect_params_interactive()
    else:
        print(f"\n  Keine config.yaml gefunden ({CONFIG_PATH})")
        print("  Parameter werden interaktiv eingegeben.")
        config = collect_params_interactive()

    validate_config(config)

    start_total = time.time()
    run(config)

    print("\n" + "=" * 60)
    print("  Fertig!")
    print("=" * 60)
    print(f"\n  Gesamtzeit: {time.time() - start_total:.1f}s")


if __name__ == "__main__":
    main()
