#!/usr/bin/env python3
"""
Grid configurations and the command line front end.

A configuration is a plain dict (or a JSON file with the same shape):

  {
    "width": 5, "height": 5,                 # "size" is optional, checked against width*height
    "adjacency": {"orthogonal": "orthogonal", "diagonal": [[1, 1], [1, -1], [-1, 1], [-1, -1]]},
    "differences": [["orthogonal", 1], ["diagonal", 2]],
    "special": {"values": [1, 12, 24, 36], "distinct_lines": true},
    "seeds": {"2,2": 13},                    # "row,col" or a cell index
    "placements": [{"value": 14, "rows": [0]}],
    "validator": {"kind": "even-sum", "cells": [[0, 1], [0, 3]]},
    "mode": "first-solution", "progress_every": 0
  }

Rows and columns are zero-based everywhere.
"""

from __future__ import annotations

import argparse
import json
import sqlite3
import sys
from typing import Any, Dict, List, Mapping, Optional, Tuple
from tqdm import tqdm

from grid_board import Board
from grid_constraints import (
    ConfigError,
    ConstraintSet,
    DifferenceConstraint,
    EvenSumValidator,
    PlacementRule,
    PrimeSumValidator,
    RowMedianValidator,
    SpecialSubset,
    Validator,
    all_of,
)
from grid_solver import CELL_ORDERS, ENUMERATE_ALL, FIRST_SOLUTION, MODES, VALUE_ORDERS, BacktrackingSolver, SolverResult
from grid_topology import NAMED_OFFSETS, GridTopology
from run_ledger import ensure_schema, fetch_runs, plot_runs, record_run


# Checkerboard cells of the 5x5 puzzles, which the puzzle statement calls "prime positions"
PRIME_POSITIONS: List[List[int]] = [
    [0, 1], [0, 3], [1, 0], [1, 2], [2, 1], [2, 3], [3, 0], [3, 2], [4, 1], [4, 3],
]

SCENARIOS: Dict[str, Dict[str, Any]] = {
    "three-demo": {
        "width": 3, "height": 3,
        "adjacency": {"orthogonal": "orthogonal"},
        "differences": [["orthogonal", 1]],
        "seeds": {"1,1": 5},
    },
    "four-rooks": {
        "width": 4, "height": 4,
        "adjacency": {},
        "special": {"values": [1, 4, 9, 16], "distinct_lines": True},
    },
    "five-prime-parity": {
        "width": 5, "height": 5,
        "adjacency": {"orthogonal": "orthogonal", "diagonal": "diagonal"},
        "differences": [["orthogonal", 1], ["diagonal", 2]],
        "seeds": {"2,2": 13},
        "validator": {"kind": "even-sum", "cells": PRIME_POSITIONS},
    },
    "five-row-fourteen": {
        "width": 5, "height": 5,
        "adjacency": {"orthogonal": "orthogonal", "diagonal": "diagonal"},
        "differences": [["orthogonal", 1], ["diagonal", 2]],
        "seeds": {"2,2": 13},
        "placements": [{"value": 14, "rows": [0], "cols": [4]}],
        "validator": {"kind": "even-sum", "cells": PRIME_POSITIONS},
    },
    "six-rooks": {
        "width": 6, "height": 6,
        "adjacency": {"orthogonal": "orthogonal"},
        "differences": [["orthogonal", 1]],
        "special": {"values": [1, 12, 24, 36], "distinct_lines": True},
        "seeds": {"0,0": 1},
    },
    # Runs for hours: counts every 5x5 permutation with no orthogonal consecutive pair
    "five-count": {
        "width": 5, "height": 5,
        "adjacency": {"orthogonal": "orthogonal"},
        "differences": [["orthogonal", 1]],
        "mode": ENUMERATE_ALL,
        "progress_every": 1_000_000,
    },
}


def load_config(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: configuration must be a JSON object")
    return data


def _offsets(spec: Any) -> List[Tuple[int, int]]:
    if isinstance(spec, str):
        if spec not in NAMED_OFFSETS:
            raise ConfigError(f"unknown offset table '{spec}', expected one of {sorted(NAMED_OFFSETS)}")
        return list(NAMED_OFFSETS[spec])
    try:
        return [(int(dr), int(dc)) for dr, dc in spec]
    except (TypeError, ValueError) as e:
        raise ConfigError(f"bad offset list {spec!r}") from e


def _cell(topology: GridTopology, spec: Any) -> int:
    if isinstance(spec, (list, tuple)):
        return topology.index_of(int(spec[0]), int(spec[1]))
    index = int(spec)
    if not 0 <= index < topology.size:
        raise ConfigError(f"cell {index} is outside 0..{topology.size - 1}")
    return index


def _seed_key(key: Any) -> Any:
    """'r,c' -> (r, c), '7' -> 7"""
    if isinstance(key, str):
        parts = [p.strip() for p in key.split(",")]
        try:
            if len(parts) == 2:
                return int(parts[0]), int(parts[1])
            if len(parts) == 1:
                return int(parts[0])
        except ValueError:
            pass
        raise ConfigError(f"bad seed cell {key!r}, expected 'row,col' or an index")
    return key


def _validator(topology: GridTopology, spec: Any) -> Optional[Validator]:
    if spec is None:
        return None
    if isinstance(spec, list):
        validators = [_validator(topology, s) for s in spec]
        return all_of(*[v for v in validators if v is not None])

    kind = spec.get("kind")
    if kind == "even-sum":
        return EvenSumValidator(_cell(topology, c) for c in spec["cells"])
    if kind == "prime-sum":
        return PrimeSumValidator(_cell(topology, c) for c in spec["cells"])
    if kind == "row-median":
        row = int(spec["row"])
        if not 0 <= row < topology.height:
            raise ConfigError(f"row-median validator names row {row} outside the grid")
        return RowMedianValidator(row, spec["median"], topology.width)
    raise ConfigError(f"unknown validator kind {kind!r}")


def build_constraints(config: Mapping[str, Any]) -> ConstraintSet:
    try:
        return _build_constraints(config)
    except ConfigError:
        raise
    except KeyError as e:
        raise ConfigError(f"configuration is missing {e.args[0]!r}") from e
    except (TypeError, ValueError, AttributeError) as e:
        raise ConfigError(f"malformed configuration: {e}") from e


def _build_constraints(config: Mapping[str, Any]) -> ConstraintSet:
    width = int(config["width"])
    height = int(config["height"])

    adjacency = {name: _offsets(spec) for name, spec in (config.get("adjacency") or {}).items()}
    topology = GridTopology(width, height, adjacency, size=config.get("size"))

    differences = [DifferenceConstraint(str(rel), int(delta)) for rel, delta in config.get("differences", [])]

    special = None
    if config.get("special"):
        special = SpecialSubset(
            values=tuple(int(v) for v in config["special"]["values"]),
            distinct_lines=bool(config["special"].get("distinct_lines", True)),
        )

    seeds = {_seed_key(k): int(v) for k, v in (config.get("seeds") or {}).items()}

    placements = []
    for rule in config.get("placements", []):
        placements.append(PlacementRule(
            value=int(rule["value"]),
            rows=tuple(int(r) for r in rule["rows"]) if rule.get("rows") is not None else None,
            cols=tuple(int(c) for c in rule["cols"]) if rule.get("cols") is not None else None,
        ))

    return ConstraintSet(
        topology,
        differences=differences,
        special=special,
        seeds=seeds,
        validator=_validator(topology, config.get("validator")),
        placements=placements,
    )


def run_options(
    config: Mapping[str, Any],
    mode: Optional[str] = None,
    progress_every: Optional[int] = None,
) -> Tuple[str, int]:
    """Mode and progress interval for a run; explicit arguments win over the config's own."""
    if mode is None:
        mode = config.get("mode", FIRST_SOLUTION)
    if mode not in MODES:
        raise ConfigError(f"mode must be one of {MODES}, got {mode!r}")
    if progress_every is None:
        try:
            progress_every = int(config.get("progress_every", 0))
        except (TypeError, ValueError) as e:
            raise ConfigError(f"malformed configuration: progress_every {config.get('progress_every')!r}") from e
    if progress_every < 0:
        raise ConfigError("progress_every must be >= 0")
    return mode, progress_every


def run_config(
    config: Mapping[str, Any],
    mode: Optional[str] = None,
    progress_every: Optional[int] = None,
    on_progress=None,
    value_order: str = "special-first",
    cell_order: str = "mrv",
    max_solutions: Optional[int] = None,
) -> Tuple[SolverResult, Board]:
    """
    Builds and runs one configuration. Explicit arguments win over the config's own mode/progress_every.
    """
    mode, progress_every = run_options(config, mode, progress_every)
    constraints = build_constraints(config)
    board = Board(constraints)
    solver = BacktrackingSolver(
        board,
        mode=mode,
        progress_every=progress_every,
        on_progress=on_progress,
        value_order=value_order,
        cell_order=cell_order,
        max_solutions=max_solutions,
    )
    return solver.solve(), board


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Place 1..M on a grid under adjacency and row/column rules.")
    ap.add_argument("--scenario", choices=sorted(SCENARIOS), default="three-demo", help="Built-in configuration")
    ap.add_argument("--config", help="JSON configuration file (used instead of --scenario)")
    ap.add_argument("--mode", choices=MODES, default=None, help="Overrides the configuration's mode")
    ap.add_argument("--progress-every", type=int, default=None,
                    help="Report progress every N solutions (enumerate-all only)")
    ap.add_argument("--max-solutions", type=int, default=None, help="Stop counting after N solutions")
    ap.add_argument("--value-order", choices=VALUE_ORDERS, default="special-first")
    ap.add_argument("--cell-order", choices=CELL_ORDERS, default="mrv")
    ap.add_argument("--pretty", action="store_true", help="Also print the grid in aligned columns")
    ap.add_argument("--db", help="SQLite ledger to record the run in")
    ap.add_argument("--plot", help="PNG path for a plot of every run in --db")
    args = ap.parse_args(argv)

    try:
        if args.config:
            config = load_config(args.config)
            name = args.config
        else:
            config = SCENARIOS[args.scenario]
            name = args.scenario
        mode, progress_every = run_options(config, args.mode, args.progress_every)

        bar = None
        on_progress = None
        if mode == ENUMERATE_ALL and progress_every:
            bar = tqdm(desc="Solutions", unit="sol", unit_scale=True)

            def on_progress(count: int) -> None:
                bar.update(count - bar.n)

        print(f"[solver] {name}: start ({mode})")
        try:
            result, board = run_config(
                config,
                mode=mode,
                progress_every=progress_every,
                on_progress=on_progress,
                value_order=args.value_order,
                cell_order=args.cell_order,
                max_solutions=args.max_solutions,
            )
        finally:
            if bar is not None:
                bar.close()
    except (ConfigError, OSError, json.JSONDecodeError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    print(f"[solver] {name}: end in {result.duration_ms:.2f} ms; {result.decision_count:,} decisions")
    if mode == FIRST_SOLUTION:
        if result.solution is None:
            print("No solution found.")
        else:
            print("Valid grid found:")
            print(",".join(str(value) for _, value in result.solution))
            if args.pretty:
                board.pretty_print()
    else:
        print(f"FINAL ANSWER: {result.solutions_found:,}")
        if result.status == "limit":
            print(f"Note: stopped at --max-solutions={args.max_solutions}", file=sys.stderr)

    if args.db:
        conn = sqlite3.connect(args.db)
        try:
            ensure_schema(conn)
            record_run(conn, name, mode, result, board.topology,
                       value_order=args.value_order, cell_order=args.cell_order)
            if args.plot:
                plot_runs(fetch_runs(conn), args.plot)
        finally:
            conn.close()
    elif args.plot:
        print("Note: --plot needs --db, nothing plotted.", file=sys.stderr)

    return 0 if result.status != "no-solution" else 1


if __name__ == "__main__":
    raise SystemExit(main())
