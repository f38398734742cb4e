from __future__ import annotations
import sqlite3
from typing import List, Tuple
import matplotlib.pyplot as plt

from grid_solver import SolverResult
from grid_topology import GridTopology, graph_metrics_for_topology


INT64_MAX: int = (1 << 63) - 1  # SQLite INTEGER is a signed 64-bit value


def ensure_schema(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()

    # One row per run (scenario x mode x value_order x cell_order)
    cur.execute("""
    CREATE TABLE IF NOT EXISTS grid_runs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        scenario TEXT NOT NULL,
        mode TEXT NOT NULL,
        value_order TEXT NOT NULL,
        cell_order TEXT NOT NULL,

        status TEXT NOT NULL,
        solutions_found INTEGER NOT NULL,
        decision_count INTEGER NOT NULL,
        solve_time_ms REAL NOT NULL,
        solution TEXT,                        -- comma separated, row-major

        fiedler_value REAL NOT NULL,
        trace_laplacian REAL NOT NULL,

        created_at_utc TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ','now')),

        UNIQUE(scenario, mode, value_order, cell_order)
    );
    """)

    cur.execute("""
    CREATE INDEX IF NOT EXISTS idx_grid_runs_lookup
    ON grid_runs(scenario, mode, value_order, cell_order);
    """)

    conn.commit()


def record_run(
    conn: sqlite3.Connection,
    scenario: str,
    mode: str,
    result: SolverResult,
    topology: GridTopology,
    value_order: str = "special-first",
    cell_order: str = "mrv",
) -> None:
    """
    Stores one run, replacing an earlier run of the same scenario/mode/ordering.
    Counters that do not fit a signed 64-bit integer raise OverflowError.
    """
    for name, counter in (("solutions_found", result.solutions_found), ("decision_count", result.decision_count)):
        if counter > INT64_MAX:
            raise OverflowError(f"{name}={counter} does not fit the ledger's 64-bit column")

    fiedler, trace_L = graph_metrics_for_topology(topology)
    solution = None
    if result.solution is not None:
        solution = ",".join(str(value) for _, value in result.solution)

    conn.execute("""
    INSERT INTO grid_runs (
        scenario, mode, value_order, cell_order,
        status, solutions_found, decision_count, solve_time_ms, solution,
        fiedler_value, trace_laplacian
    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT(scenario, mode, value_order, cell_order)
    DO UPDATE SET
        status=excluded.status,
        solutions_found=excluded.solutions_found,
        decision_count=excluded.decision_count,
        solve_time_ms=excluded.solve_time_ms,
        solution=excluded.solution,
        fiedler_value=excluded.fiedler_value,
        trace_laplacian=excluded.trace_laplacian,
        created_at_utc=strftime('%Y-%m-%dT%H:%M:%fZ','now');
    """, (
        scenario,
        mode,
        value_order,
        cell_order,
        result.status,
        int(result.solutions_found),
        int(result.decision_count),
        float(result.duration_ms),
        solution,
        float(fiedler),
        float(trace_L),
    ))
    conn.commit()


def fetch_runs(conn: sqlite3.Connection) -> List[Tuple]:
    """
    Returns (scenario, mode, status, solutions_found, decision_count, solve_time_ms) rows, oldest first.
    """
    cur = conn.cursor()
    cur.execute("""
    SELECT scenario, mode, status, solutions_found, decision_count, solve_time_ms
    FROM grid_runs ORDER BY id;
    """)
    return cur.fetchall()


def plot_runs(rows: List[Tuple], path: str) -> None:
    fig = plt.figure()
    plt.scatter([r[4] for r in rows], [r[5] for r in rows], s=8)
    for r in rows:
        plt.annotate(r[0], (r[4], r[5]), fontsize=6)
    plt.xlabel("Decisions")
    plt.ylabel("Time (ms)")
    plt.title("Solve time vs decision count")
    plt.savefig(path)
    plt.close(fig)
