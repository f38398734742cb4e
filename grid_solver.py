from __future__ import annotations
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from grid_board import EMPTY_VALUE, Board, values_from_mask
from grid_constraints import ConfigError, ConstraintSet


FIRST_SOLUTION: str = "first-solution"
ENUMERATE_ALL: str = "enumerate-all"
MODES: Tuple[str, ...] = (FIRST_SOLUTION, ENUMERATE_ALL)

VALUE_ORDERS: Tuple[str, ...] = ("special-first", "ascending", "descending")
CELL_ORDERS: Tuple[str, ...] = ("mrv", "scan")


@dataclass
class SolverResult:
    status: str                                   # solved | no-solution | counted | limit
    solution: Optional[List[Tuple[int, int]]]     # (cell, value) row-major
    solutions_found: int
    decision_count: int
    duration_ms: float
    message: str = ""


class BacktrackingSolver:
    """
    Depth-first backtracking over a Board, with a couple heuristics:
    1. mrv, fill whichever empty cell currently has the fewest legal values.
       An empty domain is a dead end straight away; a domain of one cannot be beaten.
    2. special values first, they are the most constrained and prune the row/column rule sooner.

    Neither heuristic changes which solutions exist, only how fast they are reached.

    The board is mutated only through set_cell/clear_cell pairs; after a failed
    branch it is exactly as it was before the branch. In first-solution mode the
    board is left holding the solution.
    """

    def __init__(
        self,
        board: Board,
        mode: str = FIRST_SOLUTION,
        progress_every: int = 0,
        on_progress: Optional[Callable[[int], None]] = None,
        value_order: str = "special-first",
        cell_order: str = "mrv",
        max_solutions: Optional[int] = None,
    ):
        if mode not in MODES:
            raise ConfigError(f"mode must be one of {MODES}, got {mode!r}")
        if value_order not in VALUE_ORDERS:
            raise ConfigError(f"value_order must be one of {VALUE_ORDERS}, got {value_order!r}")
        if cell_order not in CELL_ORDERS:
            raise ConfigError(f"cell_order must be one of {CELL_ORDERS}, got {cell_order!r}")
        if progress_every < 0:
            raise ConfigError("progress_every must be >= 0")
        if max_solutions is not None and max_solutions < 1:
            raise ConfigError("max_solutions must be >= 1")

        self.board: Board = board
        self.mode = mode
        self.progress_every = progress_every
        self.on_progress = on_progress
        self.value_order = value_order
        self.cell_order = cell_order
        self.max_solutions = max_solutions

        self.decision_count: int = 0  # every assignment tried
        self.solution_count: int = 0
        self.solution: Optional[List[Tuple[int, int]]] = None
        self.limit_reached: bool = False

        # Seeded cells are never selected, the rest in row-major order
        self.free_cells: List[int] = [i for i in range(board.size) if not board.fixed[i]]

    def get_mrv(self) -> Tuple[int, int]:
        """
        mrv: minimum remaining values
        :return: (cell, domain mask) of the empty cell with the smallest domain,
                 first in scan order on ties. A zero mask means a forced failure.
                 (-1, 0) when no empty cell is left.
        """
        board = self.board
        values = board.values
        best_index = -1
        best_count = board.size + 1
        best_mask = 0
        for index in self.free_cells:
            if values[index] != EMPTY_VALUE:
                continue
            mask = board.domain_mask(index)
            count = mask.bit_count()
            if count == 0:
                return index, 0
            if count < best_count:
                best_index, best_count, best_mask = index, count, mask
                if count == 1:
                    break
        return best_index, best_mask

    def get_next_in_scan(self) -> Tuple[int, int]:
        values = self.board.values
        for index in self.free_cells:
            if values[index] == EMPTY_VALUE:
                return index, self.board.domain_mask(index)
        return -1, 0

    def select_cell(self) -> Tuple[int, int]:
        if self.cell_order == "scan":
            return self.get_next_in_scan()
        return self.get_mrv()

    def order_values(self, mask: int) -> List[int]:
        candidates = values_from_mask(mask)
        if self.value_order == "descending":
            candidates.reverse()
        elif self.value_order == "special-first":
            # stable sort keeps each group ascending
            is_special = self.board.constraints.is_special
            candidates.sort(key=lambda v: 0 if is_special(v) else 1)
        return candidates

    def _on_full_assignment(self) -> bool:
        board = self.board
        validator = board.constraints.validator
        if validator is not None and not validator(list(board.values)):
            return False

        if self.solution is None:
            self.solution = board.as_pairs()
        if self.mode == FIRST_SOLUTION:
            return True

        self.solution_count += 1
        if self.progress_every and self.on_progress is not None and self.solution_count % self.progress_every == 0:
            self.on_progress(self.solution_count)
        if self.max_solutions is not None and self.solution_count >= self.max_solutions:
            self.limit_reached = True
            return True
        # keep exploring sibling branches
        return False

    def search(self) -> bool:
        """
        :return: True once the search should stop (a solution in first-solution mode,
                 or the solution limit when counting), False when this branch is exhausted.
        """
        board = self.board
        if board.is_complete():
            return self._on_full_assignment()

        index, mask = self.select_cell()
        if index == -1 or mask == 0:
            return False

        for value in self.order_values(mask):
            if board.violates_neighbors(index, value) or not board.special_feasible(index, value):
                continue
            board.set_cell(index, value)
            self.decision_count += 1
            if self.search():
                return True
            board.clear_cell(index)
        return False

    def solve(self) -> SolverResult:
        start = time.perf_counter_ns()
        stopped = self.search()
        duration_ms = (time.perf_counter_ns() - start) / 1_000_000.0

        if self.mode == FIRST_SOLUTION:
            if stopped:
                return SolverResult(
                    status="solved",
                    solution=self.solution,
                    solutions_found=1,
                    decision_count=self.decision_count,
                    duration_ms=duration_ms,
                    message="Solved successfully.",
                )
            return SolverResult(
                status="no-solution",
                solution=None,
                solutions_found=0,
                decision_count=self.decision_count,
                duration_ms=duration_ms,
                message="No solution found.",
            )

        if self.limit_reached:
            status, message = "limit", f"Stopped after {self.solution_count:,} solutions."
        else:
            status, message = "counted", f"Found {self.solution_count:,} solutions."
        return SolverResult(
            status=status,
            solution=self.solution,
            solutions_found=self.solution_count,
            decision_count=self.decision_count,
            duration_ms=duration_ms,
            message=message,
        )


def solve(constraints: ConstraintSet, **kwargs) -> SolverResult:
    """Runs a BacktrackingSolver on a fresh Board; kwargs go to the solver."""
    return BacktrackingSolver(Board(constraints), **kwargs).solve()
