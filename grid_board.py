from __future__ import annotations
from typing import Dict, List, Tuple
import numpy as np

from grid_constraints import ConstraintSet


EMPTY_VALUE: int = 0  # Marks an unassigned cell; real values start at 1


def bit_for(value: int) -> int:
    """map 1..M -> bits 0..M-1"""
    return 1 << (value - 1)


def values_from_mask(mask: int) -> List[int]:
    """
    Ascending values whose bits are set in mask, peeling off the lowest set bit each step.
    """
    out: List[int] = []
    while mask:
        lsb = mask & -mask
        out.append(lsb.bit_length())
        mask &= mask - 1
    return out


class Board:
    def __init__(self, constraints: ConstraintSet):
        self.constraints: ConstraintSet = constraints
        self.topology = constraints.topology
        self.size: int = constraints.size

        """
        The assignment is an array indexed by cell plus a "used" bitset with one bit
        per value (1...M). A bit is set in used_mask exactly when one cell holds that value.
        special_pos[k] is the cell holding the k-th special value, or -1 while unplaced.
        """
        self.values: List[int] = [EMPTY_VALUE] * self.size
        self.used_mask: int = 0
        self.special_pos: List[int] = [-1] * len(constraints.special_values)
        self.assigned_count: int = 0

        self._rows: List[int] = [cell.row for cell in self.topology.cells]
        self._cols: List[int] = [cell.col for cell in self.topology.cells]
        self._pairs: Dict[str, Tuple[np.ndarray, np.ndarray]] = {}

        self.fixed: List[bool] = [False] * self.size
        for index, value in constraints.seeds.items():
            self.set_cell(index, value)
            self.fixed[index] = True

    def __str__(self) -> str:
        """
        :return: One line per grid row, values separated by commas, '?' for empty cells
        """
        width = self.topology.width
        out: List[str] = []
        for r in range(self.topology.height):
            line = self.values[r * width:(r + 1) * width]
            out.append(','.join(str(v) if v != EMPTY_VALUE else '?' for v in line))
        return '\n'.join(out) + '\n'

    def pretty_print(self):
        """
        Prints this board right-aligned in columns, with '.' for empty cells
        """
        width = self.topology.width
        pad = len(str(self.size)) + 1
        print("-" * (pad * width + 3))
        for r in range(self.topology.height):
            row_str = "|"
            for c in range(width):
                v = self.values[r * width + c]
                row_str += (str(v) if v != EMPTY_VALUE else ".").rjust(pad)
            print(row_str + " |")
        print("-" * (pad * width + 3))

    def is_complete(self) -> bool:
        return self.assigned_count == self.size

    def get_cell(self, index: int) -> int:
        return self.values[index]

    def set_cell(self, index: int, value: int):
        """
        Places value at index. The caller guarantees the cell is empty and the value unused.
        """
        if self.values[index] != EMPTY_VALUE:
            raise ValueError(f"cell {index} already holds {self.values[index]}")
        bit = bit_for(value)
        if self.used_mask & bit:
            raise ValueError(f"value {value} is already placed")
        self.values[index] = value
        self.used_mask |= bit
        self.assigned_count += 1
        slot = self.constraints.special_slot[value]
        if slot >= 0:
            self.special_pos[slot] = index

    def clear_cell(self, index: int):
        """Exact inverse of set_cell."""
        if self.fixed[index]:
            raise ValueError(f"cell {index} is seeded and cannot be cleared")
        value = self.values[index]
        if value == EMPTY_VALUE:
            return
        self.values[index] = EMPTY_VALUE
        self.used_mask &= ~bit_for(value)
        self.assigned_count -= 1
        slot = self.constraints.special_slot[value]
        if slot >= 0:
            self.special_pos[slot] = -1

    def snapshot(self) -> Tuple[Tuple[int, ...], int, Tuple[int, ...], int]:
        return tuple(self.values), self.used_mask, tuple(self.special_pos), self.assigned_count

    def as_pairs(self) -> List[Tuple[int, int]]:
        """(cell, value) for every cell, row-major."""
        return list(enumerate(self.values))

    def _special_line_taken(self, index: int) -> bool:
        r, c = self._rows[index], self._cols[index]
        for p in self.special_pos:
            if p != -1 and (self._rows[p] == r or self._cols[p] == c):
                return True
        return False

    def domain_mask(self, index: int) -> int:
        """
        Bitmask of values that can go in cell index given the cells placed so far,
        bits 0..M-1 correspond to 1..M. Only direct pruning: placed neighbours,
        the special row/column rule and placement rules. Returns 0 for a filled cell.
        """
        if self.values[index] != EMPTY_VALUE:
            return 0
        cs = self.constraints
        size = self.size
        values = self.values

        mask = cs.full_mask & ~self.used_mask & ~cs.excluded_masks[index]

        neighbors = self.topology.neighbors[index]
        for relation, deltas in cs.forbidden.items():
            for n in neighbors.get(relation, ()):
                w = values[n]
                if w == EMPTY_VALUE:
                    continue
                for d in deltas:
                    if w - d >= 1:
                        mask &= ~(1 << (w - d - 1))
                    if w + d <= size:
                        mask &= ~(1 << (w + d - 1))

        # A placed special value on this row or column rules out every unplaced one here
        if cs.distinct_lines and mask & cs.special_mask and self._special_line_taken(index):
            mask &= ~cs.special_mask

        return mask

    def violates_neighbors(self, index: int, value: int) -> bool:
        cs = self.constraints
        neighbors = self.topology.neighbors[index]
        for relation, deltas in cs.forbidden.items():
            for n in neighbors.get(relation, ()):
                w = self.values[n]
                if w != EMPTY_VALUE and abs(w - value) in deltas:
                    return True
        return False

    def special_feasible(self, index: int, value: int) -> bool:
        cs = self.constraints
        if not cs.distinct_lines or not cs.is_special(value):
            return True
        r, c = self._rows[index], self._cols[index]
        own = cs.special_slot[value]
        for slot, p in enumerate(self.special_pos):
            if slot == own or p == -1 or p == index:
                continue
            if self._rows[p] == r or self._cols[p] == c:
                return False
        return True

    def _relation_pairs(self, relation: str) -> Tuple[np.ndarray, np.ndarray]:
        if relation not in self._pairs:
            left: List[int] = []
            right: List[int] = []
            for i, per_relation in enumerate(self.topology.neighbors):
                for j in per_relation.get(relation, ()):
                    left.append(i)
                    right.append(j)
            self._pairs[relation] = (np.array(left, dtype=np.int64), np.array(right, dtype=np.int64))
        return self._pairs[relation]

    def check_solution(self) -> bool:
        """
        Separate checker from the solver itself, to ensure solutions are correct.
        Recomputes everything from the values alone; runs once per solution.
        :return: True if the board is a valid complete solution, False otherwise
        """
        cs = self.constraints
        topo = self.topology
        grid = np.array(self.values, dtype=np.int64)

        # 1) A permutation of 1..M
        if not np.array_equal(np.sort(grid), np.arange(1, self.size + 1)):
            return False

        # 2) Seeds preserved
        for index, value in cs.seeds.items():
            if self.values[index] != value:
                return False

        # 3) Difference constraints over every adjacent pair
        for relation, deltas in cs.forbidden.items():
            left, right = self._relation_pairs(relation)
            if left.size and np.isin(np.abs(grid[left] - grid[right]), deltas).any():
                return False

        # 4) Special values on distinct rows and columns
        if cs.distinct_lines:
            cells = [self.values.index(v) for v in cs.special_values]
            rows = {topo.row_of(i) for i in cells}
            cols = {topo.col_of(i) for i in cells}
            if len(rows) != len(cells) or len(cols) != len(cells):
                return False

        # 5) Placement rules
        for index, value in enumerate(self.values):
            if cs.excluded_masks[index] & bit_for(value):
                return False

        # 6) Global validator
        if cs.validator is not None and not cs.validator(list(self.values)):
            return False

        return True
