from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union
import numpy as np
import sympy

from grid_topology import ConfigError, GridTopology


Validator = Callable[[Sequence[int]], bool]
SeedKey = Union[int, Tuple[int, int]]


@dataclass(frozen=True)
class DifferenceConstraint:
    """Two cells adjacent under `relation` may not hold values exactly `delta` apart."""
    relation: str
    delta: int


@dataclass(frozen=True)
class SpecialSubset:
    """
    Values that, once placed, must sit on mutually distinct rows and columns
    (like non-attacking rooks). With distinct_lines=False the values are only
    tagged, which still moves them to the front of the value ordering.
    """
    values: Tuple[int, ...]
    distinct_lines: bool = True


@dataclass(frozen=True)
class PlacementRule:
    """
    `value` must be placed on one of `rows` and one of `cols` (None = any).

    Every value appears exactly once, so "row r must contain v" is the same
    thing as PlacementRule(v, rows=(r,)).
    """
    value: int
    rows: Optional[Tuple[int, ...]] = None
    cols: Optional[Tuple[int, ...]] = None

    def allows(self, row: int, col: int) -> bool:
        if self.rows is not None and row not in self.rows:
            return False
        if self.cols is not None and col not in self.cols:
            return False
        return True


# ---------------- validators ----------------
# A validator sees the complete assignment as a row-major list of values and
# is only ever called once per full assignment.

class EvenSumValidator:
    def __init__(self, cells: Iterable[int]):
        self.cells: Tuple[int, ...] = tuple(cells)

    def __call__(self, values: Sequence[int]) -> bool:
        return sum(values[i] for i in self.cells) % 2 == 0

    def __repr__(self) -> str:
        return f"EvenSumValidator(cells={list(self.cells)})"


class PrimeSumValidator:
    def __init__(self, cells: Iterable[int]):
        self.cells: Tuple[int, ...] = tuple(cells)

    def __call__(self, values: Sequence[int]) -> bool:
        return bool(sympy.isprime(sum(values[i] for i in self.cells)))

    def __repr__(self) -> str:
        return f"PrimeSumValidator(cells={list(self.cells)})"


class RowMedianValidator:
    """The values of `row` must have median `median` (mean of the middle two for even widths)."""

    def __init__(self, row: int, median: float, width: int):
        self.row = row
        self.median = median
        self.width = width

    def __call__(self, values: Sequence[int]) -> bool:
        start = self.row * self.width
        return float(np.median(values[start:start + self.width])) == float(self.median)

    def __repr__(self) -> str:
        return f"RowMedianValidator(row={self.row}, median={self.median})"


def all_of(*validators: Validator) -> Validator:
    def check(values: Sequence[int]) -> bool:
        return all(v(values) for v in validators)
    return check


# ---------------- constraint set ----------------

class ConstraintSet:
    """
    Everything the search is checked against, built once and read-only afterwards.

    Precomputed lookups:
      - forbidden: relation -> sorted forbidden deltas
      - special_slot: value -> position in the special subset, or -1
      - special_mask: bitset of all special values (bit v-1 for value v)
      - excluded_masks: per cell, values a placement rule keeps out of that cell
    """

    def __init__(
        self,
        topology: GridTopology,
        differences: Sequence[DifferenceConstraint] = (),
        special: Optional[SpecialSubset] = None,
        seeds: Optional[Mapping[SeedKey, int]] = None,
        validator: Optional[Validator] = None,
        placements: Sequence[PlacementRule] = (),
    ):
        self.topology = topology
        self.size: int = topology.size
        self.full_mask: int = (1 << self.size) - 1
        self.differences: Tuple[DifferenceConstraint, ...] = tuple(differences)
        self.special = special
        self.validator = validator
        self.placements: Tuple[PlacementRule, ...] = tuple(placements)

        self.forbidden: Dict[str, Tuple[int, ...]] = self._build_forbidden()
        self.special_values: Tuple[int, ...] = ()
        self.special_slot: List[int] = [-1] * (self.size + 1)
        self.special_mask: int = 0
        self._build_special()
        self.excluded_masks: List[int] = self._build_excluded_masks()
        self.seeds: Dict[int, int] = self._normalize_seeds(seeds or {})
        self._check_seeds()

    @property
    def distinct_lines(self) -> bool:
        return self.special is not None and self.special.distinct_lines and len(self.special_values) > 1

    def is_special(self, value: int) -> bool:
        return self.special_slot[value] >= 0

    def _check_value(self, value: int, what: str) -> None:
        if not isinstance(value, int) or isinstance(value, bool) or not (1 <= value <= self.size):
            raise ConfigError(f"{what} {value!r} is outside 1..{self.size}")

    def _build_forbidden(self) -> Dict[str, Tuple[int, ...]]:
        forbidden: Dict[str, set] = {}
        for constraint in self.differences:
            if constraint.relation not in self.topology.offsets:
                raise ConfigError(f"difference constraint uses unknown relation '{constraint.relation}'")
            if constraint.delta < 1:
                raise ConfigError(f"forbidden delta must be >= 1, got {constraint.delta}")
            forbidden.setdefault(constraint.relation, set()).add(constraint.delta)
        return {relation: tuple(sorted(deltas)) for relation, deltas in forbidden.items()}

    def _build_special(self) -> None:
        if self.special is None:
            return
        values = tuple(self.special.values)
        if len(set(values)) != len(values):
            raise ConfigError(f"special subset repeats a value: {list(values)}")
        for slot, value in enumerate(values):
            self._check_value(value, "special value")
            self.special_slot[value] = slot
            self.special_mask |= 1 << (value - 1)
        self.special_values = values

    def _build_excluded_masks(self) -> List[int]:
        masks = [0] * self.size
        ruled: set = set()
        topo = self.topology
        for rule in self.placements:
            self._check_value(rule.value, "placement value")
            if rule.value in ruled:
                raise ConfigError(f"more than one placement rule for value {rule.value}")
            ruled.add(rule.value)
            for r in rule.rows or ():
                if not 0 <= r < topo.height:
                    raise ConfigError(f"placement rule for {rule.value} names row {r} outside the grid")
            for c in rule.cols or ():
                if not 0 <= c < topo.width:
                    raise ConfigError(f"placement rule for {rule.value} names column {c} outside the grid")
            bit = 1 << (rule.value - 1)
            allowed = 0
            for cell in topo.cells:
                if rule.allows(cell.row, cell.col):
                    allowed += 1
                else:
                    masks[cell.index] |= bit
            if allowed == 0:
                raise ConfigError(f"placement rule for {rule.value} leaves no cell")
        return masks

    def _normalize_seeds(self, seeds: Mapping[SeedKey, int]) -> Dict[int, int]:
        out: Dict[int, int] = {}
        placed: Dict[int, int] = {}
        for key, value in seeds.items():
            if isinstance(key, tuple):
                index = self.topology.index_of(*key)
            else:
                index = int(key)
                if not 0 <= index < self.size:
                    raise ConfigError(f"seed cell {index} is outside 0..{self.size - 1}")
            self._check_value(value, "seed value")
            if index in out:
                raise ConfigError(f"cell {index} is seeded twice ({out[index]} and {value})")
            if value in placed:
                raise ConfigError(f"value {value} is seeded at both cell {placed[value]} and cell {index}")
            out[index] = value
            placed[value] = index
        return out

    def _check_seeds(self) -> None:
        """Seeds have to agree with every rule; the search never revisits them."""
        topo = self.topology
        for index, value in self.seeds.items():
            if self.excluded_masks[index] & (1 << (value - 1)):
                raise ConfigError(f"seed {value} at cell {index} breaks its placement rule")
            for relation, deltas in self.forbidden.items():
                for n in topo.neighbors_of(index, relation):
                    other = self.seeds.get(n)
                    if other is not None and abs(other - value) in deltas:
                        raise ConfigError(
                            f"seeds {value}@{index} and {other}@{n} are {relation} neighbours "
                            f"{abs(other - value)} apart"
                        )

        if self.distinct_lines:
            special_seeds = [(i, v) for i, v in self.seeds.items() if self.is_special(v)]
            for a in range(len(special_seeds)):
                for b in range(a + 1, len(special_seeds)):
                    (i, v), (j, w) = special_seeds[a], special_seeds[b]
                    if topo.row_of(i) == topo.row_of(j) or topo.col_of(i) == topo.col_of(j):
                        raise ConfigError(f"special seeds {v}@{i} and {w}@{j} share a row or column")
