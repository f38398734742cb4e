from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple
import igraph as ig
import numpy as np


class ConfigError(ValueError):
    """A configuration that cannot be searched: reported before the first search step."""


Offset = Tuple[int, int]

ORTHOGONAL: Tuple[Offset, ...] = ((-1, 0), (1, 0), (0, -1), (0, 1))
DIAGONAL: Tuple[Offset, ...] = ((-1, -1), (-1, 1), (1, -1), (1, 1))
KING: Tuple[Offset, ...] = ORTHOGONAL + DIAGONAL
KNIGHT: Tuple[Offset, ...] = (
    (-2, -1), (-2, 1), (-1, -2), (-1, 2),
    (1, -2), (1, 2), (2, -1), (2, 1),
)

NAMED_OFFSETS: Dict[str, Tuple[Offset, ...]] = {
    "orthogonal": ORTHOGONAL,
    "diagonal": DIAGONAL,
    "king": KING,
    "knight": KNIGHT,
}


@dataclass(frozen=True)
class Cell:
    index: int
    row: int
    col: int


class GridTopology:
    """
    A width x height grid of cells, indexed row-major (index = row * width + col).

    For every cell the neighbor indices are stored per adjacency relation,
    e.g. {"orthogonal": (1, 5), "diagonal": (6,)}. Neighbors that fall off the
    grid are dropped. Nothing here changes after construction.
    """

    def __init__(
        self,
        width: int,
        height: int,
        adjacency: Mapping[str, Sequence[Offset]],
        size: Optional[int] = None,
    ):
        if width <= 0 or height <= 0:
            raise ConfigError(f"grid dimensions must be positive, got {width}x{height}")
        if size is not None and width * height != size:
            raise ConfigError(
                f"grid {width}x{height} holds {width * height} cells, but {size} values were configured"
            )

        self.width: int = width
        self.height: int = height
        self.size: int = width * height
        self.relations: Tuple[str, ...] = tuple(adjacency.keys())
        self.offsets: Dict[str, Tuple[Offset, ...]] = {}

        for relation, offsets in adjacency.items():
            if not relation:
                raise ConfigError("adjacency relation names must be non-empty")
            clean: List[Offset] = []
            for dr, dc in offsets:
                if dr == 0 and dc == 0:
                    raise ConfigError(f"relation '{relation}' contains the zero offset")
                if (dr, dc) not in clean:
                    clean.append((int(dr), int(dc)))
            self.offsets[relation] = tuple(clean)

        self.cells: List[Cell] = [
            Cell(index=r * width + c, row=r, col=c) for r in range(height) for c in range(width)
        ]

        # neighbors[index][relation] -> neighbor indices in offset order
        self.neighbors: List[Dict[str, Tuple[int, ...]]] = []
        for cell in self.cells:
            per_relation: Dict[str, Tuple[int, ...]] = {}
            for relation, offsets in self.offsets.items():
                found: List[int] = []
                for dr, dc in offsets:
                    nr, nc = cell.row + dr, cell.col + dc
                    if 0 <= nr < height and 0 <= nc < width:
                        found.append(nr * width + nc)
                per_relation[relation] = tuple(found)
            self.neighbors.append(per_relation)

    def __len__(self) -> int:
        return self.size

    def index_of(self, row: int, col: int) -> int:
        if not (0 <= row < self.height and 0 <= col < self.width):
            raise ConfigError(f"cell ({row},{col}) is outside the {self.width}x{self.height} grid")
        return row * self.width + col

    def row_of(self, index: int) -> int:
        return index // self.width

    def col_of(self, index: int) -> int:
        return index % self.width

    def neighbors_of(self, index: int, relation: str) -> Tuple[int, ...]:
        return self.neighbors[index].get(relation, ())

    def to_constraint_graph_igraph(self) -> ig.Graph:
        """
        Returns an undirected igraph.Graph of this topology.

        Vertices: 0..size-1 (id = width*r + c), with "r" and "c" attributes.
        Edges: one per adjacent pair, with a "relation" attribute naming the
        adjacency relation, or "multi" when more than one relation joins the pair.
        """
        seen: Dict[Tuple[int, int], str] = {}
        pairs: List[Tuple[int, int]] = []

        for i, per_relation in enumerate(self.neighbors):
            for relation, found in per_relation.items():
                for j in found:
                    key = (i, j) if i < j else (j, i)
                    if key in seen:
                        if seen[key] != relation:
                            seen[key] = "multi"
                        continue
                    seen[key] = relation
                    pairs.append(key)

        G = ig.Graph(n=self.size, edges=pairs, directed=False)
        G.vs["r"] = [cell.row for cell in self.cells]
        G.vs["c"] = [cell.col for cell in self.cells]
        G.es["relation"] = [seen[key] for key in pairs]
        return G


def graph_metrics_for_topology(topology: GridTopology) -> Tuple[float, float]:
    """
    Returns (fiedler_value, trace_L) of the topology's adjacency graph.

    The Fiedler value is the second smallest Laplacian eigenvalue; it is 0
    when the graph is disconnected (e.g. a topology with no relations).
    """
    G = topology.to_constraint_graph_igraph()
    A = np.array(G.get_adjacency().data, dtype=float)
    A = 0.5 * (A + A.T)

    degrees = A.sum(axis=1)
    L = np.diag(degrees) - A
    trace_L = float(np.trace(L))

    # Numerical noise can make the smallest eigenvalue slightly negative
    evals = np.maximum(np.linalg.eigvalsh(L), 0.0)
    fiedler = float(evals[1]) if evals.shape[0] >= 2 else 0.0

    return fiedler, trace_L
