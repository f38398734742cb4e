import pytest

from grid_topology import DIAGONAL, KING, ORTHOGONAL, ConfigError, GridTopology, graph_metrics_for_topology


def test_orthogonal_neighbors_follow_offset_order():
    topo = GridTopology(3, 3, {"orthogonal": ORTHOGONAL})
    assert topo.neighbors_of(4, "orthogonal") == (1, 7, 3, 5)
    assert topo.neighbors_of(0, "orthogonal") == (3, 1)
    assert topo.neighbors_of(8, "orthogonal") == (5, 7)


def test_out_of_bounds_neighbors_are_dropped():
    topo = GridTopology(3, 3, {"diagonal": DIAGONAL})
    assert topo.neighbors_of(0, "diagonal") == (4,)
    assert topo.neighbors_of(4, "diagonal") == (0, 2, 6, 8)
    assert topo.neighbors_of(4, "orthogonal") == ()


def test_cells_are_row_major():
    topo = GridTopology(4, 2, {})
    assert len(topo) == 8
    cell = topo.cells[6]
    assert (cell.index, cell.row, cell.col) == (6, 1, 2)
    assert topo.index_of(1, 3) == 7
    assert topo.row_of(5) == 1 and topo.col_of(5) == 1


def test_size_mismatch_is_rejected():
    with pytest.raises(ConfigError):
        GridTopology(3, 3, {"orthogonal": ORTHOGONAL}, size=10)


@pytest.mark.parametrize("width,height", [(0, 3), (3, -1)])
def test_non_positive_dimensions_are_rejected(width, height):
    with pytest.raises(ConfigError):
        GridTopology(width, height, {})


def test_zero_offset_is_rejected():
    with pytest.raises(ConfigError):
        GridTopology(3, 3, {"self": [(0, 0)]})


def test_index_outside_grid_is_rejected():
    topo = GridTopology(3, 3, {})
    with pytest.raises(ConfigError):
        topo.index_of(3, 0)


def test_constraint_graph_labels_shared_pairs_as_multi():
    topo = GridTopology(3, 3, {"orthogonal": ORTHOGONAL, "king": KING})
    G = topo.to_constraint_graph_igraph()
    assert G.vcount() == 9
    assert G.ecount() == 20
    relations = G.es["relation"]
    assert relations.count("multi") == 12
    assert relations.count("king") == 8
    assert G.vs["r"][5] == 1 and G.vs["c"][5] == 2


def test_graph_metrics_of_a_path():
    # Path of three cells: Laplacian eigenvalues 0, 1, 3
    topo = GridTopology(3, 1, {"orthogonal": ORTHOGONAL})
    fiedler, trace_L = graph_metrics_for_topology(topo)
    assert fiedler == pytest.approx(1.0)
    assert trace_L == pytest.approx(4.0)


def test_graph_metrics_without_edges():
    topo = GridTopology(2, 2, {})
    fiedler, trace_L = graph_metrics_for_topology(topo)
    assert fiedler == pytest.approx(0.0)
    assert trace_L == pytest.approx(0.0)


def test_config_error_is_shared_with_constraints():
    import grid_constraints
    assert grid_constraints.ConfigError is ConfigError
    assert issubclass(ConfigError, ValueError)
