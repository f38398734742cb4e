import pytest

from grid_board import EMPTY_VALUE, Board, bit_for, values_from_mask
from grid_constraints import (
    ConstraintSet,
    DifferenceConstraint,
    EvenSumValidator,
    PlacementRule,
    SpecialSubset,
)
from grid_topology import DIAGONAL, ORTHOGONAL, GridTopology


# 3x3, no two orthogonal neighbours consecutive, centre 5
VALID_3X3 = [
    4, 1, 6,
    8, 5, 3,
    2, 7, 9,
]


def three_demo(**kwargs):
    topo = GridTopology(3, 3, {"orthogonal": ORTHOGONAL})
    return ConstraintSet(topo, differences=[DifferenceConstraint("orthogonal", 1)], seeds={4: 5}, **kwargs)


def four_rooks():
    topo = GridTopology(4, 4, {})
    return ConstraintSet(topo, special=SpecialSubset((1, 4, 9, 16)))


def fill(board, values):
    for index, value in enumerate(values):
        if board.get_cell(index) == EMPTY_VALUE:
            board.set_cell(index, value)


def test_bit_helpers():
    assert bit_for(1) == 1
    assert bit_for(9) == 256
    assert values_from_mask(0b1011) == [1, 2, 4]
    assert values_from_mask(0) == []
    assert values_from_mask(1 << 35) == [36]


def test_seeds_are_applied_and_fixed():
    board = Board(three_demo())
    assert board.get_cell(4) == 5
    assert board.fixed[4] and not board.fixed[0]
    assert board.used_mask == bit_for(5)
    assert board.assigned_count == 1
    with pytest.raises(ValueError):
        board.clear_cell(4)


def test_domain_prunes_neighbor_differences():
    board = Board(three_demo())
    assert values_from_mask(board.domain_mask(1)) == [1, 2, 3, 7, 8, 9]
    assert values_from_mask(board.domain_mask(0)) == [1, 2, 3, 4, 6, 7, 8, 9]
    assert board.domain_mask(4) == 0


def test_domain_with_several_deltas_and_relations():
    topo = GridTopology(3, 3, {"orthogonal": ORTHOGONAL, "diagonal": DIAGONAL})
    cs = ConstraintSet(
        topo,
        differences=[DifferenceConstraint("orthogonal", 1), DifferenceConstraint("diagonal", 2)],
        seeds={4: 5},
    )
    board = Board(cs)
    # corner: diagonal to the centre
    assert values_from_mask(board.domain_mask(0)) == [1, 2, 4, 6, 8, 9]
    # edge: orthogonal to the centre
    assert values_from_mask(board.domain_mask(1)) == [1, 2, 3, 7, 8, 9]


def test_domain_respects_value_range_edges():
    board = Board(three_demo())
    board.set_cell(0, 9)
    assert 8 not in values_from_mask(board.domain_mask(1))
    assert 9 not in values_from_mask(board.domain_mask(1))


def test_special_line_rule_in_domain():
    board = Board(four_rooks())
    board.set_cell(0, 1)
    same_row = values_from_mask(board.domain_mask(1))
    same_col = values_from_mask(board.domain_mask(4))
    elsewhere = values_from_mask(board.domain_mask(5))
    for special in (4, 9, 16):
        assert special not in same_row
        assert special not in same_col
        assert special in elsewhere
    assert 1 not in elsewhere
    assert 2 in same_row and 15 in same_col


def test_special_feasible_and_neighbor_recheck():
    board = Board(four_rooks())
    board.set_cell(5, 9)
    assert not board.special_feasible(6, 4)
    assert board.special_feasible(10, 4)
    assert board.special_feasible(6, 3)

    demo = Board(three_demo())
    assert demo.violates_neighbors(1, 6)
    assert not demo.violates_neighbors(1, 7)
    assert not demo.violates_neighbors(0, 6)


def test_placement_rule_in_domain():
    board = Board(three_demo(placements=[PlacementRule(9, rows=(2,))]))
    assert 9 not in values_from_mask(board.domain_mask(0))
    assert 9 in values_from_mask(board.domain_mask(6))


def test_set_and_clear_are_inverse():
    board = Board(four_rooks())
    before = board.snapshot()
    board.set_cell(3, 16)
    assert board.special_pos == [-1, -1, -1, 3]
    assert board.snapshot() != before
    board.clear_cell(3)
    assert board.snapshot() == before


def test_set_cell_misuse():
    board = Board(three_demo())
    with pytest.raises(ValueError):
        board.set_cell(0, 5)
    board.set_cell(0, 1)
    with pytest.raises(ValueError):
        board.set_cell(0, 2)


def test_check_solution():
    board = Board(three_demo())
    fill(board, VALID_3X3)
    assert board.is_complete()
    assert board.check_solution()
    assert board.as_pairs()[0] == (0, 4)
    assert str(board) == "4,1,6\n8,5,3\n2,7,9\n"


def test_check_solution_catches_a_consecutive_pair():
    board = Board(three_demo())
    fill(board, [4, 1, 6, 8, 5, 3, 7, 2, 9])  # 7 under 8
    assert not board.check_solution()


def test_check_solution_needs_complete_board():
    board = Board(three_demo())
    assert not board.check_solution()


def test_check_solution_runs_validator():
    odd = three_demo(validator=EvenSumValidator([0, 1]))  # 4 + 1 is odd
    board = Board(odd)
    fill(board, VALID_3X3)
    assert not board.check_solution()


def test_check_solution_special_lines():
    board = Board(four_rooks())
    fill(board, [1, 2, 3, 5, 6, 4, 7, 8, 10, 11, 9, 12, 13, 14, 15, 16])
    assert board.check_solution()
    board = Board(four_rooks())
    fill(board, [1, 4, 2, 3, 5, 6, 7, 8, 10, 11, 9, 12, 13, 14, 15, 16])
    assert not board.check_solution()


def test_pretty_print(capsys):
    board = Board(three_demo())
    board.pretty_print()
    out = capsys.readouterr().out
    assert " 5" in out and "." in out
