# tests/core/test_game_state.py
import pytest

from chess_annotator.core.game_state import (build_state_context, count_material,
                                             material_balance, material_change_for_mover,
                                             material_value, qualitative_state)
from chess_annotator.services.rules_service import ChessRulesService
from chess_annotator.types import PieceColor, PieceKind, PositionState

START_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"
# White is missing the queen.
QUEENLESS_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNB1KBNR w KQkq - 0 1"


def grid(fen):
    return ChessRulesService().board(fen)


def test_count_material_start_position():
    count = count_material(grid(START_FEN))

    assert count.white[PieceKind.PAWN] == 8
    assert count.black[PieceKind.KNIGHT] == 2
    assert count.for_color(PieceColor.BLACK)[PieceKind.KING] == 1
    assert material_value(count, PieceColor.WHITE) == 39.5


def test_material_balance_is_signed_by_perspective():
    board = grid(QUEENLESS_FEN)

    assert material_balance(grid(START_FEN)) == 0
    assert material_balance(board, PieceColor.WHITE) == -9.0
    assert material_balance(board, PieceColor.BLACK) == 9.0


@pytest.mark.parametrize("evaluation, expected", [
    (3.0, PositionState.WINNING),
    (10.0, PositionState.WINNING),
    (2.99, PositionState.BETTER),
    (1.0, PositionState.BETTER),
    (0.99, PositionState.EQUAL),
    (-1.0, PositionState.EQUAL),
    (-1.01, PositionState.WORSE),
    (-3.0, PositionState.WORSE),
    (-3.01, PositionState.LOSING),
])
def test_qualitative_state_boundaries(evaluation, expected):
    assert qualitative_state(evaluation) == expected


def test_build_state_context():
    context = build_state_context(-4.2, grid(QUEENLESS_FEN))

    assert context.state == PositionState.LOSING
    assert context.material_balance == -9.0
    assert context.evaluation == -4.2


def test_material_change_for_mover():
    before, after = grid(START_FEN), grid(QUEENLESS_FEN)

    assert material_change_for_mover(before, after, PieceColor.WHITE) == -9.0
    assert material_change_for_mover(before, after, PieceColor.BLACK) == 9.0
