# tests/services/test_rules_service.py
import pytest

from chess_annotator.services.rules_service import ChessRulesService
from chess_annotator.types import MoveDescriptor, PieceColor, PieceInfo, PieceKind

START_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"


def test_apply_by_san():
    rules = ChessRulesService()

    applied = rules.apply(START_FEN, MoveDescriptor(san="e4"))

    assert applied.uci == "e2e4"
    assert applied.from_square == "e2"
    assert applied.to_square == "e4"
    assert applied.resulting_fen == "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1"


def test_apply_falls_back_to_squares():
    rules = ChessRulesService()

    applied = rules.apply(START_FEN, MoveDescriptor(san="Kingside knight", from_square="g1", to_square="f3"))

    assert applied.san == "Nf3"


def test_apply_promotion_by_squares():
    rules = ChessRulesService()
    fen = "8/4P3/8/8/8/8/k7/4K3 w - - 0 1"

    applied = rules.apply(fen, MoveDescriptor(san="", from_square="e7", to_square="e8", promotion="q"))

    assert applied.san == "e8=Q"
    assert applied.promotion == PieceKind.QUEEN


def test_apply_illegal_returns_none():
    rules = ChessRulesService()

    assert rules.apply(START_FEN, MoveDescriptor(san="e5")) is None
    assert rules.apply(START_FEN, MoveDescriptor(san="??", from_square="e2", to_square="e5")) is None


def test_apply_rejects_null_move():
    rules = ChessRulesService()

    assert rules.apply(START_FEN, MoveDescriptor(san="--")) is None
    assert rules.apply(START_FEN, MoveDescriptor(san="0000")) is None


def test_board_grid_orientation():
    grid = ChessRulesService().board(START_FEN)

    assert grid[0][0] == PieceInfo(PieceKind.ROOK, PieceColor.BLACK)
    assert grid[7][4] == PieceInfo(PieceKind.KING, PieceColor.WHITE)
    assert grid[4][4] is None


def test_check_and_mate_queries():
    rules = ChessRulesService()
    fools_mate = "rnb1kbnr/pppp1ppp/8/4p3/6Pq/5P2/PPPPP2P/RNBQKBNR w KQkq - 1 3"

    assert rules.in_check(fools_mate)
    assert rules.is_checkmate(fools_mate)
    assert rules.legal_moves(fools_mate) == []
    assert rules.turn(fools_mate) == PieceColor.WHITE
    assert len(rules.legal_moves(START_FEN)) == 20


def test_normalize_fen_rejects_invalid_positions():
    rules = ChessRulesService()

    assert rules.normalize_fen(f"  {START_FEN} ") == START_FEN
    with pytest.raises(ValueError):
        rules.normalize_fen("8/8/8/8/8/8/8/8 w - - 0 1")
    with pytest.raises(ValueError):
        rules.normalize_fen("not a fen")
