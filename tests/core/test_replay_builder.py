# tests/core/test_replay_builder.py
from unittest.mock import MagicMock

import pytest

from chess_annotator.core.explanation_generator import ExplanationGenerator
from chess_annotator.core.replay_builder import IMPORTED_POSITION_NOTE, ReplayBuilder
from chess_annotator.services.pgn_service import PgnService
from chess_annotator.services.rules_service import ChessRulesService
from chess_annotator.types import MoveDescriptor

START_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"
GAME_PGN = "1. e4 e5 2. Nf3 Nc6 3. Bb5 a6 4. Ba4 Nf6 5. O-O Be7 6. Re1 b5 7. Bb3 d6 8. c3 O-O *"


def make_builder():
    rules = ChessRulesService()
    return ReplayBuilder(rules, ExplanationGenerator(rules)), rules


def test_zero_move_import():
    builder, _ = make_builder()

    timeline = builder.build_timeline(START_FEN, [])

    assert len(timeline.positions) == 1
    assert len(timeline.moves) == 0
    assert timeline.current_index == 0


def test_positions_follow_moves():
    builder, rules = make_builder()
    parsed = PgnService().parse(GAME_PGN)

    timeline = builder.build_from_parsed(parsed)

    positions, moves = timeline.positions, timeline.moves
    assert len(positions) == len(moves) + 1 == 17
    for i, move in enumerate(moves):
        applied = rules.apply(positions[i], MoveDescriptor(san=move.san))
        assert applied.resulting_fen == positions[i + 1] == move.resulting_fen


def test_round_trip_reproduces_final_position():
    builder, rules = make_builder()
    timeline = builder.build_from_parsed(PgnService().parse(GAME_PGN))

    fen = timeline.positions[0]
    for move in timeline.moves:
        fen = rules.apply(fen, MoveDescriptor(san="", from_square=move.from_square, to_square=move.to_square)).resulting_fen

    assert fen == timeline.positions[-1]


def test_illegal_middle_move_is_skipped():
    builder, _ = make_builder()
    descriptors = [MoveDescriptor(san="e4"), MoveDescriptor(san="Ke7"), MoveDescriptor(san="e5"), MoveDescriptor(san="Nf3")]

    timeline = builder.build_timeline(START_FEN, descriptors)

    assert len(timeline.moves) == len(descriptors) - 1
    assert [m.san for m in timeline.moves] == ["e4", "e5", "Nf3"]


def test_comment_takes_precedence_over_generated_explanation():
    rules = ChessRulesService()
    explainer = MagicMock(spec=ExplanationGenerator)
    explainer.explain.return_value = "generated"
    builder = ReplayBuilder(rules, explainer)

    timeline = builder.build_timeline(
        START_FEN, [MoveDescriptor(san="e4", comment="Best by test"), MoveDescriptor(san="e5")]
    )

    assert timeline.moves[0].explanation == "Best by test"
    assert timeline.moves[1].explanation == "generated"
    explainer.explain.assert_called_once()


def test_build_position_timeline():
    builder, _ = make_builder()

    timeline = builder.build_position_timeline("4k3/8/8/8/8/8/8/4K3 w - - 0 1")

    assert timeline.positions == ["4k3/8/8/8/8/8/8/4K3 w - - 0 1"]
    assert timeline.initial_note == IMPORTED_POSITION_NOTE


def test_build_position_timeline_rejects_bad_fen():
    builder, _ = make_builder()

    with pytest.raises(ValueError):
        builder.build_position_timeline("garbage")
