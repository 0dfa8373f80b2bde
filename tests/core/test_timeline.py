# tests/core/test_timeline.py
import pytest

from chess_annotator.core.timeline import GameTimeline
from chess_annotator.types import ClassificationResult, MoveClassification, TimelineMove


def make_timeline(n_moves=3):
    positions = [f"fen{i}" for i in range(n_moves + 1)]
    moves = [
        TimelineMove(from_square="a1", to_square="a2", san=f"m{i}", uci="a1a2", resulting_fen=positions[i + 1])
        for i in range(n_moves)
    ]
    return GameTimeline(positions, moves)


def test_navigation_clamps_to_range():
    timeline = make_timeline(3)

    assert timeline.prev() == 0
    assert timeline.next() == 1
    assert timeline.goto(10) == 3
    assert timeline.next() == 3
    assert timeline.goto(-5) == 0
    assert timeline.current_fen == "fen0"


def test_move_for_index_is_the_move_that_produced_the_position():
    timeline = make_timeline(3)

    assert timeline.move_for_index(0) is None
    assert timeline.move_for_index(1).san == "m0"
    assert timeline.move_for_index(3).san == "m2"
    assert timeline.move_for_index(4) is None

    timeline.goto(2)
    assert timeline.current_move().san == "m1"


def test_reset_keeps_only_initial_position():
    timeline = make_timeline(3)
    timeline.goto(2)

    timeline.reset()

    assert timeline.positions == ["fen0"]
    assert timeline.moves == []
    assert timeline.current_index == 0


def test_rejects_mismatched_lengths():
    with pytest.raises(ValueError):
        GameTimeline(["fen0", "fen1"], [])
    with pytest.raises(ValueError):
        GameTimeline([], [])


def test_classification_fields_are_written_once():
    move = make_timeline(1).moves[0]
    move.record_classification(ClassificationResult(MoveClassification.GOOD, 0.6))

    with pytest.raises(ValueError):
        move.record_classification(ClassificationResult(MoveClassification.BEST, 0.95))

    move.annotate(MoveClassification.BRILLIANT)
    assert move.classification == MoveClassification.BRILLIANT
    assert move.confidence == 1.0

    move.clear_classification()
    assert not move.is_classified
