# tests/core/test_formatting.py
from chess_annotator.core.formatting import (classification_colour, classification_label,
                                             evaluation_bar_fraction,
                                             explanation_with_classification,
                                             format_evaluation)
from chess_annotator.types import Evaluation, MoveClassification


def test_format_evaluation():
    assert format_evaluation(None) == "..."
    assert format_evaluation(Evaluation(loading=True)) == "..."
    assert format_evaluation(Evaluation(score=1.234)) == "+1.2"
    assert format_evaluation(Evaluation(score=-0.46)) == "-0.5"
    assert format_evaluation(Evaluation(score=0.0)) == "0.0"
    assert format_evaluation(Evaluation(score=-0.0)) == "0.0"
    assert format_evaluation(Evaluation(score=-0.03)) == "0.0"
    assert format_evaluation(Evaluation(score=10.0, mate=-3)) == "M3"


def test_evaluation_bar_fraction_clamps():
    assert evaluation_bar_fraction(Evaluation(score=0.0)) == 0.5
    assert evaluation_bar_fraction(Evaluation(score=2.5)) == 0.75
    assert evaluation_bar_fraction(Evaluation(score=9.0)) == 1.0
    assert evaluation_bar_fraction(Evaluation(score=-10.0, mate=-1)) == 0.0
    assert evaluation_bar_fraction(Evaluation(loading=True)) == 0.5


def test_labels_and_colours():
    assert classification_label(MoveClassification.BOOK) == "Book Move"
    assert classification_label(None) == ""
    assert classification_colour(MoveClassification.BLUNDER) == "#8B0000"
    assert classification_colour(None) is None
    assert all(classification_label(c) for c in MoveClassification)


def test_explanation_with_classification():
    assert explanation_with_classification("White castles.", None) == "White castles."
    assert explanation_with_classification("White hangs the queen.", MoveClassification.BLUNDER) == \
        "Blunder: White hangs the queen."
