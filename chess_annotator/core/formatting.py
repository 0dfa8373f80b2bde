# chess_annotator/core/formatting.py
"""
Pure helpers that turn evaluations and classifications into display values.

Nothing here renders anything; these functions produce the strings, colours
and fractions a board view or the CLI needs.
"""

from typing import Dict, Final, Optional

from chess_annotator.types import Evaluation, MoveClassification

# The evaluation bar saturates at +/- this many pawns.
EVAL_BAR_LIMIT: Final[float] = 5.0

CLASSIFICATION_LABELS: Final[Dict[MoveClassification, str]] = {
    MoveClassification.BOOK: "Book Move",
    MoveClassification.BEST: "Best Move",
    MoveClassification.BRILLIANT: "Brilliant",
    MoveClassification.GREAT: "Great Move",
    MoveClassification.EXCELLENT: "Excellent",
    MoveClassification.GOOD: "Good",
    MoveClassification.INACCURACY: "Inaccuracy",
    MoveClassification.MISTAKE: "Mistake",
    MoveClassification.MISS: "Miss",
    MoveClassification.BLUNDER: "Blunder",
    MoveClassification.FORCED: "Forced",
}

CLASSIFICATION_COLOURS: Final[Dict[MoveClassification, str]] = {
    MoveClassification.BOOK: "#8A2BE2",
    MoveClassification.BEST: "#1E90FF",
    MoveClassification.BRILLIANT: "#FFD700",
    MoveClassification.GREAT: "#32CD32",
    MoveClassification.EXCELLENT: "#3CB371",
    MoveClassification.GOOD: "#90EE90",
    MoveClassification.INACCURACY: "#FFA500",
    MoveClassification.MISTAKE: "#FF4500",
    MoveClassification.MISS: "#FF0000",
    MoveClassification.BLUNDER: "#8B0000",
    MoveClassification.FORCED: "#808080",
}


def format_evaluation(evaluation: Optional[Evaluation]) -> str:
    """
    Renders an evaluation the way the evaluation bar labels it.

    Returns "..." while a search is pending, "M<n>" for a forced mate and a
    pawn value with one decimal otherwise, signed only when it is not zero.
    """
    if evaluation is None or evaluation.loading:
        return "..."
    if evaluation.error is not None:
        return "?"
    if evaluation.mate is not None:
        return f"M{abs(evaluation.mate)}"
    text = f"{evaluation.score:.1f}"
    if text in ("0.0", "-0.0"):
        return "0.0"
    return f"+{text}" if evaluation.score > 0 else text


def evaluation_bar_fraction(evaluation: Optional[Evaluation]) -> float:
    """The share of the bar (0..1) that belongs to White."""
    if evaluation is None or evaluation.loading or evaluation.error is not None:
        return 0.5
    clamped = max(-EVAL_BAR_LIMIT, min(EVAL_BAR_LIMIT, evaluation.score))
    return (clamped + EVAL_BAR_LIMIT) / (2 * EVAL_BAR_LIMIT)


def classification_label(classification: Optional[MoveClassification]) -> str:
    if classification is None:
        return ""
    return CLASSIFICATION_LABELS[classification]


def classification_colour(classification: Optional[MoveClassification]) -> Optional[str]:
    if classification is None:
        return None
    return CLASSIFICATION_COLOURS[classification]


def explanation_with_classification(explanation: str, classification: Optional[MoveClassification]) -> str:
    """Prefixes an explanation with its classification label, e.g. "Blunder: ..."."""
    if classification is None:
        return explanation
    return f"{CLASSIFICATION_LABELS[classification]}: {explanation}"
