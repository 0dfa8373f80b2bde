# chess_annotator/core/move_classifier.py
"""
Contains the central classification rules of the application.

`classify` is a pure decision function. Its rules live in a data-driven,
priority-ordered table (`CLASSIFICATION_RULES`); the first rule whose
predicate holds decides the bucket, and each bucket carries a fixed
confidence. Book moves never reach this module: they are decided upstream by
the opening lookup.
"""
from dataclasses import dataclass
from typing import Callable, Final, List, Sequence

from chess_annotator.types import (ClassificationResult, MoveClassification,
                                   PositionState, UciMove)

# A sacrifice must cost more than this much net material...
SACRIFICE_MATERIAL_THRESHOLD: Final[float] = -1.0
# ...while the engine judges it to lose less than a pawn.
SACRIFICE_MAX_LOSS: Final[float] = 1.0
# Fewer legal moves than this makes a move "forced".
FORCED_LEGAL_MOVE_LIMIT: Final[int] = 3


@dataclass(frozen=True, slots=True)
class MoveFacts:
    """Everything `classify` looks at, bundled for the rule predicates."""
    centipawn_loss: float
    material_change: float
    state_before: PositionState
    state_after: PositionState
    is_best_move: bool
    is_forced: bool
    is_sacrifice: bool


@dataclass(frozen=True, slots=True)
class ClassificationRule:
    classification: MoveClassification
    confidence: float
    predicate: Callable[[MoveFacts], bool]


# Evaluated top to bottom; the first matching rule wins.
CLASSIFICATION_RULES: Final[List[ClassificationRule]] = [
    ClassificationRule(
        MoveClassification.BRILLIANT, 0.9,
        lambda f: f.is_sacrifice and f.centipawn_loss < 0.5 and f.material_change < -1,
    ),
    ClassificationRule(MoveClassification.BEST, 0.95, lambda f: f.is_best_move or f.centipawn_loss < 0.1),
    ClassificationRule(MoveClassification.FORCED, 0.9, lambda f: f.is_forced),
    ClassificationRule(MoveClassification.GREAT, 0.8, lambda f: f.centipawn_loss < 0.25),
    ClassificationRule(MoveClassification.EXCELLENT, 0.7, lambda f: f.centipawn_loss < 0.5),
    ClassificationRule(MoveClassification.GOOD, 0.6, lambda f: f.centipawn_loss < 1.0),
    # A flagged sacrifice that went wrong grades by loss alone, never as a miss.
    ClassificationRule(
        MoveClassification.MISS, 0.8,
        lambda f: f.state_before == PositionState.WINNING and f.centipawn_loss > 2.0 and not f.is_sacrifice,
    ),
    ClassificationRule(MoveClassification.INACCURACY, 0.7, lambda f: f.centipawn_loss < 2.0),
    ClassificationRule(MoveClassification.MISTAKE, 0.8, lambda f: f.centipawn_loss < 4.0),
]

BLUNDER_CONFIDENCE: Final[float] = 0.9


def classify(
    centipawn_loss: float,
    material_change: float,
    state_before: PositionState,
    state_after: PositionState,
    is_best_move: bool,
    is_forced: bool,
    is_sacrifice: bool,
) -> ClassificationResult:
    """
    Classifies a single non-book move.

    Args:
        centipawn_loss: Non-negative loss in pawns against the engine's best move,
                        oriented to the mover.
        material_change: Mover's net material change in pawns.
        state_before: Qualitative state before the move.
        state_after: Qualitative state after the move.
        is_best_move: Whether the played move equals the engine's best move.
        is_forced: See `is_forced_move`.
        is_sacrifice: See `is_sacrifice`.

    Returns:
        The first matching bucket with its fixed confidence; `blunder` when
        nothing else matched.
    """
    if centipawn_loss < 0:
        raise ValueError(f"centipawn_loss must be non-negative, got {centipawn_loss}.")

    facts = MoveFacts(
        centipawn_loss=centipawn_loss,
        material_change=material_change,
        state_before=state_before,
        state_after=state_after,
        is_best_move=is_best_move,
        is_forced=is_forced,
        is_sacrifice=is_sacrifice,
    )
    for rule in CLASSIFICATION_RULES:
        if rule.predicate(facts):
            return ClassificationResult(rule.classification, rule.confidence)
    return ClassificationResult(MoveClassification.BLUNDER, BLUNDER_CONFIDENCE)


def is_forced_move(in_check_before: bool, delivers_mate: bool, legal_moves: Sequence[UciMove]) -> bool:
    """A move is forced when the mover was in check, it mates, or there was hardly a choice."""
    return in_check_before or delivers_mate or len(legal_moves) < FORCED_LEGAL_MOVE_LIMIT


def is_sacrifice(material_change: float, centipawn_loss: float) -> bool:
    """Material given up for compensation the engine agrees with."""
    return material_change < SACRIFICE_MATERIAL_THRESHOLD and centipawn_loss < SACRIFICE_MAX_LOSS


def centipawn_loss(best_score: float, played_score: float, mover_is_white: bool) -> float:
    """
    Loss in pawns of the played move against the best move, from the mover's side.

    Both scores are White-perspective; the difference is flipped for Black
    and clamped at zero.
    """
    sign = 1.0 if mover_is_white else -1.0
    return max(0.0, round(sign * (best_score - played_score), 4))
