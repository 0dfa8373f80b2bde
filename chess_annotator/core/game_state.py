# chess_annotator/core/game_state.py
"""
Provides pure, stateless functions for material counting and for bucketing an
evaluation into a qualitative position state.

This module acts as the "math library" for the classifier and the explanation
generator. It works on the 8x8 `BoardGrid` reported by the rules collaborator,
so it never needs a chess library of its own.
"""

from typing import Dict, Final

from chess_annotator.types import (BoardGrid, GameStateContext, MaterialCount,
                                   PieceColor, PieceKind, PositionState)

# Standard pawn-unit values; bishops are rated slightly above knights.
PIECE_VALUES: Final[Dict[PieceKind, float]] = {
    PieceKind.PAWN: 1.0,
    PieceKind.KNIGHT: 3.0,
    PieceKind.BISHOP: 3.25,
    PieceKind.ROOK: 5.0,
    PieceKind.QUEEN: 9.0,
    PieceKind.KING: 0.0,
}

# Lower bounds of each bucket, checked from the top down.
WINNING_THRESHOLD: Final[float] = 3.0
BETTER_THRESHOLD: Final[float] = 1.0
EQUAL_THRESHOLD: Final[float] = -1.0
WORSE_THRESHOLD: Final[float] = -3.0


def count_material(grid: BoardGrid) -> MaterialCount:
    """
    Counts every piece on the board, per colour and per piece kind.

    Args:
        grid: The 8x8 board as reported by `RulesService.board`.

    Returns:
        A `MaterialCount` whose dictionaries contain an entry for every kind,
        including zero counts.
    """
    white = {kind: 0 for kind in PieceKind}
    black = {kind: 0 for kind in PieceKind}
    for row in grid:
        for square in row:
            if square is None:
                continue
            target = white if square.color == PieceColor.WHITE else black
            target[square.kind] += 1
    return MaterialCount(white=white, black=black)


def material_value(count: MaterialCount, color: PieceColor) -> float:
    """Total pawn-unit value of one side's pieces."""
    return sum(PIECE_VALUES[kind] * n for kind, n in count.for_color(color).items())


def material_balance(grid: BoardGrid, perspective: PieceColor = PieceColor.WHITE) -> float:
    """
    Material difference (own minus opponent) from `perspective`.
    """
    count = count_material(grid)
    other = PieceColor.BLACK if perspective == PieceColor.WHITE else PieceColor.WHITE
    return round(material_value(count, perspective) - material_value(count, other), 2)


def qualitative_state(evaluation: float) -> PositionState:
    """
    Buckets a White-perspective evaluation in pawns into a `PositionState`.

    The bucket is always taken from White's framing, even when the move being
    judged was Black's.
    """
    if evaluation >= WINNING_THRESHOLD:
        return PositionState.WINNING
    if evaluation >= BETTER_THRESHOLD:
        return PositionState.BETTER
    if evaluation >= EQUAL_THRESHOLD:
        return PositionState.EQUAL
    if evaluation >= WORSE_THRESHOLD:
        return PositionState.WORSE
    return PositionState.LOSING


def build_state_context(evaluation: float, grid: BoardGrid) -> GameStateContext:
    """Bundles an evaluation with its bucket and White's material balance."""
    return GameStateContext(
        evaluation=evaluation,
        state=qualitative_state(evaluation),
        material_balance=material_balance(grid, PieceColor.WHITE),
    )


def material_change_for_mover(before: BoardGrid, after: BoardGrid, mover: PieceColor) -> float:
    """
    How much the mover's net material moved between two positions.

    Negative values mean the mover ended up with less material relative to
    the opponent than before.
    """
    return round(material_balance(after, mover) - material_balance(before, mover), 2)
