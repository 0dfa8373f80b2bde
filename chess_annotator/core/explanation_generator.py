# chess_annotator/core/explanation_generator.py
"""
Generates a short, human-readable explanation for a single move.

The generator is heuristic and best-effort. It follows a "Prepare, Decide,
Render" pattern: the facts about a move (the boards before and after, check
and mate status, capture, castling, promotion) are gathered once into a
`MoveContext`, then a priority-ordered chain of detectors is consulted and the
first one that recognises something renders the sentence. It is not a tactical
search; false negatives are expected.
"""

import math
from dataclasses import dataclass
from typing import Callable, Final, List, Optional, Tuple

from chess_annotator.core.game_state import PIECE_VALUES
from chess_annotator.types import (FEN, AppliedMove, BoardGrid, PieceColor,
                                   PieceKind, RulesService)

PIECE_NAMES: Final = {
    PieceKind.PAWN: "pawn",
    PieceKind.KNIGHT: "knight",
    PieceKind.BISHOP: "bishop",
    PieceKind.ROOK: "rook",
    PieceKind.QUEEN: "queen",
    PieceKind.KING: "king",
}

KNIGHT_OFFSETS: Final[Tuple[Tuple[int, int], ...]] = (
    (1, 2), (2, 1), (2, -1), (1, -2), (-1, -2), (-2, -1), (-2, 1), (-1, 2),
)
FORK_TARGETS: Final = (PieceKind.KING, PieceKind.QUEEN, PieceKind.ROOK)
# A king further than this from the centre of the board is considered tucked away.
SAFE_KING_DISTANCE: Final[float] = 2.0

FALLBACK_EXPLANATION: Final = "A move has been played."


def square_to_coords(square: str) -> Tuple[int, int]:
    """Maps an algebraic square ("e4") to `BoardGrid` indices (row, file)."""
    file = ord(square[0]) - ord("a")
    rank = int(square[1])
    return 8 - rank, file


def color_name(color: PieceColor, capitalize: bool = True) -> str:
    name = "white" if color == PieceColor.WHITE else "black"
    return name.capitalize() if capitalize else name


def _opponent(color: PieceColor) -> PieceColor:
    return PieceColor.BLACK if color == PieceColor.WHITE else PieceColor.WHITE


def _side_totals(grid: BoardGrid) -> Tuple[float, float]:
    white = black = 0.0
    for row in grid:
        for piece in row:
            if piece is None:
                continue
            if piece.color == PieceColor.WHITE:
                white += PIECE_VALUES[piece.kind]
            else:
                black += PIECE_VALUES[piece.kind]
    return white, black


# --- 1. PREPARE ---

@dataclass(frozen=True, slots=True)
class MoveContext:
    """Everything the detectors look at for one move."""
    mover: PieceColor
    move: AppliedMove
    board_before: BoardGrid
    board_after: BoardGrid
    gives_check: bool
    is_checkmate: bool

    @property
    def is_capture(self) -> bool:
        return "x" in self.move.san

    @property
    def is_castle(self) -> bool:
        return self.move.san.rstrip("+#") in ("O-O", "O-O-O")

    @property
    def moved_kind(self) -> Optional[PieceKind]:
        row, file = square_to_coords(self.move.to_square)
        piece = self.board_after[row][file]
        return piece.kind if piece is not None else None


@dataclass(frozen=True, slots=True)
class MaterialSwing:
    winner: PieceColor
    value: float
    description: str


def material_swing(before: BoardGrid, after: BoardGrid) -> Optional[MaterialSwing]:
    """
    Compares net material (White minus Black) between two boards.

    Returns:
        The side that gained, the absolute swing and a guess at what was
        captured from the value the loser gave up, or `None` if the net
        balance did not change.
    """
    white_before, black_before = _side_totals(before)
    white_after, black_after = _side_totals(after)
    net = round((white_after - black_after) - (white_before - black_before), 2)
    if net == 0:
        return None

    winner = PieceColor.WHITE if net > 0 else PieceColor.BLACK
    loser_delta = (black_after - black_before) if winner == PieceColor.WHITE else (white_after - white_before)
    description = _captured_description(-loser_delta, _opponent(winner)) if loser_delta < 0 else ""
    return MaterialSwing(winner=winner, value=abs(net), description=description)


def _captured_description(value: float, color: PieceColor) -> str:
    owner = color_name(color, capitalize=False)
    if value >= 9:
        return f"{owner}'s queen is captured"
    if value >= 5:
        return f"{owner}'s rook is captured"
    if value >= 3:
        return f"{owner}'s minor piece is captured"
    return f"{owner}'s pawn is captured"


def _format_material_value(value: float) -> str:
    return f"+{value:.1f}" if value >= 1 else f"{value:.1f}"


# --- 2. DECIDE & RENDER ---
# Each detector returns a finished sentence, or None to pass.

def _explain_checkmate(ctx: MoveContext) -> Optional[str]:
    return "Checkmate! The game is over." if ctx.is_checkmate else None


def _explain_promotion(ctx: MoveContext) -> Optional[str]:
    if ctx.move.promotion is None:
        return None
    return f"Pawn promotion! {color_name(ctx.mover)} promotes to a {PIECE_NAMES[ctx.move.promotion]}."


def _explain_castling(ctx: MoveContext) -> Optional[str]:
    if not ctx.is_castle:
        return None
    if ctx.move.san.startswith("O-O-O"):
        return f"{color_name(ctx.mover)} castles queenside, seeking king safety while preparing for an attack."
    return f"{color_name(ctx.mover)} castles kingside, improving king safety and connecting the rooks."


def _explain_material(ctx: MoveContext) -> Optional[str]:
    swing = material_swing(ctx.board_before, ctx.board_after)
    if swing is None:
        return None
    text = f"{color_name(swing.winner)} wins material!"
    if swing.description:
        text += f" {swing.description}"
    return f"{text} ({_format_material_value(swing.value)})"


def find_knight_fork(grid: BoardGrid, attacker: PieceColor) -> Optional[List[PieceKind]]:
    """
    Finds a knight of `attacker` hitting at least two of the opponent's king,
    queen and rooks.

    Returns:
        The attacked piece kinds in offset order, or `None`.
    """
    for row in range(8):
        for file in range(8):
            piece = grid[row][file]
            if piece is None or piece.kind != PieceKind.KNIGHT or piece.color != attacker:
                continue
            attacked = []
            for d_file, d_rank in KNIGHT_OFFSETS:
                r, f = row - d_rank, file + d_file
                if not (0 <= r < 8 and 0 <= f < 8):
                    continue
                target = grid[r][f]
                if target is not None and target.color != attacker and target.kind in FORK_TARGETS:
                    attacked.append(target.kind)
            if len(attacked) >= 2:
                return attacked
    return None


def _explain_fork(ctx: MoveContext) -> Optional[str]:
    attacked = find_knight_fork(ctx.board_after, ctx.mover)
    if attacked is None:
        return None
    targets = " and ".join(PIECE_NAMES[kind] for kind in attacked)
    return f"{color_name(ctx.mover)} creates a fork! A knight is forking the {targets}."


def _explain_pin(ctx: MoveContext) -> Optional[str]:
    # TODO: detect absolute pins along the line to the opposing king.
    return None


def _explain_skewer(ctx: MoveContext) -> Optional[str]:
    return None


def _explain_discovered_attack(ctx: MoveContext) -> Optional[str]:
    return None


def _explain_capture(ctx: MoveContext) -> Optional[str]:
    if not ctx.is_capture:
        return None
    row, file = square_to_coords(ctx.move.to_square)
    victim = ctx.board_before[row][file]
    if victim is None:
        # En passant: the captured pawn was not on the destination square.
        captured = "a piece"
    else:
        captured = f"{color_name(victim.color, capitalize=False)} {PIECE_NAMES[victim.kind]}"
    return f"{color_name(ctx.mover)} captures {captured}."


def _explain_check(ctx: MoveContext) -> Optional[str]:
    if not ctx.gives_check:
        return None
    return f"{color_name(ctx.mover)} gives check to the {color_name(_opponent(ctx.mover), capitalize=False)} king."


def _is_open_file(grid: BoardGrid, square: str) -> bool:
    _, file = square_to_coords(square)
    return all(row[file] is None or row[file].kind != PieceKind.PAWN for row in grid)


def _distance_from_centre(square: str) -> float:
    file = ord(square[0]) - ord("a")
    rank = int(square[1]) - 1
    return math.hypot(file - 3.5, rank - 3.5)


def _explain_by_piece(ctx: MoveContext) -> Optional[str]:
    side = color_name(ctx.mover)
    kind = PieceKind.KING if ctx.is_castle else ctx.moved_kind
    if kind == PieceKind.PAWN:
        return f"{side} advances a pawn to control more space."
    if kind == PieceKind.KNIGHT:
        return f"{side} develops a knight to a new square."
    if kind == PieceKind.BISHOP:
        return f"{side} repositions the bishop for better diagonal control."
    if kind == PieceKind.ROOK:
        quality = "open" if _is_open_file(ctx.board_after, ctx.move.to_square) else "active"
        return f"{side} moves the rook to an {quality} position."
    if kind == PieceKind.QUEEN:
        return f"{side} repositions the queen to apply pressure."
    if kind == PieceKind.KING:
        quality = "safer" if _distance_from_centre(ctx.move.to_square) > SAFE_KING_DISTANCE else "new"
        return f"{side} moves the king to a {quality} position."
    return None


EXPLANATION_CHAIN: Final[List[Callable[[MoveContext], Optional[str]]]] = [
    _explain_checkmate,
    _explain_promotion,
    _explain_castling,
    _explain_material,
    _explain_fork,
    _explain_pin,
    _explain_skewer,
    _explain_discovered_attack,
    _explain_capture,
    _explain_check,
    _explain_by_piece,
]


class ExplanationGenerator:
    """Builds `MoveContext`s through the rules collaborator and runs the chain."""

    def __init__(self, rules: RulesService):
        self._rules = rules

    def build_context(self, fen_before: FEN, move: AppliedMove) -> MoveContext:
        fen_after = move.resulting_fen
        return MoveContext(
            mover=self._rules.turn(fen_before),
            move=move,
            board_before=self._rules.board(fen_before),
            board_after=self._rules.board(fen_after),
            gives_check=self._rules.in_check(fen_after),
            is_checkmate=self._rules.is_checkmate(fen_after),
        )

    def explain(self, fen_before: FEN, move: AppliedMove) -> str:
        """
        Describes `move`, played from `fen_before`, in one sentence.

        Args:
            fen_before: The position the move was played in.
            move: The move as applied by the rules collaborator.

        Returns:
            The sentence of the first detector that fires, or a generic
            fallback.
        """
        ctx = self.build_context(fen_before, move)
        for detector in EXPLANATION_CHAIN:
            text = detector(ctx)
            if text is not None:
                return text
        return FALLBACK_EXPLANATION
