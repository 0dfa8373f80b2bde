# chess_annotator/types.py
"""
A central module for shared data structures and service interfaces (Protocols).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import (AsyncIterator, Awaitable, Callable, Dict, List, Optional, Protocol,
                    TypeAlias, runtime_checkable)

FEN: TypeAlias = str
UciMove: TypeAlias = str

class PieceColor(str, Enum):
    WHITE = "w"; BLACK = "b"

class PieceKind(str, Enum):
    PAWN = "p"; KNIGHT = "n"; BISHOP = "b"; ROOK = "r"; QUEEN = "q"; KING = "k"

class MoveClassification(str, Enum):
    BOOK = "book"; BEST = "best"; BRILLIANT = "brilliant"; GREAT = "great"
    EXCELLENT = "excellent"; GOOD = "good"; INACCURACY = "inaccuracy"
    MISTAKE = "mistake"; MISS = "miss"; BLUNDER = "blunder"; FORCED = "forced"

class PositionState(str, Enum):
    WINNING = "winning"; BETTER = "better"; EQUAL = "equal"
    WORSE = "worse"; LOSING = "losing"


# --- DATA CONTRACTS ---

@dataclass(frozen=True, slots=True)
class PieceInfo:
    kind: PieceKind; color: PieceColor

# An 8x8 grid indexed [rank_from_top][file]; row 0 is the eighth rank, as in FEN.
BoardGrid: TypeAlias = List[List[Optional[PieceInfo]]]

@dataclass(frozen=True, slots=True)
class Evaluation:
    """
    A single engine verdict, always from White's perspective.

    `score` is in pawns. When `mate` is set, `score` carries the display
    value of a forced mate (+/-10).
    """
    score: float = 0.0
    mate: Optional[int] = None
    loading: bool = False
    error: Optional[str] = None
    fen: Optional[FEN] = None
    depth: Optional[int] = None
    is_final: bool = False

@dataclass(frozen=True, slots=True)
class MaterialCount:
    white: Dict[PieceKind, int]; black: Dict[PieceKind, int]

    def for_color(self, color: PieceColor) -> Dict[PieceKind, int]:
        return self.white if color == PieceColor.WHITE else self.black

@dataclass(frozen=True, slots=True)
class GameStateContext:
    evaluation: float; state: PositionState; material_balance: float

@dataclass(frozen=True, slots=True)
class ClassificationResult:
    classification: MoveClassification; confidence: float

@dataclass(frozen=True, slots=True)
class MoveDescriptor:
    san: str
    from_square: Optional[str] = None
    to_square: Optional[str] = None
    promotion: Optional[str] = None
    comment: Optional[str] = None

@dataclass(frozen=True)
class ParsedGameInput:
    headers: Dict[str, str]; initial_fen: FEN; descriptors: List[MoveDescriptor]

@dataclass(frozen=True, slots=True)
class AppliedMove:
    """What the rules collaborator reports after a legal application."""
    san: str; uci: UciMove; from_square: str; to_square: str
    promotion: Optional[PieceKind]; resulting_fen: FEN

@dataclass(frozen=True, slots=True)
class BookLookupResult:
    is_book: bool; opening_name: Optional[str] = None

@dataclass(frozen=True, slots=True)
class SearchOutcome:
    """The end of one `go` round trip: the engine's best move plus its last score."""
    best_move: Optional[UciMove]; evaluation: Optional[Evaluation]

@dataclass(frozen=True, slots=True)
class ScoredMove:
    best_move: Optional[UciMove]; best_score: Optional[float]; move_score: Optional[float]


@dataclass
class TimelineMove:
    """
    One move of an imported game.

    Everything but the classification fields is fixed at import time. The
    pipeline writes the classification once through `record_classification`;
    a user may later overwrite it with `annotate` or wipe it with
    `clear_classification`.
    """
    from_square: str
    to_square: str
    san: str
    uci: UciMove
    resulting_fen: FEN
    explanation: Optional[str] = None
    classification: Optional[MoveClassification] = None
    confidence: Optional[float] = None
    engine_best_move: Optional[UciMove] = None
    engine_best_score: Optional[float] = None
    engine_move_score: Optional[float] = None
    opening_name: Optional[str] = None

    @property
    def is_classified(self) -> bool:
        return self.classification is not None

    def record_classification(
        self,
        result: ClassificationResult,
        scored: Optional[ScoredMove] = None,
        opening_name: Optional[str] = None,
    ) -> None:
        if self.classification is not None:
            raise ValueError(f"Move {self.san} is already classified as {self.classification.value}.")
        self.classification = result.classification
        self.confidence = result.confidence
        self.opening_name = opening_name
        if scored is not None:
            self.engine_best_move = scored.best_move
            self.engine_best_score = scored.best_score
            self.engine_move_score = scored.move_score

    def annotate(self, classification: MoveClassification, confidence: float = 1.0) -> None:
        self.classification = classification
        self.confidence = confidence

    def clear_classification(self) -> None:
        self.classification = None
        self.confidence = None
        self.engine_best_move = None
        self.engine_best_score = None
        self.engine_move_score = None
        self.opening_name = None

@dataclass(frozen=True, slots=True)
class PositionView:
    """What the controller hands to a display after a navigation step."""
    index: int; fen: FEN; move: Optional[TimelineMove]; explanation_text: str
    cached_evaluation: Optional[Evaluation] = None

@dataclass
class ClassificationReport:
    total: int; classified: int = 0; book: int = 0
    skipped: List[int] = field(default_factory=list)


# --- PROTOCOLS: Abstract Interfaces for Collaborators ---

ProgressCallback = Callable[[int, int], Awaitable[None]]

@runtime_checkable
class RulesService(Protocol):
    """The narrow contract this package needs from a chess rules engine."""
    def apply(self, fen: FEN, descriptor: MoveDescriptor) -> Optional[AppliedMove]: ...
    def board(self, fen: FEN) -> BoardGrid: ...
    def turn(self, fen: FEN) -> PieceColor: ...
    def in_check(self, fen: FEN) -> bool: ...
    def is_checkmate(self, fen: FEN) -> bool: ...
    def legal_moves(self, fen: FEN) -> List[UciMove]: ...
    def normalize_fen(self, fen: FEN) -> FEN: ...

@runtime_checkable
class BookService(Protocol):
    async def lookup(self, fen: FEN) -> BookLookupResult: ...

@runtime_checkable
class EngineChannel(Protocol):
    """An ordered, bidirectional line channel to an engine process."""
    async def open(self) -> None: ...
    async def send(self, line: str) -> None: ...
    def lines(self) -> AsyncIterator[str]: ...
    async def close(self) -> None: ...
