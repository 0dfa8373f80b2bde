# chess_annotator/services/pgn_service.py
"""
Provides a service for turning PGN text into move descriptors.

This module is the PGN collaborator of the replay builder. It delegates the
tokenizing to `chess.pgn` and collects the package's own `ParsedGameInput`
contract through a visitor: a header dictionary, the initial FEN (honouring
`[FEN]`/`[SetUp]` tags) and an ordered list of `MoveDescriptor`s for the main
line. Side variations are skipped.

Legality is judged by the replay builder, not here. When a main-line move
cannot be read, `chess.pgn` would abandon the rest of the line; the collector
instead keeps every later move token as a bare SAN descriptor. Only an input
that cannot be read as a game at all is rejected with `ImportFormatError`.
"""

import dataclasses
import io
from pathlib import Path
from typing import Dict, List, Optional

import aiofiles
import chess
import chess.pgn
import structlog

from chess_annotator.exceptions import ImportFormatError
from chess_annotator.types import MoveDescriptor, ParsedGameInput

logger = structlog.get_logger(__name__)


class MainlineCollector(chess.pgn.BaseVisitor[Optional[ParsedGameInput]]):
    """
    A `chess.pgn` visitor that records every main-line move token.

    Moves are resolved against the parser's board until the first token that
    does not read as a legal move. That token is kept verbatim, a null move
    stands in for it so the parser keeps going, and every later token is kept
    verbatim without being parsed. `result()` is `None` when the game header
    itself was unusable (for example an invalid `[FEN]` tag).
    """

    def begin_game(self) -> None:
        self.headers: Dict[str, str] = {}
        self.descriptors: List[MoveDescriptor] = []
        self.errors: List[Exception] = []
        self._initial_fen: Optional[str] = None
        self._desynced = False

    def visit_header(self, tagname: str, tagvalue: str) -> None:
        self.headers[tagname] = tagvalue

    def visit_board(self, board: chess.Board) -> None:
        if self._initial_fen is None:
            self._initial_fen = board.fen()

    def begin_variation(self) -> chess.pgn.SkipType:
        return chess.pgn.SKIP

    def begin_parse_san(self, board: chess.Board, san: str) -> Optional[chess.pgn.SkipType]:
        if self._desynced:
            self.descriptors.append(MoveDescriptor(san=san))
            return chess.pgn.SKIP
        return None

    def parse_san(self, board: chess.Board, san: str) -> chess.Move:
        try:
            return board.parse_san(san)
        except ValueError as e:
            logger.warning("PGN move could not be read; keeping the remaining moves verbatim.",
                           san=san, ply=len(self.descriptors) + 1, error=str(e))
            self.errors.append(e)
            self._desynced = True
            self.descriptors.append(MoveDescriptor(san=san))
            return chess.Move.null()

    def visit_move(self, board: chess.Board, move: chess.Move) -> None:
        if self._desynced:
            return
        self.descriptors.append(
            MoveDescriptor(
                san=board.san(move),
                from_square=chess.square_name(move.from_square),
                to_square=chess.square_name(move.to_square),
                promotion=chess.piece_symbol(move.promotion) if move.promotion else None,
            )
        )

    def visit_comment(self, comment: str) -> None:
        comment = comment.strip()
        # A comment before the first move belongs to the game, not a move.
        if not comment or not self.descriptors:
            return
        last = self.descriptors[-1]
        joined = f"{last.comment} {comment}" if last.comment else comment
        self.descriptors[-1] = dataclasses.replace(last, comment=joined)

    def handle_error(self, error: Exception) -> None:
        logger.warning("PGN header could not be used.", error=str(error))
        self.errors.append(error)

    def result(self) -> Optional[ParsedGameInput]:
        if self._initial_fen is None:
            return None
        return ParsedGameInput(
            headers=dict(self.headers),
            initial_fen=self._initial_fen,
            descriptors=list(self.descriptors),
        )


class PgnService:
    """A stateless service for PGN parsing and file loading."""

    def parse(self, pgn_text: str) -> ParsedGameInput:
        """
        Parses the first game of a PGN document.

        Args:
            pgn_text: The raw PGN text.

        Returns:
            The game's headers, starting position and main-line descriptors.
            Moves that are illegal in context are still returned; the replay
            builder skips them.

        Raises:
            ImportFormatError: If the text is empty, holds no game, or its
                               starting position cannot be set up.
        """
        if not pgn_text or not pgn_text.strip():
            raise ImportFormatError("PGN input is empty.")

        try:
            parsed = chess.pgn.read_game(io.StringIO(pgn_text), Visitor=MainlineCollector)
        except (ValueError, RuntimeError) as e:
            raise ImportFormatError(f"PGN input could not be parsed: {e}") from e

        if parsed is None:
            raise ImportFormatError("PGN input does not contain a usable game.")
        return parsed

    async def load_file(self, pgn_filepath: Path) -> ParsedGameInput:
        """
        Reads a PGN file without blocking the event loop and parses its first game.

        Raises:
            ImportFormatError: If the file cannot be read or parsed.
        """
        try:
            async with aiofiles.open(pgn_filepath, "r", encoding="utf-8", errors="replace") as f:
                text = await f.read()
        except OSError as e:
            raise ImportFormatError(f"Could not read PGN file {pgn_filepath}: {e}") from e
        return self.parse(text)
