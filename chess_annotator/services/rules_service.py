# chess_annotator/services/rules_service.py
"""
Provides a concrete implementation of the `RulesService` protocol over
`python-chess`.

This module acts as an Anti-Corruption Layer: the rest of the package only
ever sees FEN strings, `MoveDescriptor`s, `AppliedMove`s and `BoardGrid`s, so
the rules engine can be swapped (or faked in tests) without touching the
replay, explanation or classification code.
"""

from typing import List, Optional

import chess
import structlog

from chess_annotator.types import (FEN, AppliedMove, BoardGrid, MoveDescriptor,
                                   PieceColor, PieceInfo, PieceKind, UciMove)

logger = structlog.get_logger(__name__)

_PIECE_KINDS = {
    chess.PAWN: PieceKind.PAWN,
    chess.KNIGHT: PieceKind.KNIGHT,
    chess.BISHOP: PieceKind.BISHOP,
    chess.ROOK: PieceKind.ROOK,
    chess.QUEEN: PieceKind.QUEEN,
    chess.KING: PieceKind.KING,
}


class ChessRulesService:
    """A stateless rules adapter; every call rebuilds a board from its FEN."""

    @staticmethod
    def _board(fen: FEN) -> chess.Board:
        return chess.Board(fen)

    def _resolve_move(self, board: chess.Board, descriptor: MoveDescriptor) -> Optional[chess.Move]:
        """
        Finds the legal move a descriptor refers to.

        SAN is authoritative; the from/to/promotion triple is only consulted
        when the SAN cannot be resolved (e.g. a parser that emits decorated or
        locale-specific SAN).
        """
        if descriptor.san:
            try:
                move = board.parse_san(descriptor.san)
            except ValueError:
                pass
            else:
                # Null moves ("--", "0000") are annotations, not moves.
                return move or None

        if descriptor.from_square and descriptor.to_square:
            try:
                promotion = chess.Piece.from_symbol(descriptor.promotion).piece_type if descriptor.promotion else None
                move = chess.Move(
                    chess.parse_square(descriptor.from_square),
                    chess.parse_square(descriptor.to_square),
                    promotion=promotion,
                )
            except ValueError:
                return None
            if move in board.legal_moves:
                return move
        return None

    def apply(self, fen: FEN, descriptor: MoveDescriptor) -> Optional[AppliedMove]:
        """
        Applies a descriptor to a position.

        Returns:
            The applied move with its resulting FEN, or `None` if the descriptor
            is illegal (or malformed) in this position.
        """
        board = self._board(fen)
        move = self._resolve_move(board, descriptor)
        if move is None:
            return None

        san = board.san(move)
        board.push(move)
        return AppliedMove(
            san=san,
            uci=move.uci(),
            from_square=chess.square_name(move.from_square),
            to_square=chess.square_name(move.to_square),
            promotion=_PIECE_KINDS[move.promotion] if move.promotion else None,
            resulting_fen=board.fen(),
        )

    def board(self, fen: FEN) -> BoardGrid:
        board = self._board(fen)
        grid: BoardGrid = []
        for rank in range(7, -1, -1):
            row = []
            for file in range(8):
                piece = board.piece_at(chess.square(file, rank))
                if piece is None:
                    row.append(None)
                else:
                    row.append(PieceInfo(
                        kind=_PIECE_KINDS[piece.piece_type],
                        color=PieceColor.WHITE if piece.color == chess.WHITE else PieceColor.BLACK,
                    ))
            grid.append(row)
        return grid

    def turn(self, fen: FEN) -> PieceColor:
        return PieceColor.WHITE if self._board(fen).turn == chess.WHITE else PieceColor.BLACK

    def in_check(self, fen: FEN) -> bool:
        return self._board(fen).is_check()

    def is_checkmate(self, fen: FEN) -> bool:
        return self._board(fen).is_checkmate()

    def legal_moves(self, fen: FEN) -> List[UciMove]:
        return [move.uci() for move in self._board(fen).legal_moves]

    def normalize_fen(self, fen: FEN) -> FEN:
        """
        Validates a FEN and returns python-chess's canonical rendering of it.

        Raises:
            ValueError: If the FEN is malformed or describes an impossible position.
        """
        board = self._board(fen.strip())
        if not board.is_valid():
            raise ValueError(f"Invalid position: {board.status()!r}")
        return board.fen()
