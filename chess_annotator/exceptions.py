# chess_annotator/exceptions.py
"""
Defines custom exceptions for the chess annotator.

Centralizing exceptions in this module prevents circular dependencies that can
arise when different components need to catch errors defined in others. A clear
exception hierarchy, with a common `ChessAnnotatorError` base, allows callers to
isolate per-move failures while letting whole-import failures surface.
"""

from typing import Optional


class ChessAnnotatorError(Exception):
    """Base class for all application-specific, catchable errors."""
    pass


class EngineError(ChessAnnotatorError):
    """
    Base class for errors related to the analysis engine subprocess.

    Attributes:
        fen: The target position the session was working on, if known.
    """
    def __init__(self, message: str, fen: Optional[str] = None):
        super().__init__(message)
        self.fen = fen


class EngineInitializationError(EngineError):
    """
    Raised when the engine process cannot be started or never completes the
    UCI handshake (`uciok` / `readyok`).
    """
    pass


class EngineProtocolError(EngineError):
    """
    Raised for an unparsable or unexpected engine message.

    The session itself never lets this escape during normal operation; it is
    converted into an `Evaluation` with `error` set.
    """
    pass


class EngineTimeout(EngineError):
    """Raised when a search exceeds its deadline during classification."""
    pass


class EngineSearchCancelled(EngineError):
    """Raised when an in-flight search was stopped before it reported a best move."""
    pass


class IllegalMoveError(ChessAnnotatorError):
    """Raised when a move descriptor cannot be applied to the current position."""

    def __init__(self, message: str, san: Optional[str] = None):
        super().__init__(message)
        self.san = san


class BookLookupError(ChessAnnotatorError):
    """Raised when the opening book service is unreachable or answers garbage."""
    pass


class ImportFormatError(ChessAnnotatorError):
    """
    Raised when an import input (PGN or FEN) cannot be parsed at all.

    This is the only failure surfaced to the caller as a hard error; the
    previously loaded timeline stays untouched.
    """
    pass
