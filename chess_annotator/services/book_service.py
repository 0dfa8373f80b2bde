# chess_annotator/services/book_service.py
"""
Provides the opening-book collaborator backed by the Lichess opening explorer.

A position counts as "book" when the explorer knows at least one master-level
continuation from it. Only the first four FEN fields (placement, side to move,
castling, en passant) are sent, since the move counters are irrelevant to the
book and would only fragment the lookup.
"""

from typing import Any, Dict, Optional

import httpx
import structlog

from chess_annotator.exceptions import BookLookupError
from chess_annotator.types import FEN, BookLookupResult
from chess_annotator.utils.retry import retry_with_backoff

logger = structlog.get_logger(__name__)

DEFAULT_OPENING_NAME = "Opening Book Move"


def book_key(fen: FEN) -> str:
    """Reduces a FEN to the four fields the explorer is keyed by."""
    return " ".join(fen.split()[:4])


def interpret_explorer_response(payload: Dict[str, Any]) -> BookLookupResult:
    """
    Turns an explorer JSON body into a `BookLookupResult`.

    An empty (or missing) `moves` list means the position is out of book.
    """
    moves = payload.get("moves") or []
    if not moves:
        return BookLookupResult(is_book=False)

    first = moves[0] or {}
    name = None
    if first.get("game"):
        name = (first.get("opening") or {}).get("name")
    if name is None:
        # The live explorer reports the opening at the top level.
        name = (payload.get("opening") or {}).get("name")
    return BookLookupResult(is_book=True, opening_name=name or DEFAULT_OPENING_NAME)


class LichessBookService:
    """
    An async client for the explorer's masters database.

    The client is created lazily and must be closed with `close()` (or by
    using the service as an async context manager).
    """

    def __init__(self, base_url: str, timeout_s: float = 5.0, retry_attempts: int = 2,
                 client: Optional[httpx.AsyncClient] = None):
        self._base_url = base_url
        self._timeout_s = timeout_s
        self._client = client
        self._owns_client = client is None
        self._fetch = retry_with_backoff(
            attempts=retry_attempts,
            initial_backoff_s=0.25,
            max_backoff_s=1.0,
            exceptions_to_catch=(httpx.TransportError,),
        )(self._fetch_once)

    async def __aenter__(self) -> "LichessBookService":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout_s)
        return self._client

    async def _fetch_once(self, key: str) -> Dict[str, Any]:
        response = await self._get_client().get(
            self._base_url, params={"fen": key, "moves": 1, "topGames": 0}
        )
        response.raise_for_status()
        return response.json()

    async def lookup(self, fen: FEN) -> BookLookupResult:
        """
        Asks the explorer whether `fen` is a known book position.

        Raises:
            BookLookupError: If the service is unreachable or answers with an
                             error status or a non-JSON body.
        """
        key = book_key(fen)
        try:
            payload = await self._fetch(key)
        except (httpx.HTTPError, ValueError) as e:
            raise BookLookupError(f"Opening book lookup failed: {e}") from e

        result = interpret_explorer_response(payload)
        logger.debug("Book lookup complete.", fen=key, is_book=result.is_book, opening=result.opening_name)
        return result

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None


class DisabledBookService:
    """Stands in for the explorer when book lookups are switched off."""

    async def lookup(self, fen: FEN) -> BookLookupResult:
        return BookLookupResult(is_book=False)

    async def close(self) -> None:
        return None
