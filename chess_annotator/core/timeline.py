# chess_annotator/core/timeline.py
"""
Defines `GameTimeline`, the navigable history of an imported game.

A timeline holds positions P[0..N] and moves M[0..N-1], with
`len(positions) == len(moves) + 1`, and a cursor in [0, N]. Navigation never
fails: every transition clamps into range. Only `ReplayBuilder` creates
timelines with moves; `reset` collapses one back to its first position.
"""

from typing import List, Optional

from chess_annotator.types import FEN, TimelineMove


class GameTimeline:
    def __init__(self, positions: List[FEN], moves: List[TimelineMove],
                 headers: Optional[dict] = None, initial_note: Optional[str] = None):
        if not positions:
            raise ValueError("A timeline needs at least one position.")
        if len(positions) != len(moves) + 1:
            raise ValueError(
                f"Timeline has {len(positions)} positions for {len(moves)} moves; "
                "expected exactly one more position than moves."
            )
        self._positions = list(positions)
        self._moves = list(moves)
        self._current_index = 0
        self.headers = dict(headers or {})
        self.initial_note = initial_note

    @classmethod
    def single(cls, fen: FEN, initial_note: Optional[str] = None) -> "GameTimeline":
        return cls([fen], [], initial_note=initial_note)

    @property
    def positions(self) -> List[FEN]:
        return list(self._positions)

    @property
    def moves(self) -> List[TimelineMove]:
        return list(self._moves)

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def last_index(self) -> int:
        return len(self._moves)

    @property
    def current_fen(self) -> FEN:
        return self._positions[self._current_index]

    def __len__(self) -> int:
        return len(self._positions)

    # --- Transitions ---

    def next(self) -> int:
        return self.goto(self._current_index + 1)

    def prev(self) -> int:
        return self.goto(self._current_index - 1)

    def goto(self, index: int) -> int:
        self._current_index = max(0, min(index, self.last_index))
        return self._current_index

    def reset(self) -> None:
        """Discards every move and keeps only the initial position."""
        self._positions = self._positions[:1]
        self._moves = []
        self._current_index = 0

    # --- Lookups ---

    def move_for_index(self, index: int) -> Optional[TimelineMove]:
        """The move that produced position `index`; `None` for the initial position."""
        if index <= 0 or index > self.last_index:
            return None
        return self._moves[index - 1]

    def current_move(self) -> Optional[TimelineMove]:
        return self.move_for_index(self._current_index)
