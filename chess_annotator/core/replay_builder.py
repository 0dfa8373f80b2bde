# chess_annotator/core/replay_builder.py
"""
Turns an initial position plus move descriptors into a `GameTimeline`.

Each descriptor is applied through the rules collaborator. A descriptor that
cannot be applied is logged and skipped rather than aborting the import, so
the move list may come out shorter than the input and source comments after
the gap may no longer line up with the moves they were written for.
"""

from typing import Final, List, Optional, Sequence

import structlog

from chess_annotator.core.explanation_generator import ExplanationGenerator
from chess_annotator.core.timeline import GameTimeline
from chess_annotator.exceptions import IllegalMoveError
from chess_annotator.types import (FEN, MoveDescriptor, ParsedGameInput,
                                   RulesService, TimelineMove)

logger = structlog.get_logger(__name__)

IMPORTED_POSITION_NOTE: Final = "This is an imported position from a FEN string."


class ReplayBuilder:
    def __init__(self, rules: RulesService, explainer: ExplanationGenerator):
        self._rules = rules
        self._explainer = explainer

    def _apply_one(self, fen: FEN, descriptor: MoveDescriptor, ply: int) -> TimelineMove:
        applied = self._rules.apply(fen, descriptor)
        if applied is None:
            raise IllegalMoveError(f"Move {descriptor.san!r} is illegal at ply {ply}.", san=descriptor.san)

        explanation = descriptor.comment or self._explainer.explain(fen, applied)
        return TimelineMove(
            from_square=applied.from_square,
            to_square=applied.to_square,
            san=applied.san,
            uci=applied.uci,
            resulting_fen=applied.resulting_fen,
            explanation=explanation,
        )

    def build_timeline(self, initial_fen: FEN, descriptors: Sequence[MoveDescriptor],
                       headers: Optional[dict] = None) -> GameTimeline:
        """
        Replays `descriptors` from `initial_fen`.

        Returns:
            A timeline anchored at index 0 holding every move that could be
            applied.
        """
        positions: List[FEN] = [initial_fen]
        moves: List[TimelineMove] = []
        skipped = 0

        for ply, descriptor in enumerate(descriptors):
            try:
                move = self._apply_one(positions[-1], descriptor, ply)
            except IllegalMoveError as e:
                skipped += 1
                logger.warning("Skipping illegal move during replay.", san=e.san, ply=ply, fen=positions[-1])
                continue
            moves.append(move)
            positions.append(move.resulting_fen)

        logger.info("Replay built.", moves=len(moves), skipped=skipped)
        return GameTimeline(positions, moves, headers=headers)

    def build_from_parsed(self, parsed: ParsedGameInput) -> GameTimeline:
        return self.build_timeline(parsed.initial_fen, parsed.descriptors, headers=parsed.headers)

    def build_position_timeline(self, fen: FEN) -> GameTimeline:
        """
        A single-position timeline for a FEN import.

        Raises:
            ValueError: If the FEN is not a valid position.
        """
        normalized = self._rules.normalize_fen(fen)
        return GameTimeline.single(normalized, initial_note=IMPORTED_POSITION_NOTE)
