# chess_annotator/orchestration/analysis_controller.py
"""
Contains the `AnalysisController`, the single owner of the loaded game.

The controller is the only writer of the navigation cursor. Every
navigation transition re-requests a live evaluation for the new position
(superseding whatever the session was doing) and returns a `PositionView`
assembled from what the timeline already knows; nothing is recomputed on
navigation.
"""

from pathlib import Path
from typing import Dict, Optional, TYPE_CHECKING

import structlog

from chess_annotator.core.formatting import explanation_with_classification
from chess_annotator.core.timeline import GameTimeline
from chess_annotator.exceptions import EngineError, ImportFormatError
from chess_annotator.types import (FEN, ClassificationReport, Evaluation,
                                   MoveClassification, PositionView,
                                   ProgressCallback)

if TYPE_CHECKING:
    from chess_annotator.config.settings import AnalysisSettings
    from chess_annotator.core.replay_builder import ReplayBuilder
    from chess_annotator.orchestration.classification_pipeline import ClassificationPipeline
    from chess_annotator.services.engine_session import EngineSession, EvaluationStream
    from chess_annotator.services.pgn_service import PgnService

logger = structlog.get_logger(__name__)

STANDARD_START_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"


class AnalysisController:
    def __init__(
        self,
        builder: "ReplayBuilder",
        pgn_service: "PgnService",
        pipeline: "ClassificationPipeline",
        session: "EngineSession",
        settings: "AnalysisSettings",
    ):
        self._builder = builder
        self._pgn_service = pgn_service
        self._pipeline = pipeline
        self._session = session
        self._settings = settings
        self._timeline = GameTimeline.single(STANDARD_START_FEN)
        self._evaluations: Dict[FEN, Evaluation] = {}
        self._live_stream: Optional["EvaluationStream"] = None

    @property
    def timeline(self) -> GameTimeline:
        return self._timeline

    @property
    def live_stream(self) -> Optional["EvaluationStream"]:
        """The stream of the most recent live evaluation request, if any."""
        return self._live_stream

    # --- Import ---

    def import_pgn(self, pgn_text: str) -> PositionView:
        """
        Replaces the loaded game with the first game in `pgn_text`.

        Raises:
            ImportFormatError: If the text holds no readable game. The
                               previously loaded game is kept.
        """
        parsed = self._pgn_service.parse(pgn_text)
        return self._install(self._builder.build_from_parsed(parsed))

    async def import_pgn_file(self, path: Path) -> PositionView:
        parsed = await self._pgn_service.load_file(path)
        return self._install(self._builder.build_from_parsed(parsed))

    def import_fen(self, fen: FEN) -> PositionView:
        """
        Replaces the loaded game with a single position.

        Raises:
            ImportFormatError: If `fen` is not a valid position.
        """
        try:
            timeline = self._builder.build_position_timeline(fen)
        except ValueError as e:
            raise ImportFormatError(f"Invalid FEN: {e}") from e
        return self._install(timeline)

    def _install(self, timeline: GameTimeline) -> PositionView:
        self._timeline = timeline
        self._evaluations.clear()
        logger.info("Game loaded.", positions=len(timeline), moves=timeline.last_index)
        return self._on_transition()

    # --- Navigation ---

    def next(self) -> PositionView:
        self._timeline.next()
        return self._on_transition()

    def prev(self) -> PositionView:
        self._timeline.prev()
        return self._on_transition()

    def goto(self, index: int) -> PositionView:
        self._timeline.goto(index)
        return self._on_transition()

    def reset(self) -> PositionView:
        self._timeline.reset()
        return self._on_transition()

    def current_view(self) -> PositionView:
        index = self._timeline.current_index
        fen = self._timeline.current_fen
        move = self._timeline.move_for_index(index)
        if move is None:
            text = self._timeline.initial_note or ""
        elif move.classification == MoveClassification.BOOK and move.opening_name:
            text = explanation_with_classification(move.opening_name, move.classification)
        else:
            text = explanation_with_classification(move.explanation or "", move.classification)
        return PositionView(
            index=index, fen=fen, move=move, explanation_text=text,
            cached_evaluation=self._evaluations.get(fen),
        )

    def _on_transition(self) -> PositionView:
        self._request_live_evaluation()
        return self.current_view()

    def _request_live_evaluation(self) -> None:
        try:
            self._live_stream = self._session.evaluate(self._timeline.current_fen, self._settings.live_depth)
        except EngineError as e:
            self._live_stream = None
            logger.warning("Live evaluation unavailable.", error=str(e))

    # --- Classification ---

    async def classify_game(self, progress: Optional[ProgressCallback] = None) -> ClassificationReport:
        """
        Runs the classification pipeline over the loaded game.

        When warm-up is enabled, every position is then evaluated once at the
        warm-up depth and cached for display. The live evaluation for the
        current position is requested again afterwards, since classification
        preempts it.
        """
        timeline = self._timeline
        report = await self._pipeline.run(timeline, progress=progress, game_id=self._game_id(timeline))

        if self._settings.warmup_enabled:
            self._evaluations.update(await self._pipeline.warm_up(timeline))

        if timeline is self._timeline:
            self._request_live_evaluation()
        return report

    @staticmethod
    def _game_id(timeline: GameTimeline) -> str:
        # PGN placeholders ("?") carry no identity.
        for tag in ("Site", "Event"):
            value = timeline.headers.get(tag, "")
            if value and value != "?":
                return value
        return "game"

    def clear_classifications(self) -> None:
        for move in self._timeline.moves:
            move.clear_classification()
        logger.info("Classifications cleared.", moves=self._timeline.last_index)

    def annotate_move(self, move_index: int, classification: MoveClassification) -> None:
        """
        Overrides the classification of the move at `move_index` by hand.

        Raises:
            IndexError: If there is no such move.
        """
        moves = self._timeline.moves
        if not 0 <= move_index < len(moves):
            raise IndexError(f"No move at index {move_index}; the game has {len(moves)} moves.")
        moves[move_index].annotate(classification)
