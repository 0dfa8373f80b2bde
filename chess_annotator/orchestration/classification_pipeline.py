# chess_annotator/orchestration/classification_pipeline.py
"""
Defines the `ClassificationPipeline`, which grades every move of a timeline.

The pipeline is a worklist processed strictly one move at a time: the engine
cannot tell interleaved requests apart, so a move is fully finished (book
lookup, or all of its engine round trips) before the next one starts. Every
external call carries a deadline, and a failure on one move only leaves that
move unclassified; the run always reaches the end of the game.
"""

import asyncio
from typing import Dict, Optional, TYPE_CHECKING

import structlog

from chess_annotator.core import game_state, move_classifier
from chess_annotator.exceptions import BookLookupError, EngineError, EngineTimeout
from chess_annotator.tracing import CorrelationID, trace_stage
from chess_annotator.types import (FEN, BookService, ClassificationReport,
                                   ClassificationResult, Evaluation,
                                   MoveClassification, PieceColor,
                                   ProgressCallback, RulesService, ScoredMove)

if TYPE_CHECKING:
    from chess_annotator.config.settings import AnalysisSettings
    from chess_annotator.core.timeline import GameTimeline
    from chess_annotator.services.engine_session import EngineSession

logger = structlog.get_logger(__name__)

BOOK_CONFIDENCE = 1.0
# Used when the engine finished a search without ever printing a score.
NO_SCORE_RESULT = ClassificationResult(MoveClassification.BEST, 0.95)


class ClassificationPipeline:
    """Drives the book collaborator and the engine session over one timeline."""

    def __init__(
        self,
        session: "EngineSession",
        book: BookService,
        rules: RulesService,
        settings: "AnalysisSettings",
    ):
        self._session = session
        self._book = book
        self._rules = rules
        self._settings = settings

    async def run(
        self,
        timeline: "GameTimeline",
        progress: Optional[ProgressCallback] = None,
        game_id: str = "game",
    ) -> ClassificationReport:
        """
        Classifies every move of `timeline` that is not classified yet.

        Args:
            timeline: The timeline whose moves are annotated in place.
            progress: Awaited with `(done, total)` after each move.
            game_id: Used only to tag log lines for this run.

        Returns:
            A report of how many moves were classified, how many were book
            moves and which indices were left unclassified.
        """
        cid = CorrelationID.new(game_id)
        structlog.contextvars.bind_contextvars(correlation_id=cid.short_id)
        try:
            moves = timeline.moves
            report = ClassificationReport(total=len(moves))
            logger.info("Classification started.", moves=len(moves))

            for index, move in enumerate(moves):
                if move.is_classified:
                    logger.debug("Move already classified; skipping.", index=index, san=move.san)
                elif await self.classify_move(timeline, index):
                    report.classified += 1
                    if move.classification == MoveClassification.BOOK:
                        report.book += 1
                else:
                    report.skipped.append(index)

                if progress is not None:
                    await progress(index + 1, len(moves))

            logger.info(
                "Classification finished.", classified=report.classified,
                book=report.book, unclassified=len(report.skipped),
            )
            return report
        finally:
            structlog.contextvars.clear_contextvars()

    async def classify_move(self, timeline: "GameTimeline", index: int) -> bool:
        """
        Classifies the move at `index`.

        Returns:
            True if the move now carries a classification, False if it was left
            unclassified because of a timeout or an engine failure.
        """
        move = timeline.moves[index]
        positions = timeline.positions
        fen_before = positions[index]

        if index < self._settings.book_move_window:
            opening_name = await self._lookup_book(fen_before)
            if opening_name is not None:
                move.record_classification(
                    ClassificationResult(MoveClassification.BOOK, BOOK_CONFIDENCE), opening_name=opening_name,
                )
                logger.debug("Book move.", index=index, san=move.san, opening=opening_name)
                return True

        try:
            scored = await self._score_move(fen_before, move.uci)
        except EngineTimeout as e:
            logger.warning("Engine search timed out; move left unclassified.", index=index, san=move.san, fen=e.fen)
            return False
        except EngineError as e:
            logger.warning("Engine search failed; move left unclassified.", index=index, san=move.san, error=str(e))
            return False

        result = self._grade(positions, index, move.uci, scored)
        move.record_classification(result, scored=scored)
        logger.debug(
            "Move classified.", index=index, san=move.san,
            classification=result.classification.value, best=scored.best_move,
        )
        return True

    @trace_stage
    async def _lookup_book(self, fen: FEN) -> Optional[str]:
        """The opening name if `fen` is a book position; `None` otherwise, including on failure."""
        try:
            result = await asyncio.wait_for(self._book.lookup(fen), timeout=self._settings.book_timeout_s)
        except asyncio.TimeoutError:
            logger.warning("Book lookup timed out; treating as not book.", fen=fen)
            return None
        except BookLookupError as e:
            logger.warning("Book lookup failed; treating as not book.", fen=fen, error=str(e))
            return None
        return result.opening_name if result.is_book else None

    @trace_stage
    async def _score_move(self, fen: FEN, move: str) -> ScoredMove:
        depth = self._settings.classification_depth
        try:
            return await asyncio.wait_for(
                self._session.search_and_score_move(fen, move, depth),
                timeout=self._settings.search_timeout_s,
            )
        except asyncio.TimeoutError as e:
            raise EngineTimeout(
                f"Search for {move} exceeded {self._settings.search_timeout_s}s.", fen=fen,
            ) from e

    def _grade(self, positions: list, index: int, uci: str, scored: ScoredMove) -> ClassificationResult:
        if scored.best_score is None or scored.move_score is None:
            return NO_SCORE_RESULT

        fen_before = positions[index]
        mover = self._rules.turn(fen_before)
        loss = move_classifier.centipawn_loss(scored.best_score, scored.move_score, mover == PieceColor.WHITE)

        # Material is compared after the opponent's reply so that the recapture
        # of a traded piece does not read as a loss.
        settled_index = min(index + 2, len(positions) - 1)
        material_change = game_state.material_change_for_mover(
            self._rules.board(fen_before), self._rules.board(positions[settled_index]), mover,
        )

        forced = move_classifier.is_forced_move(
            in_check_before=self._rules.in_check(fen_before),
            delivers_mate=self._rules.is_checkmate(positions[index + 1]),
            legal_moves=self._rules.legal_moves(fen_before),
        )
        return move_classifier.classify(
            centipawn_loss=loss,
            material_change=material_change,
            state_before=game_state.qualitative_state(scored.best_score),
            state_after=game_state.qualitative_state(scored.move_score),
            is_best_move=uci == scored.best_move,
            is_forced=forced,
            is_sacrifice=move_classifier.is_sacrifice(material_change, loss),
        )

    async def warm_up(self, timeline: "GameTimeline") -> Dict[FEN, Evaluation]:
        """
        Evaluates every position once at the quick warm-up depth.

        Positions whose search fails or times out are left out of the result.
        """
        depth = self._settings.warmup_depth
        evaluations: Dict[FEN, Evaluation] = {}
        for fen in timeline.positions:
            if fen in evaluations:
                continue
            try:
                outcome = await asyncio.wait_for(
                    self._session.analyse(fen, depth), timeout=self._settings.search_timeout_s,
                )
            except (asyncio.TimeoutError, EngineError) as e:
                logger.debug("Warm-up evaluation skipped.", fen=fen, error=repr(e))
                continue
            if outcome.evaluation is not None:
                evaluations[fen] = outcome.evaluation
        logger.info("Warm-up pass complete.", evaluated=len(evaluations), positions=len(timeline))
        return evaluations
