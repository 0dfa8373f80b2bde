# tests/orchestration/test_classification_pipeline.py
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from chess_annotator.config.settings import AnalysisSettings
from chess_annotator.core.explanation_generator import ExplanationGenerator
from chess_annotator.core.replay_builder import ReplayBuilder
from chess_annotator.exceptions import BookLookupError, EngineError
from chess_annotator.orchestration.classification_pipeline import ClassificationPipeline
from chess_annotator.services.engine_session import EngineSession
from chess_annotator.services.pgn_service import PgnService
from chess_annotator.services.rules_service import ChessRulesService
from chess_annotator.types import (BookLookupResult, ClassificationResult, Evaluation,
                                   MoveClassification, ScoredMove, SearchOutcome)

NOT_BOOK = BookLookupResult(is_book=False)


def build_timeline(pgn: str):
    rules = ChessRulesService()
    return ReplayBuilder(rules, ExplanationGenerator(rules)).build_from_parsed(PgnService().parse(pgn))


def make_pipeline(book_result=NOT_BOOK, scored=None, **settings):
    session = MagicMock(spec=EngineSession)
    session.search_and_score_move = AsyncMock(return_value=scored or ScoredMove("e2e4", 0.3, 0.3))
    book = MagicMock()
    book.lookup = AsyncMock(return_value=book_result)
    pipeline = ClassificationPipeline(session, book, ChessRulesService(), AnalysisSettings(**settings))
    return pipeline, session, book


@pytest.mark.asyncio
async def test_book_moves_skip_the_engine():
    # Arrange
    timeline = build_timeline("1. e4 e5 2. Nf3 *")
    pipeline, session, book = make_pipeline(
        book_result=BookLookupResult(is_book=True, opening_name="King's Pawn Game"), book_move_window=2,
    )

    # Act
    report = await pipeline.run(timeline)

    # Assert
    moves = timeline.moves
    assert [m.classification for m in moves[:2]] == [MoveClassification.BOOK] * 2
    assert moves[0].opening_name == "King's Pawn Game"
    assert report.book == 2
    assert report.classified == 3
    assert book.lookup.await_count == 2
    book.lookup.assert_any_await(timeline.positions[0])
    session.search_and_score_move.assert_awaited_once_with(timeline.positions[2], moves[2].uci, 10)


@pytest.mark.asyncio
async def test_book_failure_falls_back_to_engine():
    timeline = build_timeline("1. e4 *")
    pipeline, session, book = make_pipeline(scored=ScoredMove("e2e4", 0.3, 0.3))
    book.lookup.side_effect = BookLookupError("unreachable")

    report = await pipeline.run(timeline)

    assert timeline.moves[0].classification == MoveClassification.BEST
    assert timeline.moves[0].engine_best_move == "e2e4"
    assert report.book == 0
    session.search_and_score_move.assert_awaited_once()


@pytest.mark.asyncio
async def test_book_deadline_falls_back_to_engine():
    # Arrange
    timeline = build_timeline("1. e4 *")
    pipeline, session, book = make_pipeline(scored=ScoredMove("e2e4", 0.3, 0.3), book_timeout_s=0.05)

    async def hanging_lookup(fen):
        await asyncio.sleep(10)

    book.lookup = AsyncMock(side_effect=hanging_lookup)

    # Act
    report = await asyncio.wait_for(pipeline.run(timeline), timeout=2)

    # Assert
    assert timeline.moves[0].classification == MoveClassification.BEST
    assert timeline.moves[0].opening_name is None
    assert report.book == 0
    assert report.classified == 1
    session.search_and_score_move.assert_awaited_once_with(timeline.positions[0], "e2e4", 10)


@pytest.mark.asyncio
async def test_engine_timeout_leaves_move_unclassified():
    timeline = build_timeline("1. e4 e5 *")
    pipeline, session, _ = make_pipeline(search_timeout_s=0.01, book_move_window=0)

    async def slow_search(*args):
        await asyncio.sleep(1)

    session.search_and_score_move = AsyncMock(side_effect=slow_search)

    report = await pipeline.run(timeline)

    assert report.classified == 0
    assert report.skipped == [0, 1]
    assert not any(m.is_classified for m in timeline.moves)


@pytest.mark.asyncio
async def test_engine_error_is_isolated_to_one_move():
    timeline = build_timeline("1. e4 e5 *")
    pipeline, session, _ = make_pipeline(book_move_window=0)
    session.search_and_score_move.side_effect = [EngineError("engine died"), ScoredMove("e7e5", -0.2, -0.2)]

    report = await pipeline.run(timeline)

    assert report.skipped == [0]
    assert timeline.moves[1].classification == MoveClassification.BEST


@pytest.mark.asyncio
async def test_missing_score_classifies_as_best():
    timeline = build_timeline("1. a3 *")
    pipeline, _, _ = make_pipeline(scored=ScoredMove("e2e4", None, None), book_move_window=0)

    await pipeline.run(timeline)

    assert timeline.moves[0].classification == MoveClassification.BEST
    assert timeline.moves[0].confidence == 0.95


@pytest.mark.asyncio
async def test_large_loss_is_a_blunder():
    timeline = build_timeline("1. f3 *")
    pipeline, _, _ = make_pipeline(scored=ScoredMove("e2e4", 0.5, -4.0), book_move_window=0)

    await pipeline.run(timeline)

    move = timeline.moves[0]
    assert move.classification == MoveClassification.BLUNDER
    assert move.engine_best_score == 0.5
    assert move.engine_move_score == -4.0


@pytest.mark.asyncio
async def test_loss_is_oriented_to_black_mover():
    timeline = build_timeline("1. e4 f6 *")
    pipeline, session, _ = make_pipeline(book_move_window=0)
    session.search_and_score_move.side_effect = [
        ScoredMove("e2e4", 0.3, 0.3),
        ScoredMove("e7e5", 0.3, 1.6),
    ]

    await pipeline.run(timeline)

    assert timeline.moves[1].classification == MoveClassification.INACCURACY


@pytest.mark.asyncio
async def test_sound_sacrifice_is_brilliant():
    # White gives up the queen for a pawn; the engine still rates it as nearly best.
    timeline = build_timeline("1. e4 e5 2. Qh5 Nc6 3. Qxf7+ Kxf7 *")
    pipeline, session, _ = make_pipeline(book_move_window=0)
    session.search_and_score_move.side_effect = [
        ScoredMove("e2e4", 0.3, 0.3),
        ScoredMove("e7e5", 0.3, 0.3),
        ScoredMove("d1h5", 0.2, 0.2),
        ScoredMove("b8c6", 0.2, 0.2),
        ScoredMove("h5e5", 0.5, 0.3),
        ScoredMove("e8f7", 0.3, 0.3),
    ]

    await pipeline.run(timeline)

    assert timeline.moves[4].classification == MoveClassification.BRILLIANT


@pytest.mark.asyncio
async def test_already_classified_moves_are_skipped():
    timeline = build_timeline("1. e4 e5 *")
    timeline.moves[0].record_classification(ClassificationResult(MoveClassification.GREAT, 0.8))
    pipeline, session, book = make_pipeline()

    report = await pipeline.run(timeline)

    assert timeline.moves[0].classification == MoveClassification.GREAT
    assert report.classified == 1
    book.lookup.assert_awaited_once_with(timeline.positions[1])
    session.search_and_score_move.assert_awaited_once()


@pytest.mark.asyncio
async def test_progress_is_reported_per_move():
    timeline = build_timeline("1. e4 e5 2. Nf3 *")
    pipeline, _, _ = make_pipeline()
    progress = AsyncMock()

    await pipeline.run(timeline, progress=progress)

    assert [c.args for c in progress.await_args_list] == [(1, 3), (2, 3), (3, 3)]


@pytest.mark.asyncio
async def test_warm_up_collects_evaluations_by_fen():
    timeline = build_timeline("1. e4 e5 *")
    pipeline, session, _ = make_pipeline(warmup_depth=5)
    session.analyse = AsyncMock(return_value=SearchOutcome("e2e4", Evaluation(score=0.2, is_final=True)))

    evaluations = await pipeline.warm_up(timeline)

    assert set(evaluations) == set(timeline.positions)
    session.analyse.assert_any_await(timeline.positions[0], 5)
