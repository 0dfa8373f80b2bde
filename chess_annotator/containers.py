# chess_annotator/containers.py
"""
Defines the Dependency Injection (DI) container for the application.

This module uses the `punq` library to manage the creation and wiring of all
services and components of the annotator. The engine session, its channel and
the book client own external resources, so they are registered as singletons:
every component that resolves them shares the same process and HTTP client.
"""

import punq

from chess_annotator.config.settings import AnalysisSettings, Settings
from chess_annotator.core.explanation_generator import ExplanationGenerator
from chess_annotator.core.replay_builder import ReplayBuilder
from chess_annotator.orchestration.analysis_controller import AnalysisController
from chess_annotator.orchestration.classification_pipeline import ClassificationPipeline
from chess_annotator.services.book_service import DisabledBookService, LichessBookService
from chess_annotator.services.engine_channel import UciProcessChannel
from chess_annotator.services.engine_session import EngineSession
from chess_annotator.services.pgn_service import PgnService
from chess_annotator.services.rules_service import ChessRulesService
from chess_annotator.types import BookService, EngineChannel, RulesService


def get_container(app_settings: Settings) -> punq.Container:
    """
    Initializes and returns a DI container configured from `app_settings`.
    """
    container = punq.Container()

    container.register(Settings, instance=app_settings)
    container.register(AnalysisSettings, instance=app_settings.analysis)

    container.register(RulesService, ChessRulesService, scope=punq.Scope.singleton)
    container.register(PgnService, scope=punq.Scope.singleton)
    container.register(
        ExplanationGenerator, factory=lambda: ExplanationGenerator(container.resolve(RulesService))
    )
    container.register(
        ReplayBuilder,
        factory=lambda: ReplayBuilder(container.resolve(RulesService), container.resolve(ExplanationGenerator)),
    )

    book = app_settings.book
    if book.enabled:
        container.register(
            BookService,
            factory=lambda: LichessBookService(
                book.base_url, timeout_s=app_settings.analysis.book_timeout_s, retry_attempts=book.retry_attempts,
            ),
            scope=punq.Scope.singleton,
        )
    else:
        container.register(BookService, DisabledBookService, scope=punq.Scope.singleton)

    engine = app_settings.engine
    container.register(
        EngineChannel, factory=lambda: UciProcessChannel(engine.path), scope=punq.Scope.singleton
    )
    container.register(
        EngineSession,
        factory=lambda: EngineSession(
            container.resolve(EngineChannel),
            live_depth=app_settings.analysis.live_depth,
            debounce_ms=app_settings.analysis.debounce_ms,
            options=engine.parameters,
            handshake_timeout_s=engine.handshake_timeout_s,
        ),
        scope=punq.Scope.singleton,
    )

    container.register(
        ClassificationPipeline,
        factory=lambda: ClassificationPipeline(
            container.resolve(EngineSession),
            container.resolve(BookService),
            container.resolve(RulesService),
            app_settings.analysis,
        ),
    )
    container.register(
        AnalysisController,
        factory=lambda: AnalysisController(
            container.resolve(ReplayBuilder),
            container.resolve(PgnService),
            container.resolve(ClassificationPipeline),
            container.resolve(EngineSession),
            app_settings.analysis,
        ),
    )

    return container
