# main.py
"""
The command-line entry point: load a PGN, classify every move, print the
annotated game.
"""
import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

import structlog

from chess_annotator.config.settings import Settings, settings as default_settings
from chess_annotator.containers import get_container
from chess_annotator.core.formatting import classification_label
from chess_annotator.exceptions import ChessAnnotatorError
from chess_annotator.orchestration.analysis_controller import AnalysisController
from chess_annotator.services.engine_session import EngineSession
from chess_annotator.types import BookService, TimelineMove
from chess_annotator.utils.logging_config import setup_logging

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Annotate a chess game with engine-based move classifications.")
    parser.add_argument("--pgn", type=Path, required=True, help="PGN file to annotate (first game is used).")
    parser.add_argument("--engine", help="Path to the UCI engine executable.")
    parser.add_argument("--depth", type=int, help="Live evaluation depth.")
    parser.add_argument("--classification-depth", type=int, help="Search depth used to classify moves.")
    parser.add_argument("--no-book", action="store_true", help="Skip opening book lookups.")
    parser.add_argument("--log-level", help="Logging level (DEBUG, INFO, WARNING, ...).")
    parser.add_argument("--json-logs", action="store_true", help="Render console logs as JSON.")
    return parser


def apply_overrides(base: Settings, args: argparse.Namespace) -> Settings:
    """Returns a copy of `base` with the command-line flags applied."""
    engine = base.engine.model_copy(update={"path": args.engine} if args.engine else {})
    analysis_update = {}
    if args.depth:
        analysis_update["live_depth"] = args.depth
    if args.classification_depth:
        analysis_update["classification_depth"] = args.classification_depth
    analysis = base.analysis.model_copy(update=analysis_update)
    book = base.book.model_copy(update={"enabled": False} if args.no_book else {})
    logging_update = {}
    if args.log_level:
        logging_update["level"] = args.log_level
    if args.json_logs:
        logging_update["json_console"] = True
    log_settings = base.logging.model_copy(update=logging_update)
    return base.model_copy(update={"engine": engine, "analysis": analysis, "book": book, "logging": log_settings})


def format_move_line(index: int, move: TimelineMove) -> str:
    number = index // 2 + 1
    prefix = f"{number}." if index % 2 == 0 else f"{number}..."
    label = classification_label(move.classification) or "Unclassified"
    line = f"{prefix} {move.san:<8} [{label}] {move.explanation or ''}"
    if move.opening_name:
        line += f" ({move.opening_name})"
    return line


async def run(app_settings: Settings, pgn_path: Path) -> int:
    container = get_container(app_settings)
    session: EngineSession = container.resolve(EngineSession)
    book: BookService = container.resolve(BookService)
    controller: AnalysisController = container.resolve(AnalysisController)

    async def report_progress(done: int, total: int) -> None:
        print(f"\rClassifying moves: {done}/{total}", end="", file=sys.stderr, flush=True)

    try:
        async with session:
            await controller.import_pgn_file(pgn_path)
            report = await controller.classify_game(progress=report_progress)
            print(file=sys.stderr)
    finally:
        await book.close()

    timeline = controller.timeline
    # The first move's index parity depends on who moved first.
    offset = 1 if timeline.positions[0].split()[1] == "b" else 0
    for index, move in enumerate(timeline.moves):
        print(format_move_line(index + offset, move))
    logger.info(
        "Annotation complete.", classified=report.classified, book=report.book, unclassified=len(report.skipped),
    )
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main function to set up logging and run the annotator."""
    args = build_parser().parse_args(argv)
    app_settings = apply_overrides(default_settings, args)
    log = app_settings.logging
    setup_logging(
        log_level=log.level,
        log_file=Path(log.file) if log.file else None,
        force_json_console=log.json_console,
    )
    try:
        return asyncio.run(run(app_settings, args.pgn))
    except ChessAnnotatorError as e:
        logger.error("Annotation failed.", error=str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
