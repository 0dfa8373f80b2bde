# chess_annotator/services/engine_session.py
"""
Provides the session that owns the conversation with a UCI analysis engine.

The engine is single-threaded and has no request ids: it works on one search
at a time and every line it prints belongs to whatever it was last told to
search. `EngineSession` therefore keeps exactly one in-flight slot (the
current target plus its pending continuation) and is the only writer of that
slot. Superseding a target always sends `stop` first; everything the engine
prints for the stopped search, up to and including its `bestmove`, is
discarded. Scores are converted to White's perspective before anyone sees
them.

Two kinds of work share the slot:

* live evaluation (`evaluate`), debounced and freely superseded by newer
  requests, streamed as `Evaluation`s;
* exclusive searches (`analyse`, `search_and_score_move`), serialised by a
  lock so that a classification round trip is never interleaved with another
  request.
"""

import asyncio
import re
from typing import Callable, Final, Optional, Set

import structlog

from chess_annotator.exceptions import (EngineError, EngineInitializationError,
                                        EngineProtocolError, EngineSearchCancelled)
from chess_annotator.types import (FEN, EngineChannel, Evaluation, ScoredMove,
                                   SearchOutcome, UciMove)

logger = structlog.get_logger(__name__)

SCORE_PATTERN: Final = re.compile(r"\bscore (cp|mate) (-?\d+)\b")
DEPTH_PATTERN: Final = re.compile(r"\bdepth (\d+)\b")
BESTMOVE_PATTERN: Final = re.compile(r"^bestmove\s+(\S+)")

# Display value, in pawns, of a forced mate.
MATE_DISPLAY_SCORE: Final[float] = 10.0
_NULL_MOVES: Final = frozenset({"(none)", "0000"})


def side_to_move_sign(fen: FEN) -> int:
    """
    Returns +1 when White is to move in `fen` and -1 when Black is.

    Raises:
        EngineProtocolError: If the side-to-move field is missing or malformed.
    """
    fields = fen.split()
    if len(fields) < 2 or fields[1] not in ("w", "b"):
        raise EngineProtocolError("Cannot determine the side to move of the target position.", fen=fen)
    return 1 if fields[1] == "w" else -1


def parse_score_line(line: str, fen: FEN) -> Evaluation:
    """
    Converts one `info ... score ...` line into a White-perspective `Evaluation`.

    A line that does not match the expected pattern, or a target whose side to
    move cannot be read, yields an `Evaluation` with `error` set instead of
    raising.
    """
    match = SCORE_PATTERN.search(line)
    if match is None:
        return Evaluation(error=f"Unrecognised score line: {line!r}", fen=fen)

    try:
        sign = side_to_move_sign(fen)
    except EngineProtocolError as e:
        return Evaluation(error=str(e), fen=fen)

    depth_match = DEPTH_PATTERN.search(line)
    depth = int(depth_match.group(1)) if depth_match else None
    kind, value = match.group(1), int(match.group(2))

    if kind == "cp":
        return Evaluation(score=sign * value / 100.0, fen=fen, depth=depth)

    # "mate 0" means the side to move is already mated.
    relative = MATE_DISPLAY_SCORE if value > 0 else -MATE_DISPLAY_SCORE
    return Evaluation(score=sign * relative, mate=sign * value, fen=fen, depth=depth)


class EvaluationStream:
    """
    The handle returned by `EngineSession.evaluate`.

    Iterate it with `async for` to receive intermediate evaluations; the
    iteration ends after the final one (`is_final=True`), or without one if the
    request was superseded or cancelled. `result()` drains the stream and
    returns the final evaluation, if any.
    """

    def __init__(self, fen: FEN, depth: int, on_cancel: Callable[["EvaluationStream"], None]):
        self.fen = fen
        self.depth = depth
        self._on_cancel = on_cancel
        self._queue: asyncio.Queue[Optional[Evaluation]] = asyncio.Queue()
        self._closed = False
        self._exhausted = False
        self._final: Optional[Evaluation] = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def final(self) -> Optional[Evaluation]:
        return self._final

    def _push(self, evaluation: Evaluation) -> None:
        if self._closed:
            return
        self._queue.put_nowait(evaluation)
        if evaluation.is_final:
            self._final = evaluation
            self._close()

    def _close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(None)

    def cancel(self) -> None:
        """Abandons the request; the session stops the engine if it was searching for it."""
        if not self._closed:
            self._on_cancel(self)
            self._close()

    def __aiter__(self) -> "EvaluationStream":
        return self

    async def __anext__(self) -> Evaluation:
        if self._exhausted:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is None:
            self._exhausted = True
            raise StopAsyncIteration
        return item

    async def result(self) -> Optional[Evaluation]:
        async for _ in self:
            pass
        return self._final


class _SearchRequest:
    """The contents of the session's single in-flight slot."""

    __slots__ = ("fen", "depth", "search_move", "stream", "awaited", "completion",
                 "last_evaluation", "mate_locked", "active", "dispatched")

    def __init__(self, fen: FEN, depth: int, search_move: Optional[UciMove] = None,
                 stream: Optional[EvaluationStream] = None, awaited: bool = False):
        self.fen = fen
        self.depth = depth
        self.search_move = search_move
        self.stream = stream
        self.awaited = awaited
        self.completion: asyncio.Future[SearchOutcome] = asyncio.get_running_loop().create_future()
        self.last_evaluation: Optional[Evaluation] = None
        self.mate_locked = False
        self.active = False
        self.dispatched = False

    def go_command(self) -> str:
        command = f"go depth {self.depth}"
        if self.search_move:
            command += f" searchmoves {self.search_move}"
        return command

    def deliver(self, evaluation: Evaluation) -> None:
        if evaluation.error is None:
            self.last_evaluation = evaluation
        if self.stream is not None:
            self.stream._push(evaluation)

    def finish(self, best_move: Optional[UciMove]) -> None:
        self.active = False
        if self.last_evaluation is not None:
            final = Evaluation(
                score=self.last_evaluation.score, mate=self.last_evaluation.mate,
                fen=self.fen, depth=self.last_evaluation.depth, is_final=True,
            )
        else:
            final = None
        if self.stream is not None:
            self.stream._push(final or Evaluation(
                fen=self.fen, depth=self.depth, error="Engine reported no score.", is_final=True,
            ))
        if not self.completion.done():
            self.completion.set_result(SearchOutcome(best_move=best_move, evaluation=final))

    def abandon(self, error: EngineError) -> None:
        self.active = False
        if self.stream is not None:
            self.stream._close()
        if self.completion.done():
            return
        if self.awaited:
            self.completion.set_exception(error)
        else:
            self.completion.cancel()


class EngineSession:
    """
    An async session over one UCI engine.

    Use it as an async context manager, or call `start()` and `dispose()`
    explicitly.
    """

    def __init__(
        self,
        channel: EngineChannel,
        live_depth: int = 15,
        debounce_ms: int = 250,
        options: Optional[dict] = None,
        handshake_timeout_s: float = 10.0,
    ):
        self._channel = channel
        self._live_depth = live_depth
        self._debounce_s = debounce_ms / 1000.0
        self._options = options or {}
        self._handshake_timeout_s = handshake_timeout_s

        self._slot: Optional[_SearchRequest] = None
        self._stale_bestmoves = 0
        self._pending_stream: Optional[EvaluationStream] = None
        self._search_lock = asyncio.Lock()
        self._uci_ok = asyncio.Event()
        self._ready = asyncio.Event()
        self._reader_task: Optional[asyncio.Task] = None
        self._dispatch_tasks: Set[asyncio.Task] = set()
        self._is_started = False
        self._is_disposed = False
        self._channel_alive = False

    async def __aenter__(self) -> "EngineSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.dispose()

    # --- Lifecycle ---

    async def start(self) -> None:
        """
        Opens the channel and performs the UCI handshake.

        Raises:
            EngineInitializationError: If the engine cannot be started or does
                                       not answer `uci`/`isready` in time.
        """
        if self._is_started:
            return
        if self._is_disposed:
            raise EngineInitializationError("Cannot restart a disposed engine session.")

        await self._channel.open()
        self._channel_alive = True
        self._reader_task = asyncio.create_task(self._read_loop())
        try:
            await self._send("uci")
            await asyncio.wait_for(self._uci_ok.wait(), timeout=self._handshake_timeout_s)
            await self._send("setoption name MultiPV value 1")
            for name, value in self._options.items():
                await self._send(f"setoption name {name} value {value}")
            await self._await_ready()
        except (asyncio.TimeoutError, EngineError) as e:
            await self.dispose()
            raise EngineInitializationError(f"Engine did not complete the UCI handshake: {e!r}") from e

        self._is_started = True
        logger.info("Engine session ready.", live_depth=self._live_depth, options=self._options)

    async def _await_ready(self) -> None:
        self._ready.clear()
        await self._send("isready")
        await asyncio.wait_for(self._ready.wait(), timeout=self._handshake_timeout_s)

    async def stop(self) -> None:
        """Abandons the pending and in-flight requests and tells the engine to stop."""
        self._ensure_running()
        if self._pending_stream is not None:
            self._pending_stream._close()
            self._pending_stream = None
        self._supersede_current()
        self._slot = None
        await self._send("stop")

    async def dispose(self) -> None:
        """Stops the engine, sends `quit` and releases the channel. Safe to call twice."""
        if self._is_disposed:
            return
        self._is_disposed = True

        if self._pending_stream is not None:
            self._pending_stream._close()
            self._pending_stream = None
        if self._slot is not None:
            self._slot.abandon(EngineSearchCancelled("Engine session disposed.", fen=self._slot.fen))
            self._slot = None

        if self._channel_alive:
            for command in ("stop", "quit"):
                try:
                    await self._send(command)
                except EngineError:
                    logger.debug("Engine already gone during shutdown.", command=command)
                    break

        tasks = [task for task in (self._reader_task, *self._dispatch_tasks) if task is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._dispatch_tasks.clear()

        await self._channel.close()
        self._channel_alive = False
        logger.info("Engine session disposed.")

    def _ensure_running(self) -> None:
        if self._is_disposed or not self._is_started:
            raise EngineError("Engine session is not running.")
        if not self._channel_alive:
            raise EngineError("Engine process has exited.")

    # --- Live evaluation ---

    def evaluate(self, fen: FEN, depth: Optional[int] = None) -> EvaluationStream:
        """
        Requests a debounced live evaluation of `fen`.

        Calls arriving within the debounce window replace each other; only the
        last one is sent to the engine. A replaced request's stream ends
        without a final evaluation.

        Returns:
            An `EvaluationStream` that yields a loading marker, intermediate
            evaluations, and finally an evaluation with `is_final=True`.
        """
        self._ensure_running()
        stream = EvaluationStream(fen, depth or self._live_depth, on_cancel=self._cancel_stream)

        if self._pending_stream is not None:
            self._pending_stream._close()
        self._pending_stream = stream

        task = asyncio.create_task(self._dispatch_after_debounce(stream))
        self._dispatch_tasks.add(task)
        task.add_done_callback(self._dispatch_tasks.discard)
        return stream

    async def _dispatch_after_debounce(self, stream: EvaluationStream) -> None:
        if self._debounce_s > 0:
            await asyncio.sleep(self._debounce_s)
        if stream.closed or stream is not self._pending_stream:
            return

        # Waits out any exclusive search; a newer evaluate() may win meanwhile.
        async with self._search_lock:
            if stream.closed or stream is not self._pending_stream:
                return
            self._pending_stream = None
            stream._push(Evaluation(loading=True, fen=stream.fen, depth=stream.depth))
            try:
                await self._begin(_SearchRequest(stream.fen, stream.depth, stream=stream))
            except EngineError:
                logger.error("Failed to dispatch live evaluation.", fen=stream.fen, exc_info=True)
                stream._push(Evaluation(fen=stream.fen, error="Engine is unavailable.", is_final=True))

    def _cancel_stream(self, stream: EvaluationStream) -> None:
        if stream is self._pending_stream:
            self._pending_stream = None
            return
        request = self._slot
        if request is not None and request.stream is stream and request.active:
            dispatched = request.dispatched
            self._supersede_current()
            self._slot = None
            if dispatched:
                task = asyncio.create_task(self._send_quietly("stop"))
                self._dispatch_tasks.add(task)
                task.add_done_callback(self._dispatch_tasks.discard)

    # --- Exclusive searches ---

    async def analyse(self, fen: FEN, depth: int, search_move: Optional[UciMove] = None) -> SearchOutcome:
        """
        Runs one complete search and waits for its `bestmove`.

        Raises:
            EngineSearchCancelled: If the search was stopped before completing.
            EngineError: If the engine is not running.
        """
        self._ensure_running()
        async with self._search_lock:
            return await self._run_search(fen, depth, search_move)

    async def search_and_score_move(self, fen: FEN, move: UciMove, depth: int) -> ScoredMove:
        """
        Scores a played move against the engine's choice at the same depth.

        Phase one searches the position freely to learn the best move. Phase
        two scores that move with `searchmoves` and phase three does the same
        for `move`, so both scores come from identically restricted searches.
        When the played move is the best move the third phase is skipped. All
        phases run under the session lock, back to back.

        Returns:
            White-perspective scores; either may be `None` if the engine
            reported no score for that phase.
        """
        self._ensure_running()
        async with self._search_lock:
            found = await self._run_search(fen, depth)
            if found.best_move is None:
                return ScoredMove(best_move=None, best_score=self._score_of(found), move_score=None)

            best = await self._run_search(fen, depth, search_move=found.best_move)
            best_score = self._score_of(best)
            if best_score is None:
                best_score = self._score_of(found)
            if move == found.best_move:
                return ScoredMove(best_move=found.best_move, best_score=best_score, move_score=best_score)

            played = await self._run_search(fen, depth, search_move=move)
            return ScoredMove(best_move=found.best_move, best_score=best_score, move_score=self._score_of(played))

    @staticmethod
    def _score_of(outcome: SearchOutcome) -> Optional[float]:
        if outcome.evaluation is None or outcome.evaluation.error is not None:
            return None
        return outcome.evaluation.score

    async def _run_search(self, fen: FEN, depth: int, search_move: Optional[UciMove] = None) -> SearchOutcome:
        """Caller must hold `_search_lock`."""
        request = _SearchRequest(fen, depth, search_move=search_move, awaited=True)
        try:
            await self._begin(request)
            return await request.completion
        except asyncio.CancelledError:
            if request is self._slot and request.active:
                dispatched = request.dispatched
                self._supersede_current()
                self._slot = None
                if dispatched:
                    await self._send_quietly("stop")
            raise

    # --- Slot management ---

    def _supersede_current(self) -> None:
        """Retires the in-flight request; its remaining output will be discarded."""
        previous = self._slot
        if previous is not None and previous.active:
            # Only a search that was sent `go` will still answer with a bestmove.
            if previous.dispatched:
                self._stale_bestmoves += 1
            previous.abandon(EngineSearchCancelled("Search superseded by a newer request.", fen=previous.fen))
            logger.debug("Superseded in-flight search.", fen=previous.fen, stale=self._stale_bestmoves)

    async def _begin(self, request: _SearchRequest) -> None:
        # Bookkeeping happens before the first await so the reader can never
        # attribute a stale line to the new target.
        self._supersede_current()
        self._slot = request
        request.active = True
        await self._send("stop")
        await self._send(f"position fen {request.fen}")
        if not request.active:
            return
        # The channel writes the line before its first await.
        request.dispatched = True
        await self._send(request.go_command())

    async def _send(self, line: str) -> None:
        logger.debug("Engine <<", line=line)
        await self._channel.send(line)

    async def _send_quietly(self, line: str) -> None:
        try:
            await self._send(line)
        except EngineError:
            logger.warning("Could not send command to engine.", line=line)

    # --- Inbound lines ---

    async def _read_loop(self) -> None:
        try:
            async for line in self._channel.lines():
                self._handle_line(line)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.error("Engine reader failed.", exc_info=True)
        finally:
            self._channel_alive = False
            if not self._is_disposed:
                logger.error("Engine channel closed unexpectedly.")
                if self._slot is not None:
                    self._slot.abandon(EngineError("Engine process exited.", fen=self._slot.fen))
                    self._slot = None

    def _handle_line(self, line: str) -> None:
        if not line:
            return
        if line == "uciok":
            self._uci_ok.set()
        elif line == "readyok":
            self._ready.set()
        elif line.startswith("bestmove"):
            self._handle_bestmove(line)
        elif line.startswith("info") and " score " in line:
            self._handle_score(line)

    def _handle_bestmove(self, line: str) -> None:
        if self._stale_bestmoves > 0:
            self._stale_bestmoves -= 1
            logger.debug("Discarded result of a stopped search.", line=line)
            return

        request = self._slot
        if request is None or not request.active:
            logger.warning("Received bestmove with no search in flight.", line=line)
            return

        match = BESTMOVE_PATTERN.match(line)
        best_move = match.group(1) if match else None
        if best_move in _NULL_MOVES:
            best_move = None
        request.finish(best_move)

    def _handle_score(self, line: str) -> None:
        if self._stale_bestmoves > 0:
            return

        request = self._slot
        if request is None or not request.active:
            self._report_untracked_score(line)
            return

        evaluation = parse_score_line(line, request.fen)
        if evaluation.error is not None:
            logger.warning("Engine protocol error.", error=evaluation.error, fen=request.fen)
            request.deliver(evaluation)
            return

        if evaluation.mate is None and request.mate_locked:
            return
        if evaluation.mate is not None:
            request.mate_locked = True
        request.deliver(evaluation)

    def _report_untracked_score(self, line: str) -> None:
        stream = self._pending_stream
        if stream is None:
            logger.warning("Score line has no tracked target; dropping it.", line=line)
            return
        logger.warning("Score line has no tracked target.", line=line, fen=stream.fen)
        stream._push(Evaluation(fen=stream.fen, error="Score line arrived with no search in flight."))
