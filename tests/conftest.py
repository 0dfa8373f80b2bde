# tests/conftest.py
import asyncio
from typing import Dict, List, Optional, Set, Tuple

import pytest

SearchKey = Tuple[str, Optional[str]]


class FakeUciEngine:
    """
    An in-memory `EngineChannel` that behaves like a single-threaded UCI engine.

    `script` maps (fen, searchmove) to the info lines and best move the engine
    prints for that search. Searches whose key is in `held` print nothing until
    they are stopped or `release()`d, which lets a test overlap requests.
    """

    def __init__(self, answer_handshake: bool = True):
        self.sent: List[str] = []
        self.script: Dict[SearchKey, Tuple[List[str], Optional[str]]] = {}
        self.held: Set[SearchKey] = set()
        self.answer_handshake = answer_handshake
        self.opened = False
        self.closed = False
        self._queue: asyncio.Queue = asyncio.Queue()
        self._fen: Optional[str] = None
        self._running: Optional[SearchKey] = None

    def add_search(self, fen: str, info: List[str], best: Optional[str], search_move: Optional[str] = None,
                   hold: bool = False) -> None:
        key = (fen, search_move)
        self.script[key] = (info, best)
        if hold:
            self.held.add(key)

    def emit(self, line: str) -> None:
        self._queue.put_nowait(line)

    def release(self) -> None:
        if self._running is not None:
            self._finish(self._running)

    def _finish(self, key: SearchKey) -> None:
        info, best = self.script.get(key, ([], None))
        for line in info:
            self.emit(line)
        self.emit(f"bestmove {best or '(none)'}")
        self._running = None

    async def open(self) -> None:
        self.opened = True

    async def send(self, line: str) -> None:
        self.sent.append(line)
        if line == "uci" and self.answer_handshake:
            self.emit("id name FakeFish")
            self.emit("uciok")
        elif line == "isready" and self.answer_handshake:
            self.emit("readyok")
        elif line.startswith("position fen "):
            self._fen = line[len("position fen "):]
        elif line.startswith("go "):
            parts = line.split()
            search_move = parts[parts.index("searchmoves") + 1] if "searchmoves" in parts else None
            key = (self._fen, search_move)
            self._running = key
            if key not in self.held:
                self._finish(key)
        elif line == "stop" and self._running is not None:
            self._finish(self._running)

    async def lines(self):
        while True:
            line = await self._queue.get()
            if line is None:
                return
            yield line

    async def close(self) -> None:
        self.closed = True
        self._queue.put_nowait(None)


@pytest.fixture
def fake_engine() -> FakeUciEngine:
    return FakeUciEngine()


async def settle(rounds: int = 20) -> None:
    """Lets queued tasks and the session's reader run."""
    for _ in range(rounds):
        await asyncio.sleep(0)
