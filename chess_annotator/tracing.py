# chess_annotator/tracing.py

"""
tracing
~~~~~~~

This module provides components for context-aware logging across one
classification run.
"""

import functools
import uuid
from dataclasses import asdict, dataclass
from typing import Any, Callable

import structlog

logger = structlog.get_logger(__name__)

@dataclass(frozen=True, slots=True)
class CorrelationID:
    """A unique identifier for a single classification run over one game."""
    run_id: str
    game_id: str

    @classmethod
    def new(cls, game_id: str) -> "CorrelationID":
        return cls(run_id=uuid.uuid4().hex[:8], game_id=game_id)

    @property
    def short_id(self) -> str:
        """A short, human-readable version of the full ID."""
        return f"{self.game_id}:{self.run_id}"

    def as_dict(self) -> dict:
        """Returns the ID as a dictionary suitable for logging."""
        return asdict(self)


def trace_stage(func: Callable) -> Callable:
    """A decorator to add structured tracing to an async pipeline step."""
    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        stage_name = f"{args[0].__class__.__name__}.{func.__name__}"
        logger.debug("Entering processing stage.", stage=stage_name)
        result = await func(*args, **kwargs)
        logger.debug("Exiting processing stage.", stage=stage_name)
        return result
    return wrapper
