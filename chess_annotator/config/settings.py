# chess_annotator/config/settings.py
"""
Configuration settings for the chess annotator, powered by Pydantic.

This module centralizes all tunable parameters, default values, and configuration
schemas. Using Pydantic allows for type-safe, self-documenting configuration
that can be loaded from environment variables, providing a clear separation of
configuration from code.
"""
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Nested Models for Configuration Schemas ---

class EngineSettings(BaseModel):
    """Configuration for the single UCI engine subprocess."""
    path: str = Field("stockfish", description="The executable name or path of the UCI engine.")
    parameters: dict = Field(default_factory=dict, description="Extra UCI options sent on startup (e.g., {'Threads': 2, 'Hash': 128}).")
    handshake_timeout_s: float = Field(10.0, description="Deadline for the `uciok` and `readyok` replies.")

    @field_validator("handshake_timeout_s")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("handshake_timeout_s must be positive.")
        return value


class AnalysisSettings(BaseModel):
    """
    Groups all settings related to evaluation and classification.

    The live and classification depths are deliberately independent; the
    classification pass runs shallower to keep a full game affordable.
    """
    live_depth: int = Field(15, ge=1, description="Search depth for navigation-triggered live evaluation.")
    classification_depth: int = Field(10, ge=1, description="Search depth for each classification round trip.")
    debounce_ms: int = Field(250, ge=0, description="Window in which rapid evaluate() calls are coalesced.")
    book_move_window: int = Field(10, ge=0, description="Only the first N moves of a game are looked up in the opening book.")
    search_timeout_s: float = Field(5.0, gt=0, description="Deadline for one move's engine round trips.")
    book_timeout_s: float = Field(5.0, gt=0, description="Deadline for one opening book lookup.")
    warmup_enabled: bool = Field(False, description="Evaluate every position at `warmup_depth` once classification completes.")
    warmup_depth: int = Field(5, ge=1, description="Depth of the post-classification warm-up pass.")


class BookSettings(BaseModel):
    """Configuration for the opening explorer HTTP collaborator."""
    enabled: bool = True
    base_url: str = Field("https://explorer.lichess.ovh/masters", description="Explorer endpoint queried with the first four FEN fields.")
    retry_attempts: int = Field(2, ge=1, description="Attempts per lookup on transient transport errors.")


class LoggingSettings(BaseModel):
    level: str = "INFO"
    json_console: bool = False
    file: Optional[str] = None

# --- Main Application Settings Class ---

class Settings(BaseSettings):
    """
    Main configuration class for the application.

    It loads settings from environment variables with the prefix 'CHESS_ANNOTATOR_'.
    Nested models can be configured using a double underscore delimiter, e.g.,
    `CHESS_ANNOTATOR_ANALYSIS__LIVE_DEPTH=18`.
    """
    model_config = SettingsConfigDict(env_prefix='CHESS_ANNOTATOR_', env_nested_delimiter='__')

    engine: EngineSettings = Field(default_factory=EngineSettings)
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
    book: BookSettings = Field(default_factory=BookSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# A singleton instance of the settings, accessible throughout the application.
settings = Settings()
