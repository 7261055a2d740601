"""
Configuration Settings.

This module defines the application configuration using Pydantic's BaseSettings.
It automatically loads all configuration from environment variables and .env file
without explicit dotenv loading.
"""

from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# =====================================================================
# Grouped Configuration Models
# =====================================================================


class LoopConfig(BaseModel):
    """ReAct loop configuration."""

    max_steps: int = Field(default=10, alias="TANDEM_AI_MAX_STEPS", description="Default step ceiling for a run")
    max_steps_limit: int = Field(
        default=100, alias="TANDEM_AI_MAX_STEPS_LIMIT", description="Hard ceiling that step extensions never exceed"
    )
    step_extension: int = Field(
        default=10, alias="TANDEM_AI_STEP_EXTENSION", description="Steps granted per approved step-limit extension"
    )
    feedback_mode: bool = Field(
        default=False, alias="TANDEM_AI_FEEDBACK_MODE", description="Ask a human before hitting the step limit"
    )
    feedback_threshold_offset: int = Field(
        default=1,
        alias="TANDEM_AI_FEEDBACK_THRESHOLD_OFFSET",
        description="Ask for feedback once iteration >= max_steps - offset",
    )
    planning_mode: bool = Field(
        default=False, alias="TANDEM_AI_PLANNING_MODE", description="Decompose tasks into plans before reasoning"
    )
    model_max_retries: int = Field(
        default=3, alias="TANDEM_AI_MODEL_MAX_RETRIES", description="Attempts for a single model call"
    )
    model_retry_delay_ms: int = Field(
        default=500, alias="TANDEM_AI_MODEL_RETRY_DELAY_MS", description="Linear back-off base between model retries"
    )
    context_max_messages: int = Field(
        default=24, alias="TANDEM_AI_CONTEXT_MAX_MESSAGES", description="Working-memory messages kept after trimming"
    )
    context_max_tokens: int = Field(
        default=8000, alias="TANDEM_AI_CONTEXT_MAX_TOKENS", description="Estimated token budget of working memory"
    )

    model_config = {"populate_by_name": True, "protected_namespaces": ()}


class LoopDetectionConfig(BaseModel):
    """Team loop detection thresholds."""

    min_content_length: int = Field(
        default=10, alias="TANDEM_AI_LOOP_MIN_CONTENT_LENGTH", description="Shorter replies are never flagged"
    )
    similarity_threshold: float = Field(
        default=0.95, alias="TANDEM_AI_LOOP_SIMILARITY_THRESHOLD", description="Similarity treated as a repeat"
    )
    scan_window_size: int = Field(
        default=10, alias="TANDEM_AI_LOOP_SCAN_WINDOW_SIZE", description="Steps scanned backward for self loops"
    )
    max_repeat_allowed: int = Field(
        default=0, alias="TANDEM_AI_LOOP_MAX_REPEAT_ALLOWED", description="Tolerated consecutive repeats"
    )

    model_config = {"populate_by_name": True}


class TeamConfig(BaseModel):
    """Team coordinator configuration."""

    max_total_iterations: int = Field(
        default=8, alias="TANDEM_AI_TEAM_MAX_ITERATIONS", description="Member invocations allowed per team run"
    )
    finish_marker: str = Field(
        default="FINISH", alias="TANDEM_AI_TEAM_FINISH_MARKER", description="Router token that ends the team run"
    )
    history_window: int = Field(
        default=5, alias="TANDEM_AI_TEAM_HISTORY_WINDOW", description="Agent steps shown to the next member"
    )

    model_config = {"populate_by_name": True}


class PersistenceConfig(BaseModel):
    """Session persistence configuration."""

    session_dir: str = Field(
        default="./sessions", alias="TANDEM_AI_SESSION_DIR", description="Directory used by the file session store"
    )
    database_url: Optional[str] = Field(
        default=None, alias="TANDEM_AI_DATABASE_URL", description="Async SQLAlchemy URL for the SQL session store"
    )

    model_config = {"populate_by_name": True}


# =====================================================================
# Main Settings Class
# =====================================================================


class TandemSettings(BaseSettings):
    """
    Application settings model.

    All properties are automatically bound from environment variables and .env file.
    Pydantic's BaseSettings handles dotenv loading automatically via model_config.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
        populate_by_name=True,
        protected_namespaces=(),
    )

    tandem_ai_log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        alias="TANDEM_AI_LOG_LEVEL",
    )

    # =====================================================================
    # ReAct Loop
    # =====================================================================
    max_steps: int = Field(default=10, alias="TANDEM_AI_MAX_STEPS")
    max_steps_limit: int = Field(default=100, alias="TANDEM_AI_MAX_STEPS_LIMIT")
    step_extension: int = Field(default=10, alias="TANDEM_AI_STEP_EXTENSION")
    feedback_mode: bool = Field(default=False, alias="TANDEM_AI_FEEDBACK_MODE")
    feedback_threshold_offset: int = Field(default=1, alias="TANDEM_AI_FEEDBACK_THRESHOLD_OFFSET")
    planning_mode: bool = Field(default=False, alias="TANDEM_AI_PLANNING_MODE")
    model_max_retries: int = Field(default=3, alias="TANDEM_AI_MODEL_MAX_RETRIES")
    model_retry_delay_ms: int = Field(default=500, alias="TANDEM_AI_MODEL_RETRY_DELAY_MS")
    context_max_messages: int = Field(default=24, alias="TANDEM_AI_CONTEXT_MAX_MESSAGES")
    context_max_tokens: int = Field(default=8000, alias="TANDEM_AI_CONTEXT_MAX_TOKENS")

    # =====================================================================
    # Loop Detection
    # =====================================================================
    loop_min_content_length: int = Field(default=10, alias="TANDEM_AI_LOOP_MIN_CONTENT_LENGTH")
    loop_similarity_threshold: float = Field(default=0.95, alias="TANDEM_AI_LOOP_SIMILARITY_THRESHOLD")
    loop_scan_window_size: int = Field(default=10, alias="TANDEM_AI_LOOP_SCAN_WINDOW_SIZE")
    loop_max_repeat_allowed: int = Field(default=0, alias="TANDEM_AI_LOOP_MAX_REPEAT_ALLOWED")

    # =====================================================================
    # Team
    # =====================================================================
    team_max_iterations: int = Field(default=8, alias="TANDEM_AI_TEAM_MAX_ITERATIONS")
    team_finish_marker: str = Field(default="FINISH", alias="TANDEM_AI_TEAM_FINISH_MARKER")
    team_history_window: int = Field(default=5, alias="TANDEM_AI_TEAM_HISTORY_WINDOW")

    # =====================================================================
    # Persistence
    # =====================================================================
    session_dir: str = Field(default="./sessions", alias="TANDEM_AI_SESSION_DIR")
    database_url: Optional[str] = Field(default=None, alias="TANDEM_AI_DATABASE_URL")

    # =====================================================================
    # Computed Properties (Grouped Configurations)
    # =====================================================================

    @property
    def loop(self) -> LoopConfig:
        """Get ReAct loop configuration from environment variables."""
        return LoopConfig.model_validate(self.model_dump(by_alias=True))

    @property
    def loop_detection(self) -> LoopDetectionConfig:
        """Get loop detection configuration from environment variables."""
        return LoopDetectionConfig.model_validate(self.model_dump(by_alias=True))

    @property
    def team(self) -> TeamConfig:
        """Get team configuration from environment variables."""
        return TeamConfig.model_validate(self.model_dump(by_alias=True))

    @property
    def persistence(self) -> PersistenceConfig:
        """Get persistence configuration from environment variables."""
        return PersistenceConfig.model_validate(self.model_dump(by_alias=True))


settings = TandemSettings()
