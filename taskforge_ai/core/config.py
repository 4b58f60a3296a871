"""
Configuration Settings.

This module defines the application configuration using Pydantic's BaseSettings.
It automatically loads all configuration from environment variables and .env file
without explicit dotenv loading.
"""

import os
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# =====================================================================
# Grouped Configuration Models
# =====================================================================


class ModelPricingConfig(BaseModel):
    """Per-million-token prices used when the backend does not report a cost."""

    input_price: Optional[float] = Field(
        default=None, alias="TASKFORGE_AI_INPUT_PRICE", description="USD per million input tokens"
    )
    output_price: Optional[float] = Field(
        default=None, alias="TASKFORGE_AI_OUTPUT_PRICE", description="USD per million output tokens"
    )
    cache_writes_price: Optional[float] = Field(
        default=None, alias="TASKFORGE_AI_CACHE_WRITES_PRICE", description="USD per million cache-write tokens"
    )
    cache_reads_price: Optional[float] = Field(
        default=None, alias="TASKFORGE_AI_CACHE_READS_PRICE", description="USD per million cache-read tokens"
    )

    model_config = {"populate_by_name": True, "extra": "ignore"}


# =====================================================================
# Main Settings Class
# =====================================================================


class Settings(BaseSettings):
    """
    Application settings model.

    All properties are automatically bound from environment variables and .env file.
    Pydantic's BaseSettings handles dotenv loading automatically via model_config.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # =====================================================================
    # General
    # =====================================================================
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        alias="TASKFORGE_AI_LOG_LEVEL",
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///taskforge_ai.db",
        description="Async SQLAlchemy URL for task history and message persistence",
        alias="TASKFORGE_AI_DATABASE_URL",
    )
    workspace: str = Field(
        default_factory=os.getcwd,
        description="Working directory of the tasks",
        alias="TASKFORGE_AI_WORKSPACE",
    )

    # =====================================================================
    # Model Configuration
    # =====================================================================
    model: str = Field(
        default="openai:gpt-4o",
        description="pydantic-ai model identifier (provider:model)",
        alias="TASKFORGE_AI_MODEL",
    )
    default_mode: str = Field(
        default="code",
        description="Mode slug used for fresh tasks",
        alias="TASKFORGE_AI_DEFAULT_MODE",
    )
    input_price: Optional[float] = Field(default=None, alias="TASKFORGE_AI_INPUT_PRICE")
    output_price: Optional[float] = Field(default=None, alias="TASKFORGE_AI_OUTPUT_PRICE")
    cache_writes_price: Optional[float] = Field(default=None, alias="TASKFORGE_AI_CACHE_WRITES_PRICE")
    cache_reads_price: Optional[float] = Field(default=None, alias="TASKFORGE_AI_CACHE_READS_PRICE")

    # =====================================================================
    # Request Loop Configuration
    # =====================================================================
    consecutive_mistake_limit: int = Field(
        default=3,
        ge=0,
        description="Consecutive mistakes before the user is asked for guidance (0 disables)",
        alias="TASKFORGE_AI_CONSECUTIVE_MISTAKE_LIMIT",
    )
    background_drain_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Wall-clock budget for collecting trailing usage after the stream was abandoned",
        alias="TASKFORGE_AI_BACKGROUND_DRAIN_TIMEOUT_SECONDS",
    )
    mode_switch_delay_seconds: float = Field(
        default=0.5,
        ge=0,
        description="Settle delay after restoring a paused task's mode",
        alias="TASKFORGE_AI_MODE_SWITCH_DELAY_SECONDS",
    )
    auto_approve_read_only: bool = Field(
        default=True,
        description="Skip the approval prompt for read-only tools",
        alias="TASKFORGE_AI_AUTO_APPROVE_READ_ONLY",
    )
    command_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout of the execute_command tool",
        alias="TASKFORGE_AI_COMMAND_TIMEOUT_SECONDS",
    )
    environment_max_files: int = Field(
        default=200,
        ge=0,
        description="Maximum number of files listed in the environment details",
        alias="TASKFORGE_AI_ENVIRONMENT_MAX_FILES",
    )

    # =====================================================================
    # Computed Properties (Grouped Configurations)
    # =====================================================================

    @property
    def pricing(self) -> ModelPricingConfig:
        """Get model pricing configuration from environment variables."""
        return ModelPricingConfig.model_validate(self.model_dump(by_alias=True))


settings = Settings()


def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return settings
