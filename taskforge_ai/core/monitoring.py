"""
Monitoring and Tracing Configuration Module.

This module provides integration with Pydantic Logfire for monitoring and
tracing of the agent engine, including:
- LLM completions with token counters and cost
- Conversation message capture
- Consecutive-mistake and task exception events
- Task lifecycle events (created, restarted)

Telemetry is best effort: every helper swallows its own failures and falls
back to a DEBUG log line, so instrumentation can never break a task.
"""

import logging
import os
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Logfire configuration from environment
LOGFIRE_ENABLED = os.getenv("LOGFIRE_ENABLED", "false").lower() in ("true", "1", "yes")
LOGFIRE_TOKEN = os.getenv("LOGFIRE_TOKEN", "")
LOGFIRE_PROJECT_NAME = os.getenv("LOGFIRE_PROJECT_NAME", "taskforge-ai")
LOGFIRE_ENVIRONMENT = os.getenv("LOGFIRE_ENVIRONMENT", "development")
LOGFIRE_SERVICE_NAME = os.getenv("LOGFIRE_SERVICE_NAME", "taskforge-ai")
LOGFIRE_SERVICE_VERSION = os.getenv("LOGFIRE_SERVICE_VERSION", "0.0.0")

# Feature flags
LOGFIRE_TRACE_PYDANTIC_AI = os.getenv("LOGFIRE_TRACE_PYDANTIC_AI", "true").lower() in ("true", "1", "yes")
LOGFIRE_TRACE_SQLALCHEMY = os.getenv("LOGFIRE_TRACE_SQLALCHEMY", "true").lower() in ("true", "1", "yes")


def initialize_logfire() -> None:
    """
    Initialize Pydantic Logfire for monitoring and tracing.

    Sets up Logfire with automatic instrumentation for pydantic-ai model calls
    and SQLAlchemy operations. The initialization is conditional based on the
    LOGFIRE_ENABLED environment variable.
    """
    if not LOGFIRE_ENABLED:
        logger.info("Logfire monitoring is disabled. Set LOGFIRE_ENABLED=true to enable.")
        return

    if not LOGFIRE_TOKEN:
        logger.warning(
            "Logfire is enabled but LOGFIRE_TOKEN is not set. "
            "Monitoring will not work. Set LOGFIRE_TOKEN to enable Logfire."
        )
        return

    try:
        import logfire

        logfire.configure(
            token=LOGFIRE_TOKEN,
            service_name=LOGFIRE_SERVICE_NAME,
            service_version=LOGFIRE_SERVICE_VERSION,
            environment=LOGFIRE_ENVIRONMENT,
        )

        if LOGFIRE_TRACE_PYDANTIC_AI:
            try:
                logfire.instrument_pydantic_ai()
                logger.info("Logfire: Pydantic AI instrumentation enabled")
            except Exception as e:
                logger.warning(f"Failed to instrument Pydantic AI: {e}")

        if LOGFIRE_TRACE_SQLALCHEMY:
            try:
                logfire.instrument_sqlalchemy()
                logger.info("Logfire: SQLAlchemy instrumentation enabled")
            except Exception as e:
                logger.warning(f"Failed to instrument SQLAlchemy: {e}")

        logger.info(
            f"Logfire monitoring initialized: "
            f"project={LOGFIRE_PROJECT_NAME}, "
            f"environment={LOGFIRE_ENVIRONMENT}, "
            f"service={LOGFIRE_SERVICE_NAME}"
        )
    except Exception as e:
        logger.error(f"Failed to initialize Logfire: {e}", exc_info=True)


def _emit(level: str, message: str, **attributes: Any) -> None:
    if not LOGFIRE_ENABLED:
        logger.debug(f"{message}: {attributes}")
        return
    try:
        import logfire

        getattr(logfire, level)(message, **attributes)
    except Exception:
        logger.debug(f"Could not log to Logfire: {message}")


def capture_conversation_message(task_id: str, role: str) -> None:
    """
    Record that a message was added to a task's conversation.

    Args:
        task_id: The task identifier
        role: ``user`` or ``assistant``
    """
    _emit("info", "Conversation message", task_id=task_id, role=role)


def capture_llm_completion(
    task_id: str,
    input_tokens: int,
    output_tokens: int,
    cache_write_tokens: int,
    cache_read_tokens: int,
    cost: Optional[float],
) -> None:
    """
    Log an LLM completion with usage metrics.

    Args:
        task_id: The task identifier
        input_tokens: Input tokens of the request
        output_tokens: Output tokens of the request
        cache_write_tokens: Tokens written to the prompt cache
        cache_read_tokens: Tokens read from the prompt cache
        cost: The cost in USD, when known
    """
    _emit(
        "info",
        "LLM completion",
        task_id=task_id,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        cache_write_tokens=cache_write_tokens,
        cache_read_tokens=cache_read_tokens,
        cost_usd=cost,
    )


def capture_consecutive_mistake_error(task_id: str) -> None:
    _emit("warn", "Consecutive mistake limit reached", task_id=task_id)


def capture_task_exception(task_id: str, error: BaseException, context: Optional[dict] = None) -> None:
    """
    Log an exception raised while processing a task.

    Args:
        task_id: The task identifier
        error: The exception
        context: Additional attributes such as ``abandoned`` and ``abort``
    """
    _emit("error", f"{type(error).__name__}: {error}", task_id=task_id, **(context or {}))


def capture_task_created(task_id: str, mode: str) -> None:
    _emit("info", "Task created", task_id=task_id, mode=mode)


def capture_task_restarted(task_id: str) -> None:
    _emit("info", "Task restarted", task_id=task_id)
