"""
Unit tests for the Logfire monitoring module.

This test suite covers:
- Environment variable parsing
- Logfire initialization with various configurations
- Event helpers with Logfire disabled and enabled
- Graceful degradation when Logfire fails
"""

import importlib
import os
from unittest.mock import MagicMock, patch

import pytest

import taskforge_ai.core.monitoring as monitoring_module


@pytest.fixture(autouse=True)
def _restore_monitoring_module():
    yield
    with patch.dict(os.environ, {}, clear=True):
        importlib.reload(monitoring_module)


class TestLogfireEnvironmentConfiguration:
    """Test environment variable configuration for Logfire."""

    def test_logfire_disabled_by_default(self):
        """Test that Logfire is disabled by default."""
        with patch.dict(os.environ, {}, clear=True):
            importlib.reload(monitoring_module)

            assert monitoring_module.LOGFIRE_ENABLED is False
            assert monitoring_module.LOGFIRE_PROJECT_NAME == "taskforge-ai"

    @pytest.mark.parametrize("value", ["true", "1", "yes", "TRUE"])
    def test_logfire_enabled_values(self, value):
        """Test the accepted spellings of an enabled flag."""
        with patch.dict(os.environ, {"LOGFIRE_ENABLED": value}):
            importlib.reload(monitoring_module)

            assert monitoring_module.LOGFIRE_ENABLED is True

    def test_service_settings_from_environment(self):
        """Test service name, version and environment are read from environment."""
        env_vars = {
            "LOGFIRE_TOKEN": "test-token-12345",
            "LOGFIRE_SERVICE_NAME": "my-agent",
            "LOGFIRE_SERVICE_VERSION": "1.2.3",
            "LOGFIRE_ENVIRONMENT": "production",
        }
        with patch.dict(os.environ, env_vars):
            importlib.reload(monitoring_module)

            assert monitoring_module.LOGFIRE_TOKEN == "test-token-12345"
            assert monitoring_module.LOGFIRE_SERVICE_NAME == "my-agent"
            assert monitoring_module.LOGFIRE_SERVICE_VERSION == "1.2.3"
            assert monitoring_module.LOGFIRE_ENVIRONMENT == "production"

    def test_feature_flags_can_be_disabled(self):
        """Test that instrumentation flags default to true and can be disabled."""
        with patch.dict(os.environ, {}, clear=True):
            importlib.reload(monitoring_module)
            assert monitoring_module.LOGFIRE_TRACE_PYDANTIC_AI is True
            assert monitoring_module.LOGFIRE_TRACE_SQLALCHEMY is True

        with patch.dict(os.environ, {"LOGFIRE_TRACE_PYDANTIC_AI": "false", "LOGFIRE_TRACE_SQLALCHEMY": "0"}):
            importlib.reload(monitoring_module)
            assert monitoring_module.LOGFIRE_TRACE_PYDANTIC_AI is False
            assert monitoring_module.LOGFIRE_TRACE_SQLALCHEMY is False


class TestInitializeLogfire:
    """Test Logfire initialization function."""

    @patch("taskforge_ai.core.monitoring.LOGFIRE_ENABLED", False)
    @patch("taskforge_ai.core.monitoring.logger")
    def test_initialize_logfire_disabled(self, mock_logger):
        """Test that initialization is skipped when Logfire is disabled."""
        monitoring_module.initialize_logfire()

        mock_logger.info.assert_called_once()
        assert "disabled" in mock_logger.info.call_args[0][0].lower()

    @patch("taskforge_ai.core.monitoring.LOGFIRE_ENABLED", True)
    @patch("taskforge_ai.core.monitoring.LOGFIRE_TOKEN", "")
    @patch("taskforge_ai.core.monitoring.logger")
    def test_initialize_logfire_no_token(self, mock_logger):
        """Test that initialization warns when token is not set."""
        monitoring_module.initialize_logfire()

        mock_logger.warning.assert_called_once()
        assert "token" in mock_logger.warning.call_args[0][0].lower()

    @patch("taskforge_ai.core.monitoring.LOGFIRE_ENABLED", True)
    @patch("taskforge_ai.core.monitoring.LOGFIRE_TOKEN", "test-token")
    @patch("taskforge_ai.core.monitoring.LOGFIRE_SERVICE_NAME", "test-service")
    @patch("taskforge_ai.core.monitoring.LOGFIRE_ENVIRONMENT", "test")
    @patch("taskforge_ai.core.monitoring.LOGFIRE_TRACE_PYDANTIC_AI", True)
    @patch("taskforge_ai.core.monitoring.LOGFIRE_TRACE_SQLALCHEMY", False)
    def test_initialize_logfire_configures_and_instruments(self):
        """Test configure is called and only the enabled instrumentation runs."""
        with patch("logfire.configure") as mock_configure, patch(
            "logfire.instrument_pydantic_ai"
        ) as mock_pydantic_ai, patch("logfire.instrument_sqlalchemy") as mock_sqlalchemy:
            monitoring_module.initialize_logfire()

        mock_configure.assert_called_once()
        assert mock_configure.call_args.kwargs["token"] == "test-token"
        assert mock_configure.call_args.kwargs["service_name"] == "test-service"
        mock_pydantic_ai.assert_called_once()
        mock_sqlalchemy.assert_not_called()

    @patch("taskforge_ai.core.monitoring.LOGFIRE_ENABLED", True)
    @patch("taskforge_ai.core.monitoring.LOGFIRE_TOKEN", "test-token")
    @patch("taskforge_ai.core.monitoring.logger")
    def test_initialize_logfire_survives_configure_failure(self, mock_logger):
        """Test that a failing configure call is logged, not raised."""
        with patch("logfire.configure", side_effect=RuntimeError("no network")):
            monitoring_module.initialize_logfire()

        mock_logger.error.assert_called_once()
        assert "no network" in mock_logger.error.call_args[0][0]


class TestEventHelpers:
    """Test the task event helpers."""

    @patch("taskforge_ai.core.monitoring.LOGFIRE_ENABLED", False)
    def test_helpers_only_log_when_disabled(self):
        """Test that disabled Logfire never touches the logfire API."""
        with patch("logfire.info") as mock_info:
            monitoring_module.capture_task_created("t1", "code")
            monitoring_module.capture_conversation_message("t1", "user")

        mock_info.assert_not_called()

    @patch("taskforge_ai.core.monitoring.LOGFIRE_ENABLED", True)
    def test_llm_completion_carries_usage_attributes(self):
        """Test the LLM completion event attributes."""
        with patch("logfire.info") as mock_info:
            monitoring_module.capture_llm_completion("t1", 10, 20, 1, 2, 0.5)

        mock_info.assert_called_once()
        args, kwargs = mock_info.call_args
        assert args[0] == "LLM completion"
        assert kwargs["task_id"] == "t1"
        assert kwargs["input_tokens"] == 10
        assert kwargs["cost_usd"] == 0.5

    @patch("taskforge_ai.core.monitoring.LOGFIRE_ENABLED", True)
    def test_task_exception_includes_context(self):
        """Test the exception event carries the error name and extra context."""
        with patch("logfire.error") as mock_error:
            monitoring_module.capture_task_exception("t1", ValueError("bad"), {"abandoned": True})

        args, kwargs = mock_error.call_args
        assert args[0] == "ValueError: bad"
        assert kwargs == {"task_id": "t1", "abandoned": True}

    @patch("taskforge_ai.core.monitoring.LOGFIRE_ENABLED", True)
    def test_logfire_failure_is_swallowed(self):
        """Test that a failing logfire call never reaches the caller."""
        with patch("logfire.warn", MagicMock(side_effect=RuntimeError("boom"))):
            monitoring_module.capture_consecutive_mistake_error("t1")
