"""Unit tests for infrastructure.logging.setup module."""

import logging

import pytest
import structlog

from infrastructure.logging import setup
from infrastructure.logging.setup import configure_logging, get_module_logger


@pytest.mark.unit
class TestConfigureLogging:
    def test_test_environment_is_detected(self):
        assert setup._is_test_environment() is True

    def test_logging_suppressed_under_pytest(self):
        logger = configure_logging()
        assert logger is not None
        assert logging.root.level == logging.CRITICAL + 1


@pytest.mark.unit
class TestGetModuleLogger:
    def test_binds_calling_module(self):
        logger = get_module_logger()
        context = structlog.get_context(logger)
        assert context["component"] == "test_setup"
        assert context["module_path"].endswith("test_setup")


@pytest.mark.unit
class TestBuildProcessors:
    def test_json_output_in_production(self):
        processors = setup.build_processors("abc", "production", json_output=True)
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)

    def test_console_output_elsewhere(self):
        processors = setup.build_processors("abc", "dev", json_output=False)
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)
