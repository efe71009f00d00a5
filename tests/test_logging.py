"""Tests for structured logging setup and turn-scoped context."""

import structlog

from cogniflow.telemetry.logging import clear_context, configure_logging, turn_context


class TestTurnContext:
    def test_binds_turn_and_user(self):
        with turn_context("u-42") as turn_id:
            bound = structlog.contextvars.get_contextvars()

        assert turn_id.startswith("turn_")
        assert bound == {"turn_id": turn_id, "user_id": "u-42"}
        assert structlog.contextvars.get_contextvars() == {}

    def test_keeps_host_context(self):
        structlog.contextvars.bind_contextvars(request_id="req-7")

        with turn_context() as turn_id:
            assert structlog.contextvars.get_contextvars() == {
                "request_id": "req-7",
                "turn_id": turn_id,
            }

        assert structlog.contextvars.get_contextvars() == {"request_id": "req-7"}

    def test_nested_turn_restores_outer(self):
        with turn_context("u-1") as outer:
            with turn_context() as inner:
                assert structlog.contextvars.get_contextvars()["turn_id"] == inner
            assert structlog.contextvars.get_contextvars() == {"turn_id": outer, "user_id": "u-1"}

    def test_clear_context(self):
        structlog.contextvars.bind_contextvars(request_id="req-1")
        clear_context()
        assert structlog.contextvars.get_contextvars() == {}


class TestConfigureLogging:
    def test_json_renderer_in_production_mode(self):
        configure_logging(json_logs=True, log_level="WARNING")
        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)

    def test_console_renderer_in_dev_mode(self):
        configure_logging(json_logs=False, log_level="debug")
        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)
