"""Tests for structured logging setup and correlation scopes."""

from __future__ import annotations

import json

import pytest

from concierge.utils.logging import (
    correlation_scope,
    get_correlation_id,
    get_logger,
    set_correlation_id,
    setup_logging,
)


class TestSetupLogging:
    def test_setup_logging_returns_none(self) -> None:
        assert setup_logging(level="INFO", log_format="json") is None

    def test_get_logger_returns_bound_logger(self) -> None:
        setup_logging(level="INFO", log_format="json")
        assert get_logger("test") is not None


class TestJsonFormat:
    def test_json_output_is_valid(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging(level="INFO", log_format="json")
        get_logger("test_json").info("order_transitioned", order_id="o-1")

        line = capsys.readouterr().err.strip().splitlines()[-1]
        parsed = json.loads(line)
        assert parsed["event"] == "order_transitioned"
        assert parsed["order_id"] == "o-1"
        assert "timestamp" in parsed
        assert parsed["level"] == "info"

    def test_level_filters(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging(level="WARNING", log_format="json")
        get_logger("test_level").info("quiet")
        assert "quiet" not in capsys.readouterr().err


class TestConsoleFormat:
    def test_console_output_is_not_json(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        setup_logging(level="INFO", log_format="console")
        get_logger("test_console").info("console test")

        output = capsys.readouterr().err.strip()
        assert "console test" in output
        with pytest.raises(json.JSONDecodeError):
            json.loads(output)


class TestCorrelationId:
    def test_set_and_get_correlation_id(self) -> None:
        set_correlation_id("corr-123")
        assert get_correlation_id() == "corr-123"
        set_correlation_id("")

    def test_scope_restores_previous(self) -> None:
        set_correlation_id("outer")
        with correlation_scope("req-1") as cid:
            assert cid == "req-1"
            assert get_correlation_id() == "req-1"
        assert get_correlation_id() == "outer"
        set_correlation_id("")

    def test_correlation_id_in_log(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging(level="INFO", log_format="json")
        with correlation_scope("req-456"):
            get_logger("test_corr").info("correlated event")

        parsed = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert parsed["correlation_id"] == "req-456"


class TestRequestContext:
    def test_scope_binds_extra_keys(self) -> None:
        import io

        buffer = io.StringIO()
        setup_logging(level="INFO", log_format="json", stream=buffer)
        with correlation_scope("req-9", action="confirm_order"):
            get_logger("test_ctx").info("inside")
        get_logger("test_ctx").info("outside")

        inside, outside = (json.loads(line) for line in buffer.getvalue().splitlines())
        assert inside["action"] == "confirm_order"
        assert inside["correlation_id"] == "req-9"
        assert "action" not in outside
        assert "correlation_id" not in outside
