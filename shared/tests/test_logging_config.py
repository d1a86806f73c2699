"""Tests for shared logging configuration."""

import json
import logging
import re

from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
import pytest
import structlog

from shared.logging import (
    correlation_headers,
    correlation_middleware,
    get_logger,
    set_correlation_id,
    setup_logging,
)


def strip_ansi(text):
    ansi_escape = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")
    return ansi_escape.sub("", text)


def parse_json_lines(output):
    return [json.loads(line) for line in output.strip().split("\n") if line.strip()]


def find_event(output, event):
    return next((e for e in parse_json_lines(output) if e.get("event") == event), None)


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset stdlib and structlog state around every test."""
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


class TestSetupLogging:
    def test_json_format_binds_service(self, capsys):
        setup_logging(service_name="panel", log_format="json", log_level="INFO")

        structlog.get_logger().info("server_started", server_id="abc", port=25565)

        entry = find_event(capsys.readouterr().out, "server_started")
        assert entry is not None
        assert entry["service"] == "panel"
        assert entry["server_id"] == "abc"
        assert entry["port"] == 25565  # noqa: PLR2004
        assert entry["level"] == "info"
        assert "timestamp" in entry

    def test_console_format(self, capsys):
        setup_logging(service_name="node-agent", log_format="console", log_level="INFO")

        structlog.get_logger().info("health_check_completed", checked=3)

        output = strip_ansi(capsys.readouterr().out)
        assert "health_check_completed" in output
        assert "checked=3" in output

    def test_reads_environment(self, monkeypatch, capsys):
        monkeypatch.setenv("SERVICE_NAME", "env_agent")
        monkeypatch.setenv("LOG_FORMAT", "json")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")

        setup_logging()
        structlog.get_logger().debug("metrics_collected", servers=2)

        entry = find_event(capsys.readouterr().out, "metrics_collected")
        assert entry is not None
        assert entry["service"] == "env_agent"
        assert entry["level"] == "debug"

    def test_level_filtering(self, capsys):
        setup_logging(service_name="panel", log_format="console", log_level="WARNING")

        logger = get_logger("panel.lifecycle")
        logger.info("info_event")
        logger.warning("warning_event")

        output = strip_ansi(capsys.readouterr().out)
        assert "info_event" not in output
        assert "warning_event" in output

    def test_error_carries_exception(self, capsys):
        setup_logging(service_name="panel", log_format="json", log_level="INFO")

        try:
            raise ConnectionError("node unreachable")
        except ConnectionError as e:
            structlog.get_logger().error(
                "node_request_failed", error=str(e), error_type=type(e).__name__, exc_info=True
            )

        entry = find_event(capsys.readouterr().out, "node_request_failed")
        assert entry["error"] == "node unreachable"
        assert entry["error_type"] == "ConnectionError"
        assert "exception" in entry


class TestCorrelation:
    def test_bound_correlation_id_is_logged(self, capsys):
        setup_logging(service_name="panel", log_format="json", log_level="INFO")

        set_correlation_id("req_1234")
        structlog.get_logger().info("placement_reserved")

        entry = find_event(capsys.readouterr().out, "placement_reserved")
        assert entry["correlation_id"] == "req_1234"

    def test_correlation_headers(self):
        assert correlation_headers() == {}

        set_correlation_id("req_abcd")

        assert correlation_headers() == {"X-Correlation-ID": "req_abcd"}

    @pytest.mark.asyncio
    async def test_middleware_echoes_header(self, capsys):
        setup_logging(service_name="panel", log_format="json", log_level="INFO")
        app = FastAPI()
        app.middleware("http")(correlation_middleware)

        @app.get("/ping")
        async def ping():
            return {"ok": True}

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/ping", headers={"X-Correlation-ID": "req_fixed"})

        assert response.status_code == 200  # noqa: PLR2004
        assert response.headers["X-Correlation-ID"] == "req_fixed"
        entry = find_event(capsys.readouterr().out, "http_request")
        assert entry["correlation_id"] == "req_fixed"
        assert entry["path"] == "/ping"
