"""Tests for the JSON-lines logging setup."""

from __future__ import annotations

import json
import logging
import sys

import pytest

from trellis.logging_setup import JsonLineFormatter, setup_logging


@pytest.fixture(autouse=True)
def _restore_trellis_logger():
    logger = logging.getLogger("trellis")
    saved = (logger.level, list(logger.handlers), logger.propagate)
    yield
    logger.setLevel(saved[0])
    logger.handlers = saved[1]
    logger.propagate = saved[2]


class TestSetupLogging:
    def test_writes_json_lines_to_stderr(self, capsys, monkeypatch) -> None:
        monkeypatch.delenv("TRELLIS_LOG_LEVEL", raising=False)
        setup_logging("INFO")
        logging.getLogger("trellis.core.linking").info(
            "relationship created", extra={"context": {"relationship_id": "rel-1"}}
        )

        captured = capsys.readouterr()
        assert captured.out == ""
        record = json.loads(captured.err.strip())
        assert record["level"] == "info"
        assert record["logger"] == "trellis.core.linking"
        assert record["message"] == "relationship created"
        assert record["context"] == {"relationship_id": "rel-1"}
        assert record["timestamp"].endswith("Z")

    def test_level_filters(self, capsys, monkeypatch) -> None:
        monkeypatch.delenv("TRELLIS_LOG_LEVEL", raising=False)
        setup_logging(logging.WARNING)
        logging.getLogger("trellis.storage").info("quiet")
        assert capsys.readouterr().err == ""

    def test_env_sets_default_level(self, capsys, monkeypatch) -> None:
        monkeypatch.setenv("TRELLIS_LOG_LEVEL", "debug")
        setup_logging()
        logging.getLogger("trellis.core.graph").debug("visited")
        assert "visited" in capsys.readouterr().err

    def test_explicit_level_beats_env(self, capsys, monkeypatch) -> None:
        monkeypatch.setenv("TRELLIS_LOG_LEVEL", "debug")
        setup_logging("error")
        logging.getLogger("trellis.core.graph").warning("ignored")
        assert capsys.readouterr().err == ""

    def test_unknown_env_level_falls_back_to_warning(self, monkeypatch) -> None:
        monkeypatch.setenv("TRELLIS_LOG_LEVEL", "loud")
        setup_logging()
        assert logging.getLogger("trellis").level == logging.WARNING

    def test_repeat_calls_replace_handlers(self, monkeypatch) -> None:
        monkeypatch.delenv("TRELLIS_LOG_LEVEL", raising=False)
        setup_logging()
        setup_logging()
        logger = logging.getLogger("trellis")
        assert len(logger.handlers) == 1
        assert logger.propagate is False


class TestJsonLineFormatter:
    def test_includes_exception(self) -> None:
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord(
                "trellis", logging.ERROR, __file__, 1, "failed", (), sys.exc_info()
            )
        payload = json.loads(JsonLineFormatter().format(record))
        assert payload["message"] == "failed"
        assert "RuntimeError: boom" in payload["exception"]
        assert "context" not in payload
