"""Tests for the loguru setup and per-agent log attribution."""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator

import pytest
from loguru import logger

from virtualco.company_runtime.log import RUNTIME_LABEL, agent_label, agent_logger, setup_logging


@pytest.fixture
def restore_logging() -> Iterator[None]:
    yield
    logger.remove()
    logger.configure(extra={})
    logger.add(lambda message: sys.stderr.write(message))
    logging.basicConfig(handlers=[], force=True)


def test_agent_label() -> None:
    assert agent_label("CEO", "0123456789abcdef") == "CEO#01234567"


def test_agent_logger_binds_label() -> None:
    records = []
    sink_id = logger.add(lambda message: records.append(message.record), level="INFO")
    try:
        agent_logger("Developer", "abcdef0123456789").info("Tool call")
    finally:
        logger.remove(sink_id)

    assert records[0]["extra"] == {"agent": "Developer#abcdef01", "agent_id": "abcdef0123456789"}


def test_setup_logging_text(capsys, restore_logging) -> None:
    setup_logging("debug")
    logging.getLogger("some.library").warning("from stdlib")

    err = capsys.readouterr().err
    assert "Logging initialised (level=DEBUG, json=False)" in err
    assert f"{RUNTIME_LABEL:<20} |" in err
    assert "from stdlib" in err


def test_setup_logging_json(capsys, restore_logging) -> None:
    setup_logging("INFO", json_logs=True)
    agent_logger("CEO", "0123456789abcdef").warning("Blocked dangerous command")

    lines = [json.loads(line) for line in capsys.readouterr().err.splitlines()]
    record = lines[-1]["record"]
    assert record["message"] == "Blocked dangerous command"
    assert record["extra"]["agent"] == "CEO#01234567"


def test_noisy_libraries_are_quieted(restore_logging) -> None:
    setup_logging()
    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("botocore").level == logging.WARNING
