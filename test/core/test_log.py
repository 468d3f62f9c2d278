import json
import logging
import pytest
import structlog

from chainsync.log import configure_logging


@pytest.fixture
def restore_structlog():
    try:
        yield
    finally:
        structlog.reset_defaults()


def test_json_logs(capsys: pytest.CaptureFixture, restore_structlog):
    configure_logging(logging.INFO, json=True)
    logger = structlog.get_logger("chainsync.test")
    logger.debug("hidden")
    logger.info("Indexed block range", from_block=100, to_block=109)

    lines = [l for l in capsys.readouterr().out.splitlines() if l]
    assert len(lines) == 1
    line = json.loads(lines[0])
    assert line["event"] == "Indexed block range"
    assert line["level"] == "info"
    assert line["from_block"] == 100
    assert "timestamp" in line


def test_level_names(capsys: pytest.CaptureFixture, restore_structlog):
    configure_logging("warning")
    logger = structlog.get_logger("chainsync.test")
    logger.info("hidden")
    logger.warning("Indexer is not running", state="stopped")
    out = capsys.readouterr().out
    assert "hidden" not in out
    assert "Indexer is not running" in out
