"""Tests for logging setup and stderr status output."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from scribe.common import console
from scribe.common.logging_config import setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_quiet_by_default(restore_root_logger) -> None:
    setup_logging(verbose=False)

    stream_handlers = [h for h in restore_root_logger.handlers if isinstance(h, logging.StreamHandler)]
    assert len(stream_handlers) == 1
    assert stream_handlers[0].level == logging.WARNING


def test_verbose_enables_debug(restore_root_logger) -> None:
    setup_logging(verbose=True)

    assert restore_root_logger.level == logging.DEBUG
    assert restore_root_logger.handlers[0].level == logging.DEBUG


def test_log_file_receives_debug(restore_root_logger, tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "scribe.log"
    setup_logging(verbose=False, log_file=log_file)

    logging.getLogger("scribe.core.capture").debug("frames buffered")
    for handler in restore_root_logger.handlers:
        handler.flush()

    content = log_file.read_text(encoding="utf-8")
    assert "frames buffered" in content
    assert "scribe.core.capture" in content


def test_status_goes_to_stderr(capsys) -> None:
    console.status("Recording... [press Ctrl+C]")
    console.error("boom")

    captured = capsys.readouterr()
    assert captured.out == ""
    assert "Recording... [press Ctrl+C]" in captured.err
    assert "Error: boom" in captured.err
