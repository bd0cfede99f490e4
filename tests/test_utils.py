"""Tests for utility functions."""

import logging

import pytest

from gsr_adjust.utils import ensure_dir, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Remove handlers added by setup_logging after each test."""
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level
    yield
    for handler in root_logger.handlers[:]:
        if handler not in handlers:
            root_logger.removeHandler(handler)
            handler.close()
    root_logger.setLevel(level)


def test_setup_logging(tmp_path):
    """Test setting up logging configuration."""
    log_dir = tmp_path / "logs"

    logger = setup_logging(log_dir)
    assert log_dir.exists()
    assert (log_dir / "pipeline.log").exists()
    assert logger.name == "gsr_adjust"
    assert logging.getLogger().level == logging.INFO

    setup_logging(log_dir, level="debug")
    assert logging.getLogger().level == logging.DEBUG


def test_setup_logging_writes_messages(tmp_path):
    """Messages from package loggers reach the log file."""
    log_dir = tmp_path / "nested" / "logs"
    setup_logging(log_dir)
    logging.getLogger("gsr_adjust.adjust").warning("No random results found for pathway: GO:1")

    for handler in logging.getLogger().handlers:
        handler.flush()
    content = (log_dir / "pipeline.log").read_text()
    assert "gsr_adjust.adjust - WARNING - No random results found for pathway: GO:1" in content


def test_setup_logging_console_only():
    """Without a directory only a console handler is added."""
    before = len(logging.getLogger().handlers)
    setup_logging()
    assert len(logging.getLogger().handlers) == before + 1


def test_ensure_dir(tmp_path):
    """Test directory creation."""
    test_dir = tmp_path / "test_dir"
    assert ensure_dir(test_dir) == test_dir
    assert test_dir.is_dir()

    # Existing directory is fine
    ensure_dir(test_dir)

    nested = ensure_dir(tmp_path / "nested" / "test_dir")
    assert nested.is_dir()


def test_ensure_dir_file_exists(tmp_path):
    """Test behavior when a file exists at the target path."""
    test_path = tmp_path / "test_file"
    test_path.touch()

    with pytest.raises(FileExistsError):
        ensure_dir(test_path)
