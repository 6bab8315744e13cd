"""
Tests for logging setup.
"""

import logging

import pytest

from jevons.utils.logger import LOG_FORMAT, setup_logging


@pytest.fixture
def clean_logger():
    logger = logging.getLogger("jevons")
    saved = list(logger.handlers), logger.level
    logger.handlers = []
    yield logger
    for handler in logger.handlers:
        handler.close()
    logger.handlers, level = saved
    logger.setLevel(level)


class TestSetupLogging:
    """Test the package logger configuration."""

    def test_stream_and_file_handlers(self, clean_logger, tmp_path):
        log_file = tmp_path / "logs" / "jevons.log"
        logger = setup_logging("debug", log_file=log_file)

        assert logger is clean_logger
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 2
        assert all(h.formatter._fmt == LOG_FORMAT for h in logger.handlers)

        logging.getLogger("jevons.sync.pipeline").warning("cycle failed")
        for handler in logger.handlers:
            handler.flush()
        assert "jevons.sync.pipeline - WARNING - cycle failed" in log_file.read_text(encoding="utf-8")

    def test_repeated_setup_does_not_duplicate(self, clean_logger):
        setup_logging()
        setup_logging()
        assert len(clean_logger.handlers) == 1

    def test_unknown_level_falls_back_to_info(self, clean_logger):
        assert setup_logging("chatty").level == logging.INFO
