"""Tests for cchud.log module."""

import logging
from pathlib import Path

from rich.logging import RichHandler

from cchud.log import configure_logging


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_stderr_handler_by_default(self) -> None:
        logger = configure_logging("info")
        assert logger.name == "cchud"
        assert logger.level == logging.INFO
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], RichHandler)

    def test_file_handler(self, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "cchud.log"
        logger = configure_logging("DEBUG", log_file=log_file)
        logging.getLogger("cchud.transport").debug("reconnect attempt %d", 3)
        for handler in logger.handlers:
            handler.flush()
        assert "reconnect attempt 3" in log_file.read_text(encoding="utf-8")
        assert "[DEBUG] cchud.transport" in log_file.read_text(encoding="utf-8")
        configure_logging()

    def test_reconfigure_replaces_handlers(self) -> None:
        configure_logging()
        logger = configure_logging(logging.ERROR)
        assert len(logger.handlers) == 1
        assert logger.level == logging.ERROR
