from __future__ import annotations

import io
import logging

from output_bridge.logging_utils import LOG_FILENAME, LOGGER_NAME, configure_logging


def _reset_bridge_logger():
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)


def test_configure_logging_writes_console_and_rotating_file(tmp_path):
    stream = io.StringIO()
    try:
        logger = configure_logging(debug=True, log_dir=tmp_path, retention=2, stream=stream)
        logging.getLogger(f"{LOGGER_NAME}.Upstream").debug("Connected to producer")
        for handler in logger.handlers:
            handler.flush()
        assert logger.level == logging.DEBUG
        assert "[OutputBridge.Upstream] Connected to producer" in stream.getvalue()
        assert "Connected to producer" in (tmp_path / LOG_FILENAME).read_text(encoding="utf-8")
    finally:
        _reset_bridge_logger()


def test_configure_logging_is_idempotent():
    try:
        configure_logging(stream=io.StringIO())
        logger = configure_logging(stream=io.StringIO())
        assert len(logger.handlers) == 1
        assert logger.level == logging.INFO
    finally:
        _reset_bridge_logger()
