import logging
import os

from la_methods.logging_utils import get_logger


def test_get_logger_does_not_duplicate_handlers(tmp_path):
    first = get_logger("la_methods.test_logger", str(tmp_path))
    second = get_logger("la_methods.test_logger", str(tmp_path))
    assert first is second
    file_handlers = [h for h in first.handlers if isinstance(h, logging.FileHandler)]
    stream_handlers = [h for h in first.handlers if not isinstance(h, logging.FileHandler)]
    assert len(file_handlers) == 1
    assert len(stream_handlers) == 1

    first.debug("debug line")
    file_handlers[0].flush()
    with open(os.path.join(str(tmp_path), "la_methods.test_logger_log.txt")) as f:
        assert "debug line" in f.read()
