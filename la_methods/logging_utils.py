# logging_utils.py

import os
import sys
import logging

LOG_FORMAT = "%(asctime)s — %(levelname)s — %(message)s"


def get_logger(name: str, results_dir: str = None) -> logging.Logger:
    """
    Returns a named logger with a stdout handler (INFO) and, when a results
    directory is given, a file handler (DEBUG) writing <name>_log.txt there.
    Calling it twice for the same name does not stack handlers.
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    formatter = logging.Formatter(LOG_FORMAT)

    if not any(getattr(h, "_la_console", False) for h in logger.handlers):
        ch = logging.StreamHandler(sys.stdout)
        ch.setLevel(logging.INFO)
        ch.setFormatter(formatter)
        ch._la_console = True
        logger.addHandler(ch)

    if results_dir is not None:
        os.makedirs(results_dir, exist_ok=True)
        log_path = os.path.abspath(os.path.join(results_dir, f"{name}_log.txt"))
        existing = [h for h in logger.handlers if isinstance(h, logging.FileHandler)]
        if not any(h.baseFilename == log_path for h in existing):
            fh = logging.FileHandler(log_path)
            fh.setLevel(logging.DEBUG)
            fh.setFormatter(formatter)
            logger.addHandler(fh)

    return logger
