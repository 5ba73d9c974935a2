"""Logger module for the registry."""

from __future__ import annotations

import logging

from .config import get_log_dir, get_log_level


def get_logger(name: str, log_file: str = "") -> logging.Logger:
    """Get a logger with the specified name.

    :param name: the name of the logger.
    :param log_file: name of the log file, used when MEDREG_LOG_DIR is set.
    :return: the logger instance.
    """
    logger = logging.getLogger(name)
    logger.setLevel(get_log_level())

    if not logger.handlers:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(module)s - %(funcName)s - %(message)s",
            datefmt="%d-%m-%Y %H:%M:%S",
        )

        ch = logging.StreamHandler()
        ch.setFormatter(formatter)
        logger.addHandler(ch)

        log_dir = get_log_dir()
        if log_dir is not None:
            log_dir.mkdir(parents=True, exist_ok=True)
            effective_log_file = log_file or f"{name.replace('.', '_')}.log"
            fh = logging.FileHandler(log_dir / effective_log_file, mode="a")
            fh.setLevel(logging.DEBUG)
            fh.setFormatter(formatter)
            logger.addHandler(fh)

    return logger
