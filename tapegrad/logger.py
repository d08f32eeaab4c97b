import logging

LOGGER_NAME = "tapegrad"


def get_logger(level=None):
    """The package logger, with a stream handler attached on first use.

    Module loggers (``tapegrad.autograd.tape`` and friends) propagate here.
    The level comes from `level`, else the active Config (which reads
    ``TAPEGRAD_LOG_LEVEL``).
    """
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.hasHandlers():
        handler = logging.StreamHandler()
        formatter = logging.Formatter('[%(asctime)s][%(levelname)s][%(name)s] %(message)s')
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    if level is None:
        from .config import get_config
        level = get_config().log_level
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.WARNING)
    logger.setLevel(level)
    return logger
