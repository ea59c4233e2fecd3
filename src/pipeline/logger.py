import logging
import os
import sys

LOG_LEVEL_ENV = "WEBP_PREP_LOG_LEVEL"


def setup_logger(level: int = logging.INFO, name: str = "src.pipeline") -> logging.Logger:
    """Create or update the project logger.

    - Respects the WEBP_PREP_LOG_LEVEL env override on every call (so late CLI
      parsing can still take effect).
    - Keeps exactly one console StreamHandler on the base logger, pointing it
      at the current sys.stderr instead of adding another.
    """
    logger = logging.getLogger(name)

    env_level = (os.getenv(LOG_LEVEL_ENV) or "").strip().lower()
    if env_level:
        level_map = {
            "debug": logging.DEBUG,
            "info": logging.INFO,
            "warning": logging.WARNING,
            "error": logging.ERROR,
            "critical": logging.CRITICAL,
        }
        level = level_map.get(env_level, level)
    logger.setLevel(level)

    stream_handler: logging.StreamHandler | None = None
    for h in list(logger.handlers):
        if type(h) is logging.StreamHandler:
            stream_handler = h
            break

    if stream_handler is None:
        stream_handler = logging.StreamHandler(stream=sys.stderr)
        logger.addHandler(stream_handler)
    elif stream_handler.stream is not sys.stderr:
        # sys.stderr may have been swapped (click's CliRunner, pytest capture)
        stream_handler.setStream(sys.stderr)

    # Do not include the full logger name in messages to keep output concise
    fmt = logging.Formatter(
        fmt="[%(asctime)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    stream_handler.setFormatter(fmt)
    return logger
