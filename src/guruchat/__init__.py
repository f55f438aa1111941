# GuruChat package init
import logging
import os

__version__ = "0.1.0"

AI_LOGGER = "guruchat.ai"


def _level(env_name: str, default: int) -> int:
    raw = (os.getenv(env_name) or "").upper()
    return getattr(logging, raw, default) if raw else default


def _configure_logging() -> None:
    """Package loggers (``src.guruchat.*``) and the AI event logger share one handler."""
    base = _level("GURUCHAT_LOG_LEVEL", logging.INFO)
    formatter = logging.Formatter("[GURUCHAT][%(levelname)s][%(name)s] %(message)s")
    for name, level in ((__name__, base), (AI_LOGGER, _level("GURUCHAT_AI_LOG_LEVEL", base))):
        logger = logging.getLogger(name)
        if not logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(formatter)
            logger.addHandler(handler)
        logger.setLevel(level)
        logger.propagate = False


_configure_logging()
