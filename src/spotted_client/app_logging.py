"""Logging configuration helpers."""

import logging

_VERBOSE_ENVIRONMENTS = frozenset({"local", "dev", "test"})


def resolve_log_level(environment: str, override: str | None = None) -> int:
    """Pick the client log level.

    An explicit ``override`` such as ``"WARNING"`` wins. Otherwise local and
    development builds log at DEBUG, so ignored capture events and sync
    decisions are visible, and every other environment logs at INFO.
    """
    if override:
        level = logging.getLevelName(override.strip().upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {override}")
        return level
    if environment.strip().lower() in _VERBOSE_ENVIRONMENTS:
        return logging.DEBUG
    return logging.INFO


def configure_logging(level: int = logging.INFO) -> None:
    """Configure client logging with a single stream handler."""
    logger = logging.getLogger("spotted_client")
    logger.setLevel(level)
    if logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s: %(name)s: %(message)s")
    )
    logger.addHandler(handler)
    logger.propagate = False
