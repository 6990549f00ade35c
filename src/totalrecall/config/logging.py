"""Shared logging helpers."""

from __future__ import annotations

import logging

# Third-party loggers that report every HTTP exchange at INFO.
_CHATTY_LOGGERS = ("httpx", "httpcore", "hishel")


def verbosity_level(*, verbose: bool = False, quiet: bool = False) -> int:
    if verbose:
        return logging.DEBUG
    if quiet:
        return logging.WARNING
    return logging.INFO


def configure_logging(*, level: int = logging.INFO, force: bool = False) -> None:
    """Initialise the root logger with a terse format suitable for CLI output.

    HTTP client libraries stay at WARNING unless ``level`` asks for DEBUG.
    Pass ``force=True`` to reconfigure when the CLI changes the verbosity.
    """

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(level if level <= logging.DEBUG else logging.WARNING)
