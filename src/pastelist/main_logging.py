#!/usr/bin/env python3
"""Logging configuration for the pastelist CLI."""

from __future__ import annotations

import logging

# Third-party loggers that are chatty at INFO
NOISY_LOGGERS: tuple[str, ...] = ("httpx", "httpcore", "uvicorn.access")


def configure_logging(verbose: bool) -> None:
    """Configure logging level based on verbosity setting.

    Args:
        verbose: If True, set DEBUG level; otherwise WARNING level.

    Errors are always printed to stderr regardless of verbosity.
    """
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(name)s: %(message)s",
        handlers=[logging.StreamHandler()],
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO if verbose else logging.WARNING)
