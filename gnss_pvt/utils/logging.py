"""Logging helpers for the PVT solver."""

from __future__ import annotations

import logging

ROOT_LOGGER_NAME = "gnss_pvt"


def get_logger(name: str = ROOT_LOGGER_NAME, level: int | None = None) -> logging.Logger:
    """Return a package logger, attaching one stream handler to the package root.

    Child names (``gnss_pvt.receiver.gating``) propagate to the root handler, so
    modules can call ``get_logger(__name__)`` without duplicating output.
    """

    root = logging.getLogger(ROOT_LOGGER_NAME)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
        root.addHandler(handler)
        root.setLevel(logging.INFO)
    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(level)
    return logger
