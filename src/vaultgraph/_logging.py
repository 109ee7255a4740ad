"""Logging configuration for vaultgraph.

All vaultgraph loggers hang off the "vaultgraph" package logger, which the
`vg` CLI attaches a single stderr handler to so stdout stays clean for
--json output. Rebuild progress and degraded search channels are reported
here. Every module logs through the standard library:

    import logging
    log = logging.getLogger(__name__)

The level can be set via the VAULTGRAPH_LOG_LEVEL environment variable
(DEBUG, INFO, WARNING, ERROR). INFO is the default.
"""

import logging
import os
import sys

PACKAGE_LOGGER = "vaultgraph"


def configure_logging() -> None:
    """Configure logging for the vaultgraph package.

    Call this once at application startup (the CLI does). Subsequent calls
    are no-ops.
    """
    root_logger = logging.getLogger(PACKAGE_LOGGER)

    if root_logger.handlers:
        return

    level_name = os.environ.get("VAULTGRAPH_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter(
            fmt="[%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    # Avoid duplicate messages through the root logger
    root_logger.propagate = False


def set_quiet_mode(quiet: bool) -> None:
    """Raise the package log level to ERROR when quiet output is requested."""
    root_logger = logging.getLogger(PACKAGE_LOGGER)
    if quiet:
        root_logger.setLevel(logging.ERROR)
        for handler in root_logger.handlers:
            handler.setLevel(logging.ERROR)
