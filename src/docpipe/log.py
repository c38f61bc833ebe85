from __future__ import annotations

import logging
import os


_configured = False


def configure_logging(debug: bool = False) -> None:
    """
    Set up the root handler once; called by the CLI only, so importing
    docpipe as a library leaves logging untouched.
    """
    global _configured
    if not _configured:
        level = os.getenv("DOCPIPE_LOG_LEVEL", "WARNING").upper()
        logging.basicConfig(
            level=getattr(logging, level, logging.WARNING),
            format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        )
        _configured = True
    if debug:
        logging.getLogger("docpipe").setLevel(logging.DEBUG)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
