"""
Logging utilities for the credential lifecycle and the token management script.

Provides a consistent logging format and configuration. Output goes to stderr so
callers that speak a protocol over stdout are not disturbed.
"""

import logging
import sys


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with a sensible default format."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stderr,
    )
    # The embedded callback server logs every request otherwise.
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(logging.WARNING)


__all__ = ["configure_logging"]
