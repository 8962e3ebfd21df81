"""
Logging Setup

Configures the root logger once for the server and the ingestion script.
Modules obtain named loggers under the ``news_rag`` hierarchy and never
configure handlers themselves.
"""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """
    Install a single stream handler on the root logger.

    Calling this more than once replaces the previous configuration, which
    keeps repeated app factory calls in tests from stacking handlers.
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        force=True,
    )

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def short_id(session_id: str) -> str:
    """Truncate an identifier for log output."""
    return session_id[:8]
