# ─────────────────────────────────────────────────────────────────
# logging_config.py - Logging Setup
#
# basicConfig sets the global format for ALL log messages:
#   %(asctime)s    → timestamp e.g. "2026-03-01 10:34:22"
#   %(levelname)s  → severity e.g. "INFO", "ERROR"
#   %(name)s       → which logger sent this e.g. "rendezvous"
#   %(message)s    → the actual message
#
# Every module creates its own named logger with
# logging.getLogger("<module>") so a line can be traced back
# to where it came from.
# ─────────────────────────────────────────────────────────────────

import logging

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(name)s] - %(message)s"


def setup_logging(level: str = "INFO"):
    """Configure the root logger once for the whole process."""

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT
    )
