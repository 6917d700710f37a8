"""
Dedicated logger channels for obstacle detection debugging.

This module provides a singleton logger that separates per-stage debugging
logs into dedicated channels (and optionally files) for easier analysis of
recorded sessions.

Features:
- Singleton pattern (one instance per session)
- Separate channels for tracker, stabilizer, proximity, guidance and events
- DEBUG level logging to files when a session directory is configured
- WARNING level console output for operator-facing messages

Log Files (only with a session directory):
- tracker.log: Target acquisition, matching and loss
- stabilizer.log: Hysteresis state changes with smoothed value and slope
- proximity.log: Distance estimates, stability gate and cooldown routing
- guidance.log: Zone counts and steering direction
- events.log: Detection log buffer and upload results

Usage:
    from sonar_nav.core.telemetry.loggers.navigation_logger import get_navigation_logger

    nav_logger = get_navigation_logger(session_dir=Path("logs/session_2024-01-15_10-30-00"))
    nav_logger.tracker.debug("Acquired target...")
    nav_logger.events.warning("Upload failed")
"""

import logging
from pathlib import Path
from typing import Optional

CHANNELS = ("tracker", "stabilizer", "proximity", "guidance", "events")

_FILENAMES = {
    "tracker": "tracker.log",
    "stabilizer": "stabilizer.log",
    "proximity": "proximity.log",
    "guidance": "guidance.log",
    "events": "events.log",
}


class NavigationLogger:
    """Singleton logger for obstacle pipeline debugging."""

    _instance = None
    _initialized = False

    def __new__(cls, session_dir: Optional[Path] = None):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, session_dir: Optional[Path] = None):
        if self._initialized:
            return

        self.log_dir = Path(session_dir) if session_dir is not None else None
        if self.log_dir is not None:
            self.log_dir.mkdir(parents=True, exist_ok=True)

        for name in CHANNELS:
            self._setup_logger(name, _FILENAMES[name])

        self._initialized = True

    def _setup_logger(self, name: str, filename: str):
        """Setup individual channel logger."""
        logger = logging.getLogger(f"sonar_nav.{name}")
        logger.setLevel(logging.DEBUG)
        logger.propagate = False

        # Clear existing handlers
        logger.handlers.clear()

        formatter = logging.Formatter(
            '%(asctime)s.%(msecs)03d [%(levelname)s] %(message)s',
            datefmt='%H:%M:%S'
        )

        if self.log_dir is not None:
            fh = logging.FileHandler(self.log_dir / filename, mode='w')
            fh.setLevel(logging.DEBUG)
            fh.setFormatter(formatter)
            logger.addHandler(fh)

        # Console handler for operator-facing messages
        ch = logging.StreamHandler()
        ch.setLevel(logging.WARNING)
        ch.setFormatter(formatter)
        logger.addHandler(ch)

        setattr(self, name, logger)

    def close(self):
        """Close all handlers."""
        for name in CHANNELS:
            logger = getattr(self, name, None)
            if logger:
                for handler in logger.handlers[:]:
                    handler.close()
                    logger.removeHandler(handler)


# Global instance
_nav_logger = None


def get_navigation_logger(session_dir: Optional[Path] = None) -> NavigationLogger:
    """Get or create navigation logger instance."""
    global _nav_logger
    if _nav_logger is None:
        if session_dir is None:
            from sonar_nav.utils.config import Config

            configured = getattr(Config, "NAVIGATION_LOG_DIR", None)
            session_dir = Path(configured) if configured else None
        _nav_logger = NavigationLogger(session_dir=session_dir)
    return _nav_logger


def reset_navigation_logger() -> None:
    """Close the current instance so the next call builds a fresh one."""
    global _nav_logger
    if _nav_logger is not None:
        _nav_logger.close()
    _nav_logger = None
    NavigationLogger._instance = None
    NavigationLogger._initialized = False
