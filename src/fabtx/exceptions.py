"""Custom exception hierarchy for fabtx."""

from __future__ import annotations

from pathlib import Path


class FabtxError(Exception):
    """Base error for the fabtx package."""


class ConfigError(FabtxError):
    """Raised when a network configuration file fails validation."""

    def __init__(self, path: Path, message: str):
        self.path = Path(path)
        self.message = message
        super().__init__(f"{self.path.name}: {self.message}")


class SessionError(FabtxError):
    """Raised when a session cannot be opened or is used after release."""
