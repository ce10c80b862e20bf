"""Exception types raised by the output bridge."""
from __future__ import annotations


class OutputBridgeError(Exception):
    """Base class for bridge failures that stop the process."""


class ConfigError(OutputBridgeError):
    """Raised when a settings value cannot be coerced or is out of range."""


class BridgeStartupError(OutputBridgeError):
    """Raised when the downstream listener cannot be started."""
