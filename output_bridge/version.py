"""Version information for the output bridge."""

__version__ = "3.6.0"
