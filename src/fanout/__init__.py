"""Run several commands side by side in one terminal and stop them together."""

__version__ = "0.1.0"
