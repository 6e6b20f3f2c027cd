"""ClearCast - two-party call signaling with per-participant recording and merge."""

__version__ = "0.1.0"
