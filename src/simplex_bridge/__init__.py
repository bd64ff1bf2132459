"""SimpleX chat bridge protocol engine."""

__version__ = "0.3.0"
