"""A house-backed dice betting game with signed, verifiable roll resolution."""

__version__ = "0.1.0"
__all__ = ["errors", "state", "game"]