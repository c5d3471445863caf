"""Daily category challenge service."""
__version__ = "0.3.0"
