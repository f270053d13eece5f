"""In-memory append-only key-value store built from a chain of slotted pages."""

__version__ = "0.1.0"
__all__ = ["page", "store"]