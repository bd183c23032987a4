"""Dynamic preview session manager for generated projects."""

__version__ = "0.1.0"
