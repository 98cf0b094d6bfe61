"""vjournal - semantic organization engine for a voice journal."""

__version__ = "0.1.0"
