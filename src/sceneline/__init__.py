"""Scene timeline compiler and render job manager for short-form video."""

__version__ = "0.1.0"
