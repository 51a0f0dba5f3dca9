"""Leadflow: lead processing pipeline console for event lead lists."""

__version__ = "0.1.0"
__author__ = "Leadflow Team"

__all__ = ["__version__", "__author__"]
