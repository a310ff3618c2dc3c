"""Requirement contradiction detection service."""

__version__ = "0.1.0"
