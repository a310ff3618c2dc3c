"""Core configuration, logging and HTTP error types."""
