"""Analysis engines."""
