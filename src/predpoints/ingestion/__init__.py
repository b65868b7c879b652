"""Event sources and raw log normalization."""
