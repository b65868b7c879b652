"""Points policy."""
