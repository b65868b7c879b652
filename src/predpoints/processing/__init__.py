"""Event processing: per-event awards and cursor-driven window scanning."""
