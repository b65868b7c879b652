"""predpoints command line."""
