"""External activity sources."""
