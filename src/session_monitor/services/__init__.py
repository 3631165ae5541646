"""Session monitor services."""
