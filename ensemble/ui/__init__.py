"""Terminal rendering of event streams."""
