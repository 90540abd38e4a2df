"""External tool definitions that agents can be granted."""
