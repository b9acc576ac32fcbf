"""Canvas HTTP API."""
