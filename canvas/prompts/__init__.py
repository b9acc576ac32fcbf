"""Canvas prompt templates."""
