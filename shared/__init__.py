"""Shared infrastructure: LLM access, persistence entities and errors."""
