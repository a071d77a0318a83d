"""LLM runtime."""
