"""API route modules."""

from . import chat, health, rag

__all__ = ["chat", "health", "rag"]
