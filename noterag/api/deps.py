"""FastAPI dependency injection.

Provides common dependencies for API routes.
"""

from typing import Annotated

from fastapi import Depends

from noterag.agent.runtime import AgentRuntime, get_runtime
from noterag.rag.retriever import RAGService, get_rag_service

# Type aliases for cleaner signatures
Runtime = Annotated[AgentRuntime, Depends(get_runtime)]
RAG = Annotated[RAGService, Depends(get_rag_service)]
