"""
Retrieval-side collaborators for evaluation runs.

This module handles:
- Rewriting follow-up questions into standalone queries
- Calling the application's hybrid search service
"""

from rageval.retrieval.query import QueryRewriter
from rageval.retrieval.search import SearchApiRetriever

__all__ = ["QueryRewriter", "SearchApiRetriever"]
