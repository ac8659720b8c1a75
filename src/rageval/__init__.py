"""
rageval - Offline quality evaluation for retrieval-augmented generation.

Runs a question/answer dataset through the RAG pipeline (query rewriting,
retrieval, generation) and grades each answer with a judge model on
faithfulness, answer relevancy, context precision and context recall.
"""

__version__ = "0.1.0"
