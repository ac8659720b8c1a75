"""
Offline evaluation of RAG answer quality.

This module handles:
- Loading and validating evaluation datasets
- Judge-model scoring (faithfulness, answer relevancy, context precision/recall)
- Running the pipeline over a dataset and aggregating the results
- Console, JSON and Markdown reports
"""
