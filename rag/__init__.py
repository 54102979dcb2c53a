"""
RAG (Retrieval-Augmented Generation) components for the course tutor.

Retrieval of course-scoped chunks, grounded prompt construction and answer
generation.
"""
