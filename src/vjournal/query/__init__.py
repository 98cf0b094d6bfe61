"""Keyword, semantic and hybrid retrieval."""
