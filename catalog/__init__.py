"""Perfume catalog normalization and search engine."""
