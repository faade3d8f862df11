"""Caching implementations."""
