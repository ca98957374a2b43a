"""Shared constants, logging, caching and similarity helpers."""
