"""Keyword Intel -- keyword research pipeline with rate-limited, cached, fallback-capable providers."""

__version__ = "1.0.0"
