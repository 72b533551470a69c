"""Shared utilities: rate limiting, result caching, keyword helpers and validators."""
