"""Shared utilities: logging, retry and rate limiting."""
