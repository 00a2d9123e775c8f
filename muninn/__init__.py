"""Muninn: a small conversation memory service."""

__version__ = "0.1.0"
