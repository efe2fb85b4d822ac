"""Minimal static-site generator for a Markdown blog and portfolio."""

__version__ = "0.3.0"
