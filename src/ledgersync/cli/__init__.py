"""LedgerSync CLI package.

This package provides the command-line interface for connecting accounts,
running syncs and viewing summaries.
"""

from .main import app, main

__all__ = ["app", "main"]
