"""Checkpoint API routes."""

from checkpoints.routes import export, ledger, query

__all__ = ["export", "ledger", "query"]
