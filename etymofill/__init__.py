"""Backfill missing etymology analyses for a word backlog."""

__version__ = "0.1.0"
