"""Coinbase ticker ingestion, in-memory moving-average analysis and websocket broadcasting."""

__version__ = "0.1.0"