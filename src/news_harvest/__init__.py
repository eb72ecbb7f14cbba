"""Feed ingestion pipeline with URL resolution, dedup ledger, and summaries."""

__version__ = "0.1.0"
