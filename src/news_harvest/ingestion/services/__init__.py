"""Per-stage ingestion services."""
