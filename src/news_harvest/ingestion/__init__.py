"""Feed ingestion pipeline."""
