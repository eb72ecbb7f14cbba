"""SQLite storage for ledger, articles, and cycle runs."""
