"""Feed source readers."""
