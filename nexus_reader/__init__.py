"""Feed aggregation with semantic search and background translation."""
