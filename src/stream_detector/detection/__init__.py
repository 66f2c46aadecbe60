"""URL normalization, deduplication, pattern handling and extraction."""
