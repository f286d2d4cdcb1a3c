"""Per-character memory log, relevance scoring and retrieval."""
