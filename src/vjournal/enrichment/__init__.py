"""Topic extraction, cluster labeling and background enrichment."""
