"""Topic clustering of entry embeddings."""
