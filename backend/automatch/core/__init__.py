"""Config, errors, embeddings provider and shared helpers."""
