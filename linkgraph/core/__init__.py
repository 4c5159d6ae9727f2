"""Core components: storage, embeddings, linking, moderation, query."""
