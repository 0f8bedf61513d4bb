"""CodeRAG CLI."""
