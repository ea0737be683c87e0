"""Memory package: vector store, retrieval, and conversation helpers."""
