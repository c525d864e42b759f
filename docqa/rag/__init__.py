"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Sentence-aware text chunking
- Embedding generation
- In-memory vector storage with cosine search
- Language detection
- Question answering with LLM fallback
- Document ingestion
"""
