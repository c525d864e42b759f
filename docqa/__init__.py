"""DocQA: document question answering over an in-memory vector store."""

__version__ = "0.1.0"
