"""Exception types raised by the ingestion and retrieval pipeline."""


class DocQAError(Exception):
    """Base class for all pipeline errors."""


class UnsupportedFileType(DocQAError):
    """The file extension has no extractor."""


class ExtractionFailed(DocQAError):
    """The extractor could not read the file."""


class NoTextExtracted(DocQAError):
    """Extraction succeeded but produced empty or whitespace-only text."""


class EmbeddingError(DocQAError):
    """The embedding provider errored, timed out or returned no vector."""


class DimensionMismatchError(DocQAError):
    """Chunk and embedding lists do not line up."""


class DocumentNotFound(DocQAError):
    """No document is registered under the given id."""

    def __init__(self, doc_id: str):
        super().__init__(f"Document not found: {doc_id}")
        self.doc_id = doc_id


class GenerationFailed(DocQAError):
    """The generative model call failed."""
