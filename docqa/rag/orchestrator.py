"""Question answering over the vector store.

Retrieves the closest chunks for a question, builds a localized prompt and
asks the generative model, falling back to returning the retrieved text
verbatim when the model is unavailable or fails.
"""
from dataclasses import dataclass, field, asdict
from typing import List, Dict, Any, Optional
import structlog

from docqa import config
from docqa.config import GenerationOptions
from docqa.rag.language import LanguageDetector
from docqa.rag.store import VectorStore, SimilarityResult

logger = structlog.get_logger()

SOURCE_NO_MATCH = "no_match"
SOURCE_LLM_RAG = "llm_rag"
SOURCE_FALLBACK_CONTEXT = "fallback_context"
SOURCE_LLM_DIRECT = "llm_direct"

RAG_PROMPTS = {
    "en": (
        "Based on the following context, answer the question:\n\n"
        "Context:\n{context}\n\nQuestion: {question}\n\nAnswer:"
    ),
    "hi": (
        "निम्नलिखित संदर्भ के आधार पर प्रश्न का उत्तर दें:\n\n"
        "संदर्भ:\n{context}\n\nप्रश्न: {question}\n\nउत्तर:"
    ),
}

NO_MATCH_MESSAGES = {
    "en": "No relevant information found in your documents.",
    "hi": "दुर्भाग्यवश, आपके दस्तावेजों में इस प्रश्न का उत्तर नहीं मिला।",
}

NO_DOCUMENTS_MESSAGES = {
    "en": "Please upload a document first or ask a question directly.",
    "hi": "कृपया पहले एक दस्तावेज़ अपलोड करें या सीधे प्रश्न पूछें।",
}

FALLBACK_PREFACES = {
    "en": "Based on the document:",
    "hi": "निम्नलिखित संदर्भ प्रासंगिक हो सकता है:",
}


def _localized(messages: Dict[str, str], language: str) -> str:
    return messages.get(language, messages["en"])


def build_rag_prompt(question: str, contexts: List[str], language: str = "en") -> str:
    """Combine instruction, context and question in the question's language."""
    template = _localized(RAG_PROMPTS, language)
    return template.format(context="\n\n".join(contexts), question=question)


def build_fallback_answer(contexts: List[str], language: str = "en") -> str:
    """Answer with the retrieved text itself."""
    return f"{_localized(FALLBACK_PREFACES, language)}\n\n" + "\n\n".join(contexts)


@dataclass
class RAGAnswer:
    """Answer text plus how it was produced."""

    question: str
    answer: str
    language: str
    source: str
    chunks: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _chunk_refs(results: List[SimilarityResult]) -> List[Dict[str, Any]]:
    return [
        {"text": r.text, "similarity": r.similarity, "doc_id": r.doc_id}
        for r in results
    ]


class RAGOrchestrator:
    """End-to-end retrieval-augmented question answering."""

    def __init__(
        self,
        store: VectorStore,
        generator=None,
        top_k: int = None,
        context_chunks: int = None,
        fallback_chunks: int = None,
        max_tokens: int = None,
    ):
        """Initialize the orchestrator.

        Args:
            store: Vector store with an embedding client attached
            generator: Object with ``async generate(prompt, max_tokens, options)`` and
                ``async is_available()``; None disables generation
            top_k: Number of chunks to retrieve (default from config)
            context_chunks: Chunks included in the prompt (default from config)
            fallback_chunks: Chunks returned by the fallback (default from config)
            max_tokens: Generation budget (default from config)
        """
        self.store = store
        self.generator = generator
        self.top_k = top_k or config.RETRIEVAL_TOP_K
        self.context_chunks = context_chunks or config.CONTEXT_CHUNKS
        self.fallback_chunks = fallback_chunks or config.FALLBACK_CHUNKS
        self.max_tokens = max_tokens or config.ANSWER_MAX_TOKENS

        logger.info(
            "orchestrator_initialized",
            top_k=self.top_k,
            generator=type(generator).__name__ if generator else None,
        )

    async def _generate(
        self, prompt: str, options: Optional[GenerationOptions] = None
    ) -> Optional[str]:
        """Ask the generator, returning None on any failure."""
        if self.generator is None:
            return None

        max_tokens = (options.max_tokens if options else None) or self.max_tokens

        try:
            if not await self.generator.is_available():
                logger.warning("generator_unavailable")
                return None

            answer = await self.generator.generate(prompt, max_tokens=max_tokens, options=options)

        except Exception as e:
            logger.warning(
                "generation_failed_using_fallback",
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        answer = (answer or "").strip()
        if not answer:
            logger.warning("empty_generation_using_fallback")
            return None

        return answer

    async def _answer_from_results(
        self,
        question: str,
        language: str,
        results: List[SimilarityResult],
        use_llm: bool,
        options: Optional[GenerationOptions] = None,
    ) -> RAGAnswer:
        texts = [r.text for r in results]

        answer = None
        if use_llm:
            prompt = build_rag_prompt(question, texts[: self.context_chunks], language)
            answer = await self._generate(prompt, options)

        if answer is not None:
            source = SOURCE_LLM_RAG
        else:
            answer = build_fallback_answer(texts[: self.fallback_chunks], language)
            source = SOURCE_FALLBACK_CONTEXT

        return RAGAnswer(
            question=question,
            answer=answer,
            language=language,
            source=source,
            chunks=_chunk_refs(results),
        )

    async def answer(
        self,
        question: str,
        top_k: int = None,
        use_llm: bool = True,
        options: Optional[GenerationOptions] = None,
    ) -> RAGAnswer:
        """Answer a question from the stored documents.

        Args:
            question: User question
            top_k: Number of chunks to retrieve (overrides default)
            use_llm: Whether to try the generative model
            options: Sampling options for the generative model

        Returns:
            RAGAnswer; ``source`` is no_match, llm_rag or fallback_context

        Raises:
            EmbeddingError: If the question cannot be embedded
        """
        language = LanguageDetector.detect(question)
        top_k = top_k or self.top_k

        logger.info("rag_query_started", question_length=len(question), top_k=top_k, language=language)

        results = await self.store.query(question, top_k=top_k)

        if not results:
            logger.info("rag_no_match")
            return RAGAnswer(
                question=question,
                answer=_localized(NO_MATCH_MESSAGES, language),
                language=language,
                source=SOURCE_NO_MATCH,
            )

        result = await self._answer_from_results(question, language, results, use_llm, options)

        logger.info(
            "rag_query_completed",
            source=result.source,
            chunks=len(results),
            top_similarity=results[0].similarity,
        )

        return result

    async def ask(
        self,
        question: str,
        top_k: int = None,
        options: Optional[GenerationOptions] = None,
    ) -> RAGAnswer:
        """Chat-style answer that also works without any documents.

        Retrieval failures are treated as "no results". Without results the
        question goes to the model directly.
        """
        language = LanguageDetector.detect(question)
        top_k = top_k or self.top_k

        results: List[SimilarityResult] = []
        try:
            results = await self.store.query(question, top_k=top_k)
        except Exception as e:
            logger.warning("document_search_failed", error=str(e), error_type=type(e).__name__)

        if results:
            return await self._answer_from_results(question, language, results, True, options)

        answer = await self._generate(question, options)
        if answer is not None:
            return RAGAnswer(
                question=question,
                answer=answer,
                language=language,
                source=SOURCE_LLM_DIRECT,
            )

        return RAGAnswer(
            question=question,
            answer=_localized(NO_DOCUMENTS_MESSAGES, language),
            language=language,
            source=SOURCE_NO_MATCH,
        )
