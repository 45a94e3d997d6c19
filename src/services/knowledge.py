"""Knowledge-base search over an agent's uploaded documents.

Production deployments back this with a vector index; the in-process
``KnowledgeBase`` scores keyword overlap between the query and each stored
chunk so that similarity lands in ``[0, 1]`` and the same threshold
semantics apply.

When nothing clears the threshold, ``lookup`` falls back to the full
documents (each truncated to ``FULL_DOCUMENT_CHAR_LIMIT``) so the model
still sees the agent's material.
"""

from __future__ import annotations

import logging
import re

from pydantic import BaseModel

from src.services.store import RecordStore

logger = logging.getLogger(__name__)

DEFAULT_RESULT_LIMIT = 3
DEFAULT_THRESHOLD = 0.7
FULL_DOCUMENT_CHAR_LIMIT = 3000
TRUNCATION_MARKER = "\n\n[... content truncated ...]"
PREVIEW_CHARS = 200

_WORD = re.compile(r"[a-z0-9][a-z0-9'-]*")
_MIN_WORD_LENGTH = 3


class KnowledgeResult(BaseModel):
    content: str
    similarity: float
    source_id: str
    source_name: str

    def source_summary(self) -> dict[str, str]:
        """The ``knowledge.sources`` entry shown in a chat response."""
        preview = self.content[:PREVIEW_CHARS]
        return {
            "name": self.source_name,
            "relevance": f"{self.similarity * 100:.1f}",
            "preview": f"{preview}..." if len(self.content) > PREVIEW_CHARS else preview,
        }


class KnowledgeLookup(BaseModel):
    """What one chat turn retrieved from the knowledge base."""

    results: list[KnowledgeResult] = []
    full_documents: bool = False

    @property
    def performed(self) -> bool:
        return bool(self.results)


def _keywords(text: str) -> set[str]:
    return {w for w in _WORD.findall(text.lower()) if len(w) >= _MIN_WORD_LENGTH}


class KnowledgeBase:
    """Keyword-overlap similarity search over ``RecordStore`` knowledge chunks."""

    def __init__(self, store: RecordStore):
        self._store = store

    def search(
        self,
        agent_id: str,
        query: str,
        limit: int = DEFAULT_RESULT_LIMIT,
        threshold: float = DEFAULT_THRESHOLD,
    ) -> list[KnowledgeResult]:
        """Return up to *limit* chunks whose similarity is at least *threshold*.

        Similarity is the fraction of the query's keywords found in the
        chunk, so a chunk covering every keyword scores 1.0.
        """
        query_words = _keywords(query)
        if not query_words:
            return []

        scored: list[KnowledgeResult] = []
        for chunk in self._store.list_knowledge_chunks(agent_id):
            overlap = len(query_words & _keywords(chunk["content"]))
            similarity = overlap / len(query_words)
            if similarity >= threshold:
                scored.append(KnowledgeResult(
                    content=chunk["content"],
                    similarity=round(similarity, 4),
                    source_id=chunk["knowledge_source_id"],
                    source_name=chunk.get("source_name") or "Uploaded Document",
                ))

        scored.sort(key=lambda r: r.similarity, reverse=True)
        return scored[:limit]

    def full_documents(self, agent_id: str) -> list[KnowledgeResult]:
        """Every stored document, truncated, with similarity 1.0."""
        results = []
        for chunk in self._store.list_knowledge_chunks(agent_id):
            content = chunk["content"]
            if len(content) > FULL_DOCUMENT_CHAR_LIMIT:
                content = content[:FULL_DOCUMENT_CHAR_LIMIT] + TRUNCATION_MARKER
            results.append(KnowledgeResult(
                content=content,
                similarity=1.0,
                source_id=chunk["knowledge_source_id"],
                source_name=chunk.get("source_name") or "Uploaded Document",
            ))
        return results

    def lookup(
        self,
        agent_id: str,
        query: str,
        limit: int = DEFAULT_RESULT_LIMIT,
        threshold: float = DEFAULT_THRESHOLD,
    ) -> KnowledgeLookup:
        """Search, falling back to the full documents when nothing matches."""
        results = self.search(agent_id, query, limit, threshold)
        if results:
            logger.debug("Knowledge search for agent %s: %d result(s)", agent_id, len(results))
            return KnowledgeLookup(results=results)

        documents = self.full_documents(agent_id)
        if documents:
            logger.debug(
                "Knowledge search for agent %s found nothing; using %d full document(s)",
                agent_id, len(documents),
            )
        return KnowledgeLookup(results=documents, full_documents=bool(documents))
