"""Similarity retrieval of outline chapters relevant to the current intent."""

import logging
from typing import Optional

from memory.chroma_store import ChromaStore, RetrievedChunk
from models.outline import OutlineTree

logger = logging.getLogger(__name__)


def format_retrieved(chunks: list[RetrievedChunk]) -> str:
    """Render retrieved chunks as a numbered list with relevance percentages."""
    if not chunks:
        return ""
    lines = [
        f"{i}. [{c.volume_title} / {c.chapter_title}] (相关度: {round(c.score * 100)}%)\n   {c.text}"
        for i, c in enumerate(chunks, start=1)
    ]
    return f"以下是与当前意图最相关的剧情概要（共 {len(chunks)} 条）:\n\n" + "\n\n".join(lines)


class KnowledgeRetriever:
    """Wraps the vector store: lazily indexes a project's outline, then queries it."""

    def __init__(self, store: ChromaStore, top_k: int = 5):
        self.store = store
        self.top_k = top_k

    def retrieve(
        self,
        project_id: str,
        outline: Optional[OutlineTree],
        query_text: str,
    ) -> str:
        """Return the rendered retrieval block, or "" when nothing applies.

        Raises:
            RetrievalError: If the vector backend fails.
        """
        if not project_id or not query_text:
            return ""
        self.store.ensure_index(project_id, outline)
        chunks = self.store.query(project_id, query_text, self.top_k)
        logger.debug("Retrieved %d chunks for project %s", len(chunks), project_id)
        return format_retrieved(chunks)

    def reindex(self, project_id: str, outline: Optional[OutlineTree]) -> int:
        return self.store.ensure_index(project_id, outline)
