"""ChromaDB vector store for outline chapter summaries."""

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path

import chromadb

from config.exceptions import RetrievalError
from models.outline import OutlineTree

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetrievedChunk:
    chapter_id: str
    volume_title: str
    chapter_title: str
    text: str
    score: float


def chapter_document(volume_title: str, chapter) -> str:
    """Text embedded for one outline chapter: volume, title, summary, beats."""
    beats = "; ".join(f"[{b.type}] {b.summary}" for b in chapter.beats)
    lines = [f"卷: {volume_title}", f"章: {chapter.title}", f"摘要: {chapter.summary}"]
    if beats:
        lines.append(f"情节: {beats}")
    return "\n".join(lines)


def outline_fingerprint(outline: OutlineTree) -> str:
    """Content hash of the indexed outline text; status changes do not count."""
    digest = hashlib.sha256()
    for volume in outline.volumes:
        for chapter in volume.chapters:
            digest.update(chapter.id.encode("utf-8"))
            digest.update(chapter_document(volume.title, chapter).encode("utf-8"))
    return digest.hexdigest()[:16]


class ChromaStore:
    """Manages the ChromaDB collection of chapter outline summaries.

    One document per outline chapter, scoped by ``project_id`` metadata.
    Backend failures are raised as :class:`RetrievalError`.
    """

    CHAPTER_OUTLINES = "chapter_outlines"

    def __init__(self, persist_dir: str | Path, client=None):
        self.persist_dir = Path(persist_dir)
        if client is None:
            self.persist_dir.mkdir(parents=True, exist_ok=True)
            try:
                client = chromadb.PersistentClient(path=str(self.persist_dir))
            except Exception as e:
                raise RetrievalError(f"Cannot open vector store: {e}") from e
        self.client = client
        self._outlines = None

    @property
    def outlines(self):
        if self._outlines is None:
            try:
                self._outlines = self.client.get_or_create_collection(
                    name=self.CHAPTER_OUTLINES,
                    metadata={"hnsw:space": "cosine"},
                )
            except Exception as e:
                raise RetrievalError(f"Cannot open collection: {e}") from e
        return self._outlines

    def _indexed_fingerprint(self, project_id: str) -> str | None:
        result = self.outlines.get(where={"project_id": project_id}, limit=1, include=["metadatas"])
        metadatas = result.get("metadatas") or []
        if not metadatas:
            return None
        return metadatas[0].get("fingerprint")

    def ensure_index(self, project_id: str, outline: OutlineTree | None) -> int:
        """Rebuild the project's documents if the outline changed.

        Returns:
            Number of chapters indexed for the project.
        """
        if outline is None or outline.chapter_count() == 0:
            return 0
        fingerprint = outline_fingerprint(outline)
        try:
            if self._indexed_fingerprint(project_id) == fingerprint:
                return outline.chapter_count()
            self.outlines.delete(where={"project_id": project_id})
            ids, documents, metadatas = [], [], []
            for volume in outline.volumes:
                for chapter in volume.chapters:
                    ids.append(f"{project_id}:{chapter.id}")
                    documents.append(chapter_document(volume.title, chapter))
                    metadatas.append({
                        "project_id": project_id,
                        "chapter_id": chapter.id,
                        "volume_title": volume.title,
                        "chapter_title": chapter.title,
                        "fingerprint": fingerprint,
                    })
            self.outlines.upsert(ids=ids, documents=documents, metadatas=metadatas)
        except RetrievalError:
            raise
        except Exception as e:
            raise RetrievalError(f"Index rebuild failed: {e}", {"project_id": project_id}) from e
        logger.info("Indexed %d outline chapters for project %s", len(ids), project_id)
        return len(ids)

    def query(self, project_id: str, text: str, top_k: int = 5) -> list[RetrievedChunk]:
        """Return up to ``top_k`` chapters most similar to ``text``.

        Sorted by descending score, ties broken by chapter id.
        """
        try:
            existing = self.outlines.get(where={"project_id": project_id}, include=[])
            count = len(existing.get("ids") or [])
            if count == 0:
                return []
            results = self.outlines.query(
                query_texts=[text],
                n_results=min(top_k, count),
                where={"project_id": project_id},
                include=["documents", "metadatas", "distances"],
            )
        except RetrievalError:
            raise
        except Exception as e:
            raise RetrievalError(f"Query failed: {e}", {"project_id": project_id}) from e

        if not results["documents"] or not results["documents"][0]:
            return []

        chunks = []
        for doc, meta, dist in zip(
            results["documents"][0],
            results["metadatas"][0],
            results["distances"][0],
        ):
            chunks.append(RetrievedChunk(
                chapter_id=meta.get("chapter_id", ""),
                volume_title=meta.get("volume_title", ""),
                chapter_title=meta.get("chapter_title", ""),
                text=doc,
                score=min(1.0, max(0.0, 1.0 - float(dist))),
            ))
        chunks.sort(key=lambda c: (-c.score, c.chapter_id))
        return chunks[:top_k]

    def delete_project(self, project_id: str):
        try:
            self.outlines.delete(where={"project_id": project_id})
        except Exception as e:
            raise RetrievalError(f"Delete failed: {e}", {"project_id": project_id}) from e
