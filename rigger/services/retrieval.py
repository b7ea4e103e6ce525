"""Retrieval-augmented context: artifact ingestion and similarity lookup.

Ingestion chunks source text, embeds each chunk through the embedding slot
and persists one Artifact per chunk. A chunk that fails to embed or save is
skipped and counted; ingestion itself still succeeds.

Retrieval embeds a query, asks the store for nearest neighbours and keeps
those whose similarity (1 - cosine distance) clears the floor. It never
raises: any failure degrades to an empty result so prompts are built
without a context section.

Usage:
    from rigger.services.retrieval import RetrievalService

    service = RetrievalService(registry, store)
    await service.ingest(prd_text, ArtifactSourceType.PRD, "prd-1", ChunkStrategy.paragraph())
    results = await service.retrieve("OAuth login flow", top_k=3, min_similarity=0.6)
    context = format_context(results)
"""

import asyncio
from typing import Any

from rigger.core.chunking import ChunkStrategy, chunk_text
from rigger.core.config import get_settings
from rigger.core.errors import ProviderError, RetrievalError, ValidationError
from rigger.core.logging import get_logger
from rigger.core.schemas_artifacts import Artifact, ArtifactSourceType, IngestionResult, ScoredArtifact
from rigger.db.artifacts import ArtifactStore
from rigger.providers.registry import ProviderRegistry

logger = get_logger(__name__)

DEFAULT_PROJECT_ID = "default"
MAX_CONTEXT_CHARS_PER_ARTIFACT = 1200


class RetrievalService:
    """Chunk → embed → persist, and embed → search → filter."""

    def __init__(
        self,
        registry: ProviderRegistry,
        store: ArtifactStore,
        embedding_dim: int | None = None,
        store_timeout: float | None = None,
    ):
        settings = get_settings()
        self.registry = registry
        self.store = store
        self.embedding_dim = embedding_dim if embedding_dim is not None else settings.EMBEDDING_DIM
        self.store_timeout = store_timeout or settings.STORE_TIMEOUT_SECONDS

    # =========================================================================
    # Ingestion
    # =========================================================================

    async def _embed(self, text: str) -> list[float]:
        result = await self.registry.dispatch_embedding(text)
        vector = result.value
        if self.embedding_dim and len(vector) != self.embedding_dim:
            raise ProviderError(
                f"Embedding dimension mismatch: expected {self.embedding_dim}, got {len(vector)}"
            )
        return vector

    async def ingest(
        self,
        source_content: str,
        source_type: ArtifactSourceType,
        source_id: str,
        chunk_strategy: ChunkStrategy | None = None,
        project_id: str = DEFAULT_PROJECT_ID,
        metadata: dict[str, Any] | None = None,
    ) -> IngestionResult:
        """
        Chunk, embed and persist a source as artifacts.

        Args:
            source_content: Raw text of the source
            source_type: Origin of the content
            source_id: Path, URL or PRD id of the source
            chunk_strategy: How to split the text (paragraph by default)
            project_id: Project the artifacts belong to
            metadata: Extra metadata copied onto every artifact

        Returns:
            IngestionResult with created artifact ids and skipped chunk indices

        Raises:
            ValidationError: If the content is empty
        """
        if not source_content or not source_content.strip():
            raise ValidationError(f"Cannot ingest empty content for source {source_id}")

        strategy = chunk_strategy or ChunkStrategy.paragraph()
        chunks = chunk_text(source_content, strategy)
        result = IngestionResult(source_id=source_id, chunks_total=len(chunks))

        for chunk in chunks:
            index = chunk["chunk_index"]
            try:
                vector = await self._embed(chunk["content"])
                artifact = Artifact(
                    project_id=project_id,
                    source_id=source_id,
                    source_type=source_type,
                    content=chunk["content"],
                    embedding=vector,
                    metadata={
                        **(metadata or {}),
                        "chunk_index": index,
                        "chunk_strategy": strategy.describe(),
                        "start_char": chunk["start_char"],
                        "end_char": chunk["end_char"],
                    },
                )
                await asyncio.wait_for(self.store.save(artifact), timeout=self.store_timeout)
            except Exception as e:
                logger.warning(
                    f"Skipping chunk {index} of {source_id}: {e}",
                    extra={"extra_data": {"source_id": source_id, "chunk_index": index}},
                )
                result.failed_chunks.append(index)
                continue

            result.artifact_ids.append(artifact.id)

        logger.info(
            f"Ingested {len(result.artifact_ids)}/{result.chunks_total} chunks from {source_id}",
            extra={"extra_data": {
                "source_id": source_id,
                "source_type": source_type.value,
                "strategy": strategy.describe(),
                "failed": result.failed_count,
            }},
        )
        return result

    async def ingest_prd(self, prd_id: str, content: str, project_id: str = DEFAULT_PROJECT_ID) -> IngestionResult:
        """Ingest a PRD document split on paragraph boundaries."""
        return await self.ingest(
            content,
            ArtifactSourceType.PRD,
            prd_id,
            ChunkStrategy.paragraph(),
            project_id=project_id,
        )

    # =========================================================================
    # Retrieval
    # =========================================================================

    async def _search(self, query_text: str, top_k: int, min_similarity: float) -> list[ScoredArtifact]:
        try:
            vector = (await self.registry.dispatch_embedding(query_text)).value
        except ProviderError as e:
            raise RetrievalError(f"Query embedding failed: {e}") from e

        try:
            neighbours = await asyncio.wait_for(
                self.store.find_similar(vector, top_k, min_similarity),
                timeout=self.store_timeout,
            )
        except Exception as e:
            raise RetrievalError(f"Similarity search failed: {type(e).__name__}: {e}") from e

        scored = [
            ScoredArtifact(artifact=artifact, similarity=1.0 - distance)
            for artifact, distance in neighbours
        ]
        scored = [s for s in scored if s.similarity >= min_similarity]
        scored.sort(key=lambda s: s.similarity, reverse=True)
        return scored[:top_k]

    async def retrieve(
        self,
        query_text: str,
        top_k: int,
        min_similarity: float,
    ) -> list[ScoredArtifact]:
        """
        Find artifacts relevant to a query.

        Returns (artifact, similarity) pairs with similarity >= min_similarity,
        most similar first. Returns an empty list on any failure.
        """
        if not query_text or not query_text.strip() or top_k <= 0:
            return []

        try:
            results = await self._search(query_text, top_k, min_similarity)
        except RetrievalError as e:
            logger.warning(f"Retrieval degraded to no context: {e}")
            return []
        except Exception as e:
            logger.warning(f"Retrieval degraded to no context: unexpected {type(e).__name__}: {e}")
            return []

        logger.debug(
            f"Retrieved {len(results)} artifacts",
            extra={"extra_data": {"top_k": top_k, "min_similarity": min_similarity}},
        )
        return results


def format_context(results: list[ScoredArtifact], heading: str = "Relevant Context") -> str:
    """Render retrieved artifacts as a prompt section; empty results render as ''."""
    if not results:
        return ""

    lines = [f"# {heading}", ""]
    for i, scored in enumerate(results, 1):
        artifact = scored.artifact
        content = artifact.content.strip()
        if len(content) > MAX_CONTEXT_CHARS_PER_ARTIFACT:
            content = content[:MAX_CONTEXT_CHARS_PER_ARTIFACT].rstrip() + "..."
        lines.append(
            f"[{i}] {artifact.source_type.value}:{artifact.source_id} "
            f"(similarity {scored.similarity:.2f})"
        )
        lines.append(content)
        lines.append("")
    return "\n".join(lines).rstrip() + "\n\n"
