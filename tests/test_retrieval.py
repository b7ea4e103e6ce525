"""Tests for artifact ingestion and similarity retrieval."""

import pytest

from rigger.core.chunking import ChunkStrategy
from rigger.core.errors import ValidationError
from rigger.core.schemas_artifacts import Artifact, ArtifactSourceType, ScoredArtifact
from rigger.db.artifacts import ArtifactStore
from rigger.services.retrieval import RetrievalService, format_context
from tests.fakes.fake_providers import EMBEDDING_DIM, FakeEmbeddingProvider, make_registry


def _artifact(content: str, source_id: str = "prd-1") -> Artifact:
    return Artifact(
        project_id="default",
        source_id=source_id,
        source_type=ArtifactSourceType.PRD,
        content=content,
        embedding=[1.0] + [0.0] * (EMBEDDING_DIM - 1),
    )


class FixedDistanceStore(ArtifactStore):
    """Returns canned (artifact, distance) pairs regardless of the query."""

    def __init__(self, neighbours: list[tuple[Artifact, float]]):
        self.neighbours = neighbours
        self.calls = []

    async def save(self, artifact: Artifact) -> None:
        raise NotImplementedError

    async def find_similar(self, vector, limit, threshold=None):
        self.calls.append((vector, limit, threshold))
        return list(self.neighbours)


class BrokenStore(ArtifactStore):
    async def save(self, artifact: Artifact) -> None:
        raise RuntimeError("disk full")

    async def find_similar(self, vector, limit, threshold=None):
        raise RuntimeError("index unavailable")


def _service(store: ArtifactStore, embedder: FakeEmbeddingProvider | None = None) -> RetrievalService:
    registry = make_registry(embedder=embedder or FakeEmbeddingProvider())
    return RetrievalService(registry, store, embedding_dim=EMBEDDING_DIM, store_timeout=5)


class TestIngest:
    @pytest.mark.asyncio
    async def test_failed_chunk_is_skipped(self, artifact_store):
        """1200 chars at fixed size 500 with the middle embedding failing."""
        service = _service(artifact_store, FakeEmbeddingProvider(fail_on={1}))

        result = await service.ingest(
            "A" * 1200,
            ArtifactSourceType.FILE,
            "docs/requirements.txt",
            ChunkStrategy.fixed_size(500),
        )

        assert result.chunks_total == 3
        assert len(result.artifact_ids) == 2
        assert result.failed_chunks == [1]
        assert result.is_partial

        stored = await artifact_store.list_by_source("docs/requirements.txt")
        assert sorted(a.metadata["chunk_index"] for a in stored) == [0, 2]
        assert {len(a.content) for a in stored} == {500, 200}

    @pytest.mark.asyncio
    async def test_artifacts_carry_chunk_metadata(self, artifact_store):
        service = _service(artifact_store)

        result = await service.ingest(
            "Login uses SSO.\n\nSessions expire after an hour.",
            ArtifactSourceType.USER_INPUT,
            "note-1",
            metadata={"author": "pm"},
        )

        assert result.failed_count == 0
        assert not result.is_partial
        stored = await artifact_store.list_by_source("note-1")
        first = min(stored, key=lambda a: a.metadata["chunk_index"])
        assert first.content == "Login uses SSO."
        assert first.metadata["chunk_strategy"] == "paragraph"
        assert first.metadata["author"] == "pm"
        assert first.metadata["start_char"] == 0
        assert len(first.embedding) == EMBEDDING_DIM

    @pytest.mark.asyncio
    async def test_empty_content_rejected(self, artifact_store):
        service = _service(artifact_store)

        with pytest.raises(ValidationError):
            await service.ingest("   ", ArtifactSourceType.PRD, "prd-empty")

        assert len(artifact_store) == 0

    @pytest.mark.asyncio
    async def test_store_failure_counts_chunk_as_failed(self):
        service = _service(BrokenStore())

        result = await service.ingest("One.\n\nTwo.", ArtifactSourceType.PRD, "prd-1")

        assert result.artifact_ids == []
        assert result.failed_chunks == [0, 1]

    @pytest.mark.asyncio
    async def test_wrong_dimension_embedding_is_skipped(self, artifact_store):
        service = _service(artifact_store, FakeEmbeddingProvider(dim=4))

        result = await service.ingest("Only paragraph.", ArtifactSourceType.PRD, "prd-1")

        assert result.failed_chunks == [0]

    @pytest.mark.asyncio
    async def test_ingest_prd_uses_paragraphs(self, artifact_store):
        service = _service(artifact_store)

        result = await service.ingest_prd("prd-42", "Goal.\n\nScope.\n\nRisks.", project_id="proj")

        assert len(result.artifact_ids) == 3
        stored = await artifact_store.list_by_source("prd-42")
        assert all(a.source_type == ArtifactSourceType.PRD for a in stored)
        assert all(a.project_id == "proj" for a in stored)


class TestRetrieve:
    @pytest.mark.asyncio
    async def test_similarity_floor_filters_results(self):
        """Distances 0.1, 0.35, 0.6 at floor 0.6 keep the first two."""
        a1, a2, a3 = _artifact("oauth flow"), _artifact("token refresh"), _artifact("billing")
        store = FixedDistanceStore([(a1, 0.1), (a2, 0.35), (a3, 0.6)])
        service = _service(store)

        results = await service.retrieve("OAuth login flow", top_k=3, min_similarity=0.6)

        assert [r.artifact.id for r in results] == [a1.id, a2.id]
        assert results[0].similarity == pytest.approx(0.9)
        assert results[1].similarity == pytest.approx(0.65)
        assert store.calls[0][1:] == (3, 0.6)

    @pytest.mark.asyncio
    async def test_results_sorted_and_truncated(self):
        a1, a2, a3 = _artifact("a"), _artifact("b"), _artifact("c")
        store = FixedDistanceStore([(a1, 0.3), (a2, 0.05), (a3, 0.2)])
        service = _service(store)

        results = await service.retrieve("query", top_k=2, min_similarity=0.0)

        assert [r.artifact.id for r in results] == [a2.id, a3.id]

    @pytest.mark.asyncio
    async def test_query_embedding_failure_returns_empty(self):
        store = FixedDistanceStore([(_artifact("a"), 0.1)])
        service = _service(store, FakeEmbeddingProvider(always_fail=True))

        assert await service.retrieve("query", top_k=3, min_similarity=0.5) == []
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_store_failure_returns_empty(self):
        service = _service(BrokenStore())

        assert await service.retrieve("query", top_k=3, min_similarity=0.5) == []

    @pytest.mark.asyncio
    async def test_blank_query_returns_empty(self):
        embedder = FakeEmbeddingProvider()
        service = _service(FixedDistanceStore([]), embedder)

        assert await service.retrieve("  ", top_k=3, min_similarity=0.5) == []
        assert embedder.calls == []

    @pytest.mark.asyncio
    async def test_round_trip_through_in_memory_store(self, artifact_store):
        service = _service(artifact_store)
        await service.ingest(
            "Users authenticate with OAuth tokens.\n\nInvoices are emailed monthly.",
            ArtifactSourceType.PRD,
            "prd-1",
        )

        results = await service.retrieve("Users authenticate with OAuth tokens.", top_k=1, min_similarity=0.9)

        assert len(results) == 1
        assert results[0].artifact.content == "Users authenticate with OAuth tokens."
        assert results[0].similarity == pytest.approx(1.0, abs=1e-5)


class TestFormatContext:
    def test_empty_results_render_nothing(self):
        assert format_context([]) == ""

    def test_renders_numbered_sources(self):
        results = [
            ScoredArtifact(artifact=_artifact("OAuth via Google", "prd-7"), similarity=0.91),
            ScoredArtifact(artifact=_artifact("Refresh tokens rotate", "prd-7"), similarity=0.7),
        ]

        context = format_context(results)

        assert context.startswith("# Relevant Context\n")
        assert "[1] prd:prd-7 (similarity 0.91)" in context
        assert "[2] prd:prd-7 (similarity 0.70)" in context
        assert "OAuth via Google" in context
        assert context.endswith("\n\n")

    def test_long_content_is_truncated(self):
        results = [ScoredArtifact(artifact=_artifact("x" * 5000), similarity=0.8)]

        context = format_context(results)

        assert "x" * 1200 + "..." in context
        assert "x" * 1201 not in context
