"""Artifact store boundary and an in-memory cosine-distance implementation."""

import asyncio
from abc import ABC, abstractmethod

import numpy as np

from rigger.core.errors import RepositoryError
from rigger.core.schemas_artifacts import Artifact


class ArtifactStore(ABC):
    """Persists artifacts and answers nearest-neighbour queries."""

    @abstractmethod
    async def save(self, artifact: Artifact) -> None:
        """Persist an artifact. Raises RepositoryError on failure."""

    @abstractmethod
    async def find_similar(
        self,
        vector: list[float],
        limit: int,
        threshold: float | None = None,
    ) -> list[tuple[Artifact, float]]:
        """
        Return up to ``limit`` (artifact, cosine distance) pairs, nearest first.

        ``threshold`` is a minimum similarity; stores may use it to prune
        results whose distance exceeds ``1 - threshold``.
        """


def cosine_distances(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
    """Cosine distance of each row of ``matrix`` to ``query`` (0 = identical, 2 = opposite)."""
    row_norms = np.linalg.norm(matrix, axis=1)
    query_norm = np.linalg.norm(query)
    denom = row_norms * query_norm
    with np.errstate(divide="ignore", invalid="ignore"):
        similarity = np.where(denom > 0, matrix @ query / denom, 0.0)
    return 1.0 - similarity


class InMemoryArtifactStore(ArtifactStore):
    """Exact (brute-force) similarity search over artifacts held in memory."""

    def __init__(self, dimension: int | None = None):
        self.dimension = dimension
        self._artifacts: dict[str, Artifact] = {}
        self._lock = asyncio.Lock()

    async def save(self, artifact: Artifact) -> None:
        if self.dimension is not None and len(artifact.embedding) != self.dimension:
            raise RepositoryError(
                f"Embedding dimension mismatch for artifact {artifact.id}: "
                f"expected {self.dimension}, got {len(artifact.embedding)}"
            )
        async with self._lock:
            if artifact.id in self._artifacts:
                raise RepositoryError(f"Artifact {artifact.id} already exists; artifacts are immutable")
            self._artifacts[artifact.id] = artifact

    async def find_similar(
        self,
        vector: list[float],
        limit: int,
        threshold: float | None = None,
    ) -> list[tuple[Artifact, float]]:
        async with self._lock:
            artifacts = [a for a in self._artifacts.values() if len(a.embedding) == len(vector)]

        if not artifacts or limit <= 0:
            return []

        matrix = np.array([a.embedding for a in artifacts], dtype=np.float32)
        distances = cosine_distances(matrix, np.array(vector, dtype=np.float32))

        order = np.argsort(distances, kind="stable")
        results = []
        for index in order:
            distance = float(distances[index])
            if threshold is not None and distance > 1.0 - threshold:
                continue
            results.append((artifacts[index], distance))
            if len(results) >= limit:
                break
        return results

    async def list_by_source(self, source_id: str) -> list[Artifact]:
        async with self._lock:
            return [a for a in self._artifacts.values() if a.source_id == source_id]

    def __len__(self) -> int:
        return len(self._artifacts)
