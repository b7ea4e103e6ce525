"""Pydantic schemas for retrieval artifacts."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class ArtifactSourceType(str, Enum):
    """Where an artifact's content came from."""
    PRD = "prd"
    FILE = "file"
    WEB_RESEARCH = "web_research"
    USER_INPUT = "user_input"


class Artifact(BaseModel):
    """Embedded chunk of source knowledge. Never mutated after creation."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    project_id: str
    source_id: str
    source_type: ArtifactSourceType
    content: str
    embedding: list[float]
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ScoredArtifact(BaseModel):
    """Artifact returned by retrieval with its similarity to the query."""
    model_config = ConfigDict(frozen=True)

    artifact: Artifact
    similarity: float


class IngestionResult(BaseModel):
    """Outcome of one ingestion call; partial failure is not an error."""
    source_id: str
    artifact_ids: list[str] = Field(default_factory=list)
    chunks_total: int = 0
    failed_chunks: list[int] = Field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return len(self.failed_chunks)

    @property
    def is_partial(self) -> bool:
        return bool(self.failed_chunks) and bool(self.artifact_ids)
