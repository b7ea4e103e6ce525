"""Configuration management for the Rigger orchestration engine."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    pass


SLOT_NAMES = ("main", "research", "fallback", "embedding", "vision", "chat_agent")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Environment
    RIGGER_ENV: str = Field(default="dev", description="Environment: dev, test, prod")
    LOG_LEVEL: str | None = Field(default=None, description="Overrides the env-derived log level")

    # Provider credentials and endpoints
    OPENAI_API_KEY: str | None = Field(default=None, description="OpenAI API key")
    ANTHROPIC_API_KEY: str | None = Field(default=None, description="Anthropic API key")
    OLLAMA_BASE_URL: str = Field(
        default="http://localhost:11434", description="Ollama server base URL"
    )

    # Task slots: provider + model per logical role
    MAIN_PROVIDER: str = Field(default="ollama", description="Primary generation provider")
    MAIN_MODEL: str = Field(default="llama3.2", description="Primary generation model")
    MAIN_ENABLED: bool = Field(default=True)

    RESEARCH_PROVIDER: str = Field(default="ollama", description="Research provider")
    RESEARCH_MODEL: str = Field(default="llama3.2", description="Research model")
    RESEARCH_ENABLED: bool = Field(default=True)

    FALLBACK_PROVIDER: str = Field(default="ollama", description="Provider used when a slot fails")
    FALLBACK_MODEL: str = Field(default="llama3.2", description="Fallback model")
    FALLBACK_ENABLED: bool = Field(default=True)

    EMBEDDING_PROVIDER: str = Field(default="ollama", description="Embedding provider")
    EMBEDDING_MODEL: str = Field(default="nomic-embed-text", description="Embedding model")
    EMBEDDING_ENABLED: bool = Field(default=True)
    EMBEDDING_DIM: int = Field(default=768, description="Embedding vector dimension")

    VISION_PROVIDER: str = Field(default="ollama", description="Vision provider")
    VISION_MODEL: str = Field(default="llava:latest", description="Vision model")
    VISION_ENABLED: bool = Field(default=False)

    CHAT_AGENT_PROVIDER: str = Field(default="ollama", description="Chat agent provider")
    CHAT_AGENT_MODEL: str = Field(default="llama3.2", description="Chat agent model")
    CHAT_AGENT_ENABLED: bool = Field(default=True)

    # Timeouts (seconds)
    PROVIDER_TIMEOUT_SECONDS: float = Field(default=60.0, description="LLM dispatch timeout")
    EMBEDDING_TIMEOUT_SECONDS: float = Field(default=30.0, description="Embedding call timeout")
    STORE_TIMEOUT_SECONDS: float = Field(default=10.0, description="Similarity search timeout")

    # Routing and orchestration
    COMPLEXITY_THRESHOLD: int = Field(
        default=7, ge=1, le=10, description="Scores at or above this are decomposed"
    )
    MAX_CONCURRENT_TASKS: int = Field(default=4, ge=1, description="Concurrent task flows")
    MAX_DECOMPOSITION_DEPTH: int = Field(
        default=2, ge=0, description="Ancestor levels after which tasks are no longer decomposed"
    )
    MIN_SUBTASKS: int = Field(default=3, ge=1, description="Minimum subtasks per decomposition")
    MAX_SUBTASKS: int = Field(default=5, ge=1, description="Maximum subtasks per decomposition")
    COMPREHENSION_TEST_TYPE: str = Field(
        default="short_answer", description="short_answer, multiple_choice or true_false"
    )

    # Retrieval policy per call site
    ENHANCE_TOP_K: int = Field(default=3, ge=1, description="Artifacts retrieved for enhancement")
    ENHANCE_MIN_SIMILARITY: float = Field(default=0.6, description="Enhancement similarity floor")
    DECOMPOSE_TOP_K: int = Field(default=2, ge=1, description="Artifacts retrieved for decomposition")
    DECOMPOSE_MIN_SIMILARITY: float = Field(
        default=0.7, description="Decomposition similarity floor"
    )

    def slot_config(self, slot: str) -> tuple[str, str, bool]:
        """Return (provider, model, enabled) for a slot name."""
        if slot not in SLOT_NAMES:
            raise ValueError(f"Unknown task slot: {slot}")
        prefix = slot.upper()
        return (
            getattr(self, f"{prefix}_PROVIDER").lower(),
            getattr(self, f"{prefix}_MODEL"),
            getattr(self, f"{prefix}_ENABLED"),
        )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If an environment variable has an invalid value
    """
    return Settings()
