"""Configuration settings loaded from .env file."""

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings, loaded from .env file.

    Authentication for the generation backend is handled by the Claude Agent
    SDK itself, so no API key lives here.
    """

    # LLM Models, one per workflow role
    llm_model_director: str = "claude-sonnet-4-6"   # DirectorAgent (routing)
    llm_model_world: str = "claude-opus-4-6"        # WorldBuilderAgent
    llm_model_casting: str = "claude-opus-4-6"      # CastingDirectorAgent
    llm_model_outline: str = "claude-opus-4-6"      # OutlinerAgent
    llm_model_writing: str = "claude-opus-4-6"      # WriterAgent
    llm_model_editing: str = "claude-opus-4-6"      # EditorAgent

    # Storage
    sqlite_db_path: Path = Path("./data/novels.db")
    checkpoint_db_path: Path = Path("./data/checkpoints.db")
    checkpoint_backend: str = "sqlite"  # "sqlite" or "memory"
    chroma_persist_dir: Path = Path("./data/chroma")

    # Revision loop
    max_revisions: int = 3
    editor_pass_score: float = 80.0

    # Generation
    generation_timeout: float = 300.0  # seconds per generation call

    # Memory / retrieval
    memory_max_messages: int = 15
    memory_max_chars: int = 2000
    retrieval_top_k: int = 5

    # Human-in-the-loop
    confirm_token: str = "确认"

    # Engine
    recursion_limit: int = 50

    # Logging
    log_dir: Path = Path("./data/logs")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    @field_validator("max_revisions")
    @classmethod
    def validate_max_revisions(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_revisions must be >= 1")
        return v

    @field_validator("editor_pass_score")
    @classmethod
    def validate_pass_score(cls, v: float) -> float:
        if not 0 <= v <= 100:
            raise ValueError("editor_pass_score must be within [0, 100]")
        return v

    @field_validator("generation_timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("generation_timeout must be positive")
        return v

    @field_validator("memory_max_messages", "memory_max_chars", "retrieval_top_k", "recursion_limit")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Value must be >= 1")
        return v

    @field_validator("checkpoint_backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        v = v.lower()
        if v not in ("sqlite", "memory"):
            raise ValueError("checkpoint_backend must be 'sqlite' or 'memory'")
        return v

    @field_validator("confirm_token")
    @classmethod
    def validate_confirm_token(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("confirm_token must not be empty")
        return v

    @field_validator("sqlite_db_path", "checkpoint_db_path", "chroma_persist_dir", "log_dir")
    @classmethod
    def ensure_parent_dirs(cls, v: Path) -> Path:
        v.parent.mkdir(parents=True, exist_ok=True)
        return v


_settings_instance: Settings | None = None


def get_settings() -> Settings:
    """Get cached settings instance."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
