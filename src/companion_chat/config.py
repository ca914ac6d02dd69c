"""Configuration models for companion-chat."""

from __future__ import annotations

import os
from typing import Literal

from pydantic import BaseModel, Field, model_validator


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "localhost"
    port: int = Field(default=8000, ge=1, le=65535)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


class StorageConfig(BaseModel):
    """Relational store configuration."""

    sqlite_db_path: str = "./data/companion_chat.db"

    @model_validator(mode="after")
    def _validate_paths(self) -> "StorageConfig":
        normalized = os.path.normpath(self.sqlite_db_path)
        parts = normalized.replace("\\", "/").split("/")
        if ".." in parts:
            raise ValueError(
                f"sqlite_db_path must not contain '..' components: "
                f"{self.sqlite_db_path!r}"
            )
        self.sqlite_db_path = normalized
        return self


class HistoryConfig(BaseModel):
    """Short-term history configuration."""

    backend: Literal["sqlite", "redis"] = "sqlite"
    redis_url: str = "redis://localhost:6379/0"
    limit: int = Field(default=30, ge=1)
    window_hours: float = Field(default=24.0, gt=0)
    seed_delimiter: str = "\n\n"


class EmbeddingConfig(BaseModel):
    """Embedding model configuration."""

    provider: Literal["local", "api"] = "local"
    model: str = "sentence-transformers/all-MiniLM-L6-v2"
    dimension: int = 384
    base_url: str | None = None
    api_key: str | None = None
    trust_remote_code: bool = False


class VectorConfig(BaseModel):
    """Long-term vector memory configuration."""

    top_k: int = Field(default=3, ge=1)


class LLMConfig(BaseModel):
    """Streaming model configuration."""

    base_url: str = "http://localhost:8080/v1"
    api_key: str = "not-needed"
    model: str = "HuggingFaceH4/zephyr-7b-beta"
    max_new_tokens: int = Field(default=2048, ge=1)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    repetition_penalty: float = Field(default=1.1, ge=0.0, le=10.0)
    stop_markers: list[str] = Field(default_factory=lambda: ["</s>"])


class StreamingConfig(BaseModel):
    """Streaming orchestrator configuration."""

    checkpoint_interval_seconds: float = Field(default=1.0, gt=0)
    cleanup_timeout_seconds: float = Field(default=5.0, gt=0)


class RateLimitConfig(BaseModel):
    """Sliding window rate limit configuration."""

    enabled: bool = True
    requests: int = Field(default=10, ge=1)
    window_seconds: float = Field(default=10.0, gt=0)


class LoggingConfig(BaseModel):
    """Log sink configuration."""

    level: str = "INFO"
    file: str | None = None
    rotation: str = "10 MB"


class PersonaConfig(BaseModel):
    """A persona definition upserted into the store at startup."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    instructions: str = ""
    seed: str = ""
    description: str = ""


class AppConfig(BaseModel):
    """Top-level configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    vector: VectorConfig = Field(default_factory=VectorConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    streaming: StreamingConfig = Field(default_factory=StreamingConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    personas: list[PersonaConfig] = Field(default_factory=list)
