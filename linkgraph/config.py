"""
Configuration for linkgraph.

Supports loading from:
1. Environment variables (highest priority)
2. YAML config file
3. Default values (fallback)
"""

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator


class EmbedderConfig(BaseModel):
    """Embedder configuration."""

    provider: str = "ollama"  # ollama, openai, hash, none
    model: str = "nomic-embed-text"
    base_url: str = "http://localhost:11434"
    api_key: str | None = None
    timeout: float = 30.0
    # Optional: embedding dimension (locked from the first vector when unset)
    dimension: int | None = None
    max_retries: int = 2
    retry_backoff: float = 1.0
    batch_size: int = 32
    cache_size: int = 2048


class LinkingConfig(BaseModel):
    """Auto-linker scoring configuration."""

    semantic_weight: float = 0.7
    tag_weight: float = 0.25
    recency_weight: float = 0.05
    min_score: float = 0.5
    top_k: int = 5
    tag_pool_limit: int = 200
    vector_pool_limit: int = 50
    recency_half_life_days: float = 30.0

    @model_validator(mode="after")
    def _check_weights(self) -> "LinkingConfig":
        weights = (self.semantic_weight, self.tag_weight, self.recency_weight)
        if any(w < 0 for w in weights):
            raise ValueError("Scoring weights must be non-negative")
        if sum(weights) <= 0:
            raise ValueError("At least one scoring weight must be positive")
        return self


class ModerationConfig(BaseModel):
    """Edge moderation configuration."""

    undo_window_seconds: int = 86400
    batch_group_size: int = 100


class QueryConfig(BaseModel):
    """Hybrid query configuration."""

    default_limit: int = 20
    max_query_length: int = 1000


class StoreConfig(BaseModel):
    """SQLite store configuration."""

    db_path: str = "data/linkgraph.db"
    busy_timeout_ms: int = 5000


class DocumentConfig(BaseModel):
    """Document chunking configuration."""

    max_chunk_chars: int = 2000
    chunk_overlap: int = 0


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    log_to_file: bool = False
    log_dir: str = "logs"
    file_rotation: str = "10 MB"
    file_retention: str = "7 days"
    compression: str = "zip"
    serialize: bool = True


class Config(BaseModel):
    """Main configuration."""

    embedder: EmbedderConfig = Field(default_factory=EmbedderConfig)
    linking: LinkingConfig = Field(default_factory=LinkingConfig)
    moderation: ModerationConfig = Field(default_factory=ModerationConfig)
    query: QueryConfig = Field(default_factory=QueryConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    documents: DocumentConfig = Field(default_factory=DocumentConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> "Config":
        """
        Load configuration from environment variables.

        Priority: .env file -> system environment variables -> defaults

        Args:
            env_file: Optional path to .env file (default: .env in working directory)

        Returns:
            Config instance

        Environment variables:
            LINKGRAPH_EMBEDDER_PROVIDER: Embedder provider (ollama, openai, hash, none)
            LINKGRAPH_EMBEDDER_MODEL: Embedder model name
            LINKGRAPH_EMBEDDER_BASE_URL: Embedder base URL
            LINKGRAPH_EMBEDDER_API_KEY: Embedder API key (for OpenAI)
            LINKGRAPH_EMBEDDER_DIMENSION: Embedding dimension (optional)
            LINKGRAPH_EMBEDDER_TIMEOUT: Per-call timeout in seconds
            LINKGRAPH_LINK_SEMANTIC_WEIGHT / _TAG_WEIGHT / _RECENCY_WEIGHT: Score weights
            LINKGRAPH_LINK_MIN_SCORE: Suggestion threshold
            LINKGRAPH_LINK_TOP_K: Max suggestions per node
            LINKGRAPH_UNDO_WINDOW_SECONDS: Undo window
            LINKGRAPH_DB_PATH: SQLite database path
            LINKGRAPH_LOG_LEVEL: Log level
        """
        if env_file:
            load_dotenv(env_file)
        elif Path(".env").exists():
            load_dotenv()

        def get_env(key: str, default: Any = None) -> Any:
            """Get environment variable with type conversion."""
            value = os.getenv(key)
            if value is None:
                return default
            if value == "":
                return default
            # bool is checked before int since bool subclasses int
            if isinstance(default, bool):
                return str(value).lower() in ("true", "1", "yes")
            if isinstance(default, int):
                return int(value)
            if isinstance(default, float):
                return float(value)
            return value

        def get_int_or_none(key: str) -> int | None:
            """Get an optional integer environment variable."""
            value = get_env(key)
            return int(value) if value is not None else None

        return cls(
            embedder=EmbedderConfig(
                provider=get_env("LINKGRAPH_EMBEDDER_PROVIDER", "ollama"),
                model=get_env("LINKGRAPH_EMBEDDER_MODEL", "nomic-embed-text"),
                base_url=get_env("LINKGRAPH_EMBEDDER_BASE_URL", "http://localhost:11434"),
                api_key=get_env("LINKGRAPH_EMBEDDER_API_KEY"),
                timeout=get_env("LINKGRAPH_EMBEDDER_TIMEOUT", 30.0),
                dimension=get_int_or_none("LINKGRAPH_EMBEDDER_DIMENSION"),
                max_retries=get_env("LINKGRAPH_EMBEDDER_MAX_RETRIES", 2),
                retry_backoff=get_env("LINKGRAPH_EMBEDDER_RETRY_BACKOFF", 1.0),
                batch_size=get_env("LINKGRAPH_EMBEDDER_BATCH_SIZE", 32),
                cache_size=get_env("LINKGRAPH_EMBEDDER_CACHE_SIZE", 2048),
            ),
            linking=LinkingConfig(
                semantic_weight=get_env("LINKGRAPH_LINK_SEMANTIC_WEIGHT", 0.7),
                tag_weight=get_env("LINKGRAPH_LINK_TAG_WEIGHT", 0.25),
                recency_weight=get_env("LINKGRAPH_LINK_RECENCY_WEIGHT", 0.05),
                min_score=get_env("LINKGRAPH_LINK_MIN_SCORE", 0.5),
                top_k=get_env("LINKGRAPH_LINK_TOP_K", 5),
                tag_pool_limit=get_env("LINKGRAPH_LINK_TAG_POOL_LIMIT", 200),
                vector_pool_limit=get_env("LINKGRAPH_LINK_VECTOR_POOL_LIMIT", 50),
                recency_half_life_days=get_env("LINKGRAPH_LINK_RECENCY_HALF_LIFE_DAYS", 30.0),
            ),
            moderation=ModerationConfig(
                undo_window_seconds=get_env("LINKGRAPH_UNDO_WINDOW_SECONDS", 86400),
                batch_group_size=get_env("LINKGRAPH_BATCH_GROUP_SIZE", 100),
            ),
            query=QueryConfig(
                default_limit=get_env("LINKGRAPH_QUERY_DEFAULT_LIMIT", 20),
                max_query_length=get_env("LINKGRAPH_QUERY_MAX_LENGTH", 1000),
            ),
            store=StoreConfig(
                db_path=get_env("LINKGRAPH_DB_PATH", "data/linkgraph.db"),
                busy_timeout_ms=get_env("LINKGRAPH_DB_BUSY_TIMEOUT_MS", 5000),
            ),
            documents=DocumentConfig(
                max_chunk_chars=get_env("LINKGRAPH_DOC_MAX_CHUNK_CHARS", 2000),
                chunk_overlap=get_env("LINKGRAPH_DOC_CHUNK_OVERLAP", 0),
            ),
            logging=LoggingConfig(
                level=get_env("LINKGRAPH_LOG_LEVEL", "INFO"),
                log_to_file=get_env("LINKGRAPH_LOG_TO_FILE", False),
                log_dir=get_env("LINKGRAPH_LOG_DIR", "logs"),
                file_rotation=get_env("LINKGRAPH_LOG_FILE_ROTATION", "10 MB"),
                file_retention=get_env("LINKGRAPH_LOG_FILE_RETENTION", "7 days"),
                compression=get_env("LINKGRAPH_LOG_COMPRESSION", "zip"),
                serialize=get_env("LINKGRAPH_LOG_SERIALIZE", True),
            ),
        )

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> "Config":
        """
        Load configuration from YAML file.

        Args:
            yaml_path: Path to YAML configuration file

        Returns:
            Config instance

        Raises:
            FileNotFoundError: If YAML file doesn't exist
            yaml.YAMLError: If YAML is invalid
        """
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Config file not found: {yaml_path}")

        with open(yaml_path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @classmethod
    def from_env_or_yaml(
        cls, yaml_path: str | Path | None = None, env_file: str | Path | None = None
    ) -> "Config":
        """
        Load configuration with priority: env vars > YAML > defaults.

        Args:
            yaml_path: Optional path to YAML config
            env_file: Optional path to .env file

        Returns:
            Config instance
        """
        if yaml_path and Path(yaml_path).exists():
            with open(yaml_path) as f:
                config_dict = yaml.safe_load(f) or {}
        else:
            config_dict = {}

        env_config = cls.from_env(env_file=env_file)

        final_dict = {**config_dict}

        # Sections whose env values differ from the defaults override YAML
        default = cls()
        for section in ("embedder", "linking", "moderation", "query", "store", "documents", "logging"):
            env_section = getattr(env_config, section)
            if env_section != getattr(default, section):
                final_dict[section] = env_section.model_dump()

        return cls(**final_dict) if final_dict else env_config


# Default config instance
default_config = Config()
