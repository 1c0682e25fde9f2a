"""Centralized configuration for the study notes service."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DOTENV_PATH = Path(__file__).resolve().parents[2] / ".env"
if DOTENV_PATH.exists():
    load_dotenv(dotenv_path=DOTENV_PATH, override=False)
else:
    load_dotenv()


class Paths(BaseModel):
    project_root: Path = Field(default=Path(__file__).resolve().parents[2])
    data_dir: Path = Field(default=Path("data"))
    sources_dir: Path = Field(default=Path("data/sources"))
    syllabus_path: Path | None = Field(default=None)
    topic_templates_path: Path | None = Field(default=None)
    evaluation_dir: Path = Field(default=Path("data/evaluations"))


class ModelSettings(BaseModel):
    llm_model: str = Field(default="gpt-4o-mini")
    llm_base_url: str = Field(default="http://localhost:11434")
    llm_provider: Literal["ollama", "openai"] = Field(default="openai")
    openai_api_base: str | None = Field(default="https://api.openai.com/v1")
    max_input_tokens: int = Field(default=8192)
    max_output_tokens: int = Field(default=3000)
    temperature: float = Field(default=0.1)
    request_timeout_seconds: float = Field(default=90.0)


class RetrievalSettings(BaseModel):
    chunk_min_words: int = Field(default=80)
    chunk_max_words: int = Field(default=250)
    chunk_overlap_words: int = Field(default=40)
    top_k: int = Field(default=6)
    expanded_top_k: int = Field(default=12)
    confidence_threshold: float = Field(default=0.75)
    max_context_chunks: int = Field(default=8)


class GenerationSettings(BaseModel):
    max_attempts: int = Field(default=3)
    max_topics: int = Field(default=8)
    definition_words: tuple[int, int] = Field(default=(10, 150))
    explanation_min_words: int = Field(default=250)
    explanation_min_lines: int = Field(default=15)
    detailed_example_words: tuple[int, int] = Field(default=(30, 200))
    short_example_words: tuple[int, int] = Field(default=(5, 30))
    alignment_threshold: float = Field(default=0.7)
    answer_min_words: int = Field(default=10)
    answer_max_similarity: float = Field(default=0.8)
    target_grade: float = Field(default=7.5)
    min_readability_score: float = Field(default=6.0)
    blocked_terms: tuple[str, ...] = Field(
        default=("hate", "violence", "discrimination", "inappropriate", "offensive", "harmful", "dangerous", "illegal")
    )


class SyllabusSettings(BaseModel):
    fuzzy_threshold: float = Field(default=0.2)
    max_suggestions: int = Field(default=5)


class CacheSettings(BaseModel):
    max_entries: int = Field(default=100)
    ttl_hours: float = Field(default=24.0)
    sweep_interval_seconds: float = Field(default=3600.0)
    llm_cache_enabled: bool = Field(default=False)
    llm_cache_path: Path = Field(default=Path("data/cache/lc_cache.db"))


class JobSettings(BaseModel):
    min_class: int = Field(default=9)
    max_class: int = Field(default=12)
    depth_levels: tuple[str, ...] = Field(default=("basic", "intermediate", "advanced"))
    retention_minutes: float = Field(default=60.0)
    sweep_interval_seconds: float = Field(default=600.0)


class SourceSettings(BaseModel):
    url_templates: list[str] = Field(default_factory=lambda: ["https://en.wikipedia.org/wiki/{chapter_slug}"])
    timeout_seconds: float = Field(default=15.0)
    user_agent: str = Field(default="studynotes/0.1 (+https://github.com)")
    min_document_words: int = Field(default=20)
    web_confidence: float = Field(default=0.7)
    directory_confidence: float = Field(default=0.9)
    fallback_confidence: float = Field(default=0.8)


class ObservabilitySettings(BaseModel):
    enable_tracing: bool = Field(default=False)
    otlp_endpoint: str = Field(default="http://localhost:4318/v1/traces")
    enable_prometheus: bool = Field(default=True)
    log_level: str = Field(default="INFO")


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="NOTES_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    environment: str = Field(default="local")
    debug: bool = Field(default=False)
    paths: Paths = Paths()
    model: ModelSettings = ModelSettings()
    retrieval: RetrievalSettings = RetrievalSettings()
    generation: GenerationSettings = GenerationSettings()
    syllabus: SyllabusSettings = SyllabusSettings()
    cache: CacheSettings = CacheSettings()
    jobs: JobSettings = JobSettings()
    sources: SourceSettings = SourceSettings()
    observability: ObservabilitySettings = ObservabilitySettings()


@lru_cache
def get_settings() -> AppSettings:
    """Return cached settings instance."""

    settings = AppSettings()
    root = settings.paths.project_root
    for name in ("data_dir", "sources_dir", "evaluation_dir"):
        path = getattr(settings.paths, name)
        if not path.is_absolute():
            setattr(settings.paths, name, root / path)
    settings.paths.data_dir.mkdir(parents=True, exist_ok=True)
    cache_path = settings.cache.llm_cache_path
    if not cache_path.is_absolute():
        cache_path = root / cache_path
    settings.cache.llm_cache_path = cache_path
    return settings
