import os
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class PathsConfig(BaseModel):
    base_dir: str = Field(default=".")
    log_dir: str = Field(default="logs")
    tuning_file: str = Field(default="config/tuning.yaml")


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO", description="Console sink level")
    rotation: str = Field(default="10 MB")
    retention: str = Field(default="10 days")
    json_sink: bool = Field(default=True, description="Also write one JSON record per line")


class LLMConfig(BaseModel):
    llm_provider: str = Field(default="openai")
    model_name: str = Field(default="gpt-4o-mini")
    temperature: float = Field(default=0.7)
    max_output_tokens: int = Field(default=2000)
    critique_temperature: float = Field(default=0.3)
    critique_max_output_tokens: int = Field(default=1000)
    request_timeout_seconds: float = Field(default=30.0)
    openai_api_key: Optional[str] = Field(default_factory=lambda: os.getenv("OPENAI_API_KEY"))
    anthropic_api_key: Optional[str] = Field(default_factory=lambda: os.getenv("ANTHROPIC_API_KEY"))


class GroundingConfig(BaseModel):
    perplexity_api_key: Optional[str] = Field(default_factory=lambda: os.getenv("PERPLEXITY_API_KEY"))
    search_url: str = Field(default="https://api.perplexity.ai/search")
    max_results_per_query: int = Field(default=5)
    max_tokens_per_page: int = Field(default=512)
    request_timeout_seconds: float = Field(default=15.0)
    extra_intent_terms: List[str] = Field(default_factory=list)


class RetrievalConfig(BaseModel):
    enabled: bool = Field(default_factory=lambda: _env_flag("PLAYBOOK_RETRIEVAL_ENABLED", True))
    db_path: str = Field(default="assets/chroma_db")
    collection_name: str = Field(default="marketing_playbook")
    embedding_model_name: str = Field(default="intfloat/multilingual-e5-large")
    rerank_model_name: str = Field(default="cross-encoder/mmarco-mMiniLMv2-L12-H384-v1")
    rerank_enabled: bool = Field(default=True)
    chunk_size: int = Field(default=1000)
    chunk_overlap: int = Field(default=200)
    min_chunk_size: int = Field(default=100)


class PipelineConfig(BaseModel):
    """Thresholds and limits of the generation pipeline."""

    refinement_threshold: int = Field(default=80)
    max_refinement_iterations: int = Field(default=1, ge=0)
    grounding_top_n: int = Field(default=15)
    playbook_top_n: int = Field(default=12)
    relevant_sections_top_n: int = Field(default=5)
    section_query_count: int = Field(default=3)
    boosted_section_count: int = Field(default=2)
    section_boost: float = Field(default=1.1)
    keyword_query_count: int = Field(default=3)
    top_k_per_query: int = Field(default=3)
    multi_query_top_n: int = Field(default=8)
    ai_guide_top_k: int = Field(default=3)
    section_context_top_k: int = Field(default=2)
    transcript_char_limit: int = Field(default=3000)
    prompt_signal_count: int = Field(default=5)
    critique_signal_count: int = Field(default=3)
    brand_name: str = Field(default="Samsung")
    brand_hashtags: List[str] = Field(default_factory=lambda: ["#Samsung", "#Galaxy", "#GalaxyAI"])


class AppConfig(BaseModel):
    paths: PathsConfig = Field(default_factory=PathsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    grounding: GroundingConfig = Field(default_factory=GroundingConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)


class ConfigManager:
    """
    Manages loading and validation of application configuration.
    """
    def __init__(self, config_path: str = "config/settings.yaml"):
        self.config_path = Path(config_path)
        self.config: AppConfig = self._load_config()

    @classmethod
    def from_defaults(cls) -> "ConfigManager":
        """Builds a manager from model defaults and environment variables only."""
        manager = cls.__new__(cls)
        manager.config_path = None
        manager.config = AppConfig()
        return manager

    def _load_config(self) -> AppConfig:
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found at {self.config_path}")

        with open(self.config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f) or {}

        # Empty YAML sections load as None
        raw_config = {key: value for key, value in raw_config.items() if value is not None}
        return AppConfig(**raw_config)

    @property
    def paths(self) -> PathsConfig:
        return self.config.paths

    @property
    def logging(self) -> LoggingConfig:
        return self.config.logging

    @property
    def llm(self) -> LLMConfig:
        return self.config.llm

    @property
    def grounding(self) -> GroundingConfig:
        return self.config.grounding

    @property
    def retrieval(self) -> RetrievalConfig:
        return self.config.retrieval

    @property
    def pipeline(self) -> PipelineConfig:
        return self.config.pipeline
