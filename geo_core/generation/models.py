import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GroundingSignal(CamelModel):
    """A scored intent term observed in live search results."""

    term: str
    score: int = Field(..., ge=0, le=100, description="Relevance normalized to the top term (100)")
    source: Optional[str] = Field(default=None, description="First URL the term was seen in")
    recency: Optional[str] = Field(default=None, description="Publish date of the first dated hit")


class PlaybookMetadata(CamelModel):
    section: str = Field(default="other")
    section_title: Optional[str] = None
    subsection: Optional[str] = None
    product_category: Optional[str] = None
    language: Optional[str] = None
    document_id: Optional[str] = None
    chunk_index: Optional[int] = None


class PlaybookSearchResult(CamelModel):
    """A brand guideline chunk returned by the guideline index."""

    id: str
    content: str
    score: float = Field(default=0.0)
    metadata: PlaybookMetadata = Field(default_factory=PlaybookMetadata)
    rerank_score: Optional[float] = None


class GenerateRequest(CamelModel):
    """Input of one pipeline run. Required fields are checked by ``validate_request``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    product_name: str = Field(default="")
    srt_content: str = Field(default="")
    keywords: List[str] = Field(default_factory=list)
    brief_usps: List[str] = Field(default_factory=list)
    product_category: Optional[str] = None
    use_playbook: bool = Field(default=True)
    launch_date: Optional[str] = None
    grounding_keywords: Optional[List[GroundingSignal]] = Field(
        default=None, description="Pre-fetched grounding signals; skips the live search"
    )

    # JSON null counts as missing so that validate_request can answer 400
    @field_validator("product_name", "srt_content", mode="before")
    @classmethod
    def _null_text(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("keywords", "brief_usps", mode="before")
    @classmethod
    def _null_list(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("use_playbook", mode="before")
    @classmethod
    def _null_flag(cls, v: Any) -> Any:
        return True if v is None else v


def _coerce_text(value: Any) -> Any:
    if isinstance(value, list):
        parts = []
        for item in value:
            if isinstance(item, dict):
                question = item.get("question") or item.get("q")
                answer = item.get("answer") or item.get("a")
                if question or answer:
                    parts.append(f"Q: {question or ''}\nA: {answer or ''}")
                    continue
                parts.append(" ".join(str(v) for v in item.values()))
            else:
                parts.append(str(item))
        separator = "\n\n" if any(isinstance(item, dict) for item in value) else "\n"
        return separator.join(parts)
    return value


def _coerce_hashtags(value: Any) -> Any:
    if isinstance(value, str):
        return [tag for tag in re.split(r"[\s,]+", value) if tag]
    return value


class DraftPatch(CamelModel):
    """Model output where every field may be missing."""

    description: Optional[str] = None
    timestamps: Optional[str] = None
    hashtags: Optional[List[str]] = None
    faq: Optional[str] = None

    @field_validator("description", "timestamps", "faq", mode="before")
    @classmethod
    def _text_fields(cls, value: Any) -> Any:
        return _coerce_text(value)

    @field_validator("hashtags", mode="before")
    @classmethod
    def _hashtag_field(cls, value: Any) -> Any:
        return _coerce_hashtags(value)

    def missing_fields(self) -> List[str]:
        return [name for name in ("description", "timestamps", "hashtags", "faq") if not getattr(self, name)]


class QualityScores(CamelModel):
    overall: float
    brand_voice: float
    keyword_integration: float
    geo_optimization: float
    faq_quality: float
    refined: bool = False


class PlaybookInfluence(CamelModel):
    sections_used: List[str] = Field(default_factory=list)
    guidelines_applied: int = 0
    confidence: float = 0.0


class GroundingInfluence(CamelModel):
    top_signals: List[GroundingSignal] = Field(default_factory=list)
    signals_applied: int = 0


class UserInputInfluence(CamelModel):
    keywords_integrated: List[str] = Field(default_factory=list)
    timestamps_generated: int = 0


class GenerationBreakdown(CamelModel):
    """Provenance of a generated response. Not read by the pipeline itself."""

    playbook_influence: PlaybookInfluence = Field(default_factory=PlaybookInfluence)
    grounding_influence: GroundingInfluence = Field(default_factory=GroundingInfluence)
    user_input_influence: UserInputInfluence = Field(default_factory=UserInputInfluence)
    quality_scores: Optional[QualityScores] = None


class GenerateResponse(CamelModel):
    description: str
    timestamps: str
    hashtags: List[str]
    faq: str
    breakdown: Optional[GenerationBreakdown] = None


class CritiqueResult(CamelModel):
    """Scores (0-100) from one self-critique call."""

    overall_score: float
    brand_voice_score: float
    keyword_integration: float
    geo_optimization: float
    faq_quality: float
    issues: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)

    @field_validator(
        "overall_score", "brand_voice_score", "keyword_integration", "geo_optimization", "faq_quality"
    )
    @classmethod
    def _clamp(cls, value: float) -> float:
        return min(100.0, max(0.0, value))

    @field_validator("issues", "suggestions", mode="before")
    @classmethod
    def _listify(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value

    def dimension_scores(self) -> Dict[str, float]:
        return {
            "brand_voice": self.brand_voice_score,
            "keyword_integration": self.keyword_integration,
            "geo_optimization": self.geo_optimization,
            "faq_quality": self.faq_quality,
        }

    def needs_refinement(self, threshold: float) -> bool:
        if self.overall_score < threshold:
            return True
        return any(score < threshold for score in self.dimension_scores().values())

    def to_quality_scores(self, refined: bool) -> QualityScores:
        return QualityScores(
            overall=self.overall_score,
            brand_voice=self.brand_voice_score,
            keyword_integration=self.keyword_integration,
            geo_optimization=self.geo_optimization,
            faq_quality=self.faq_quality,
            refined=refined,
        )


def merge_draft(base: GenerateResponse, patch: DraftPatch) -> GenerateResponse:
    """Returns a new draft with the non-empty fields of ``patch`` applied over ``base``."""
    return GenerateResponse(
        description=patch.description or base.description,
        timestamps=patch.timestamps or base.timestamps,
        hashtags=list(patch.hashtags) if patch.hashtags else list(base.hashtags),
        faq=patch.faq or base.faq,
        breakdown=base.breakdown,
    )
