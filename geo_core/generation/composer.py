from typing import List, Optional

from pydantic import BaseModel

from geo_core.config_manager import ConfigManager, PipelineConfig
from geo_core.generation.models import GenerateRequest, GroundingSignal, PlaybookSearchResult
from geo_core.generation.prompts import (
    GROUNDING_SECTION_TEMPLATE,
    GUIDELINE_TEMPLATE,
    OUTPUT_REQUIREMENTS,
    PLAYBOOK_SECTION_TEMPLATE,
    USER_CONTENT_SECTION_TEMPLATE,
    USER_PROMPT_TEMPLATE,
)
from geo_core.tuning.store import SignalWeights, TuningSnapshot, interpolate_prompt


class ComposedPrompt(BaseModel):
    system_prompt: str
    user_prompt: str


def weight_label(weight: float) -> int:
    """0.33 -> 33. Rendered as "(Weight: 33%)" in the prompt."""
    return int(round(weight * 100))


def format_signal(index: int, signal: GroundingSignal) -> str:
    line = f"{index}. **{signal.term}** (relevance: {signal.score}%)"
    if signal.recency:
        line += f" - Recent: {signal.recency}"
    return line


class PromptComposer:
    """Fuses guidelines, intent signals and the user's content into one prompt."""

    def __init__(self, config_manager: Optional[ConfigManager] = None, pipeline_config: Optional[PipelineConfig] = None):
        if pipeline_config is None:
            pipeline_config = config_manager.pipeline if config_manager else PipelineConfig()
        self.cfg = pipeline_config
        self.brand = self.cfg.brand_name

    def playbook_section(self, results: List[PlaybookSearchResult], weights: SignalWeights) -> str:
        if not results:
            return ""
        guidelines = "\n\n".join(
            GUIDELINE_TEMPLATE.format(number=i + 1, section=result.metadata.section, content=result.content)
            for i, result in enumerate(results)
        )
        return PLAYBOOK_SECTION_TEMPLATE.format(
            brand=self.brand,
            brand_upper=self.brand.upper(),
            weight=weight_label(weights.playbook),
            guidelines=guidelines,
        )

    def grounding_section(self, signals: List[GroundingSignal], weights: SignalWeights) -> str:
        top = signals[: self.cfg.prompt_signal_count]
        if not top:
            return ""
        return GROUNDING_SECTION_TEMPLATE.format(
            weight=weight_label(weights.grounding),
            signals="\n".join(format_signal(i + 1, signal) for i, signal in enumerate(top)),
        )

    def user_content_section(self, request: GenerateRequest, weights: SignalWeights) -> str:
        return USER_CONTENT_SECTION_TEMPLATE.format(
            weight=weight_label(weights.user_content),
            product_name=request.product_name,
            usps=", ".join(request.brief_usps),
            keywords=", ".join(request.keywords),
            transcript=request.srt_content[: self.cfg.transcript_char_limit],
        )

    def compose(
        self,
        request: GenerateRequest,
        playbook_results: List[PlaybookSearchResult],
        signals: List[GroundingSignal],
        snapshot: Optional[TuningSnapshot] = None,
    ) -> ComposedPrompt:
        snapshot = snapshot or TuningSnapshot()
        weights = snapshot.weights

        system_prompt = interpolate_prompt(
            snapshot.system_prompt,
            {
                "brand": self.brand,
                "product_name": request.product_name,
                "keywords": ", ".join(request.keywords),
                "product_category": request.product_category or "all",
                "playbook_weight": weight_label(weights.playbook),
                "grounding_weight": weight_label(weights.grounding),
                "user_content_weight": weight_label(weights.user_content),
            },
        ).strip()

        user_prompt = USER_PROMPT_TEMPLATE.format(
            brand=self.brand,
            playbook_section=self.playbook_section(playbook_results, weights),
            grounding_section=self.grounding_section(signals, weights),
            user_content_section=self.user_content_section(request, weights),
            output_requirements=OUTPUT_REQUIREMENTS.format(brand_hashtags=", ".join(self.cfg.brand_hashtags)),
        )
        return ComposedPrompt(system_prompt=system_prompt, user_prompt=user_prompt)
