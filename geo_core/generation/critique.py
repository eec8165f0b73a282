from typing import List, Optional

from loguru import logger
from pydantic import BaseModel, ValidationError

from geo_core.config_manager import ConfigManager
from geo_core.errors import GeoCopyError
from geo_core.generation.llm import LLMClient
from geo_core.generation.models import (
    CritiqueResult,
    DraftPatch,
    GenerateRequest,
    GenerateResponse,
    GroundingSignal,
    PlaybookSearchResult,
    merge_draft,
)
from geo_core.generation.prompts import (
    CRITIQUE_PROMPT_TEMPLATE,
    CRITIQUE_SCHEMA,
    REFINE_PROMPT_TEMPLATE,
    RESPONSE_SCHEMA,
)
from geo_core.utils.json_repair import RobustJSONDecoder


class LoopOutcome(BaseModel):
    draft: GenerateResponse
    critique: Optional[CritiqueResult] = None
    iterations: int = 0

    @property
    def refined(self) -> bool:
        return self.iterations > 0


def _numbered(items: List[str]) -> str:
    if not items:
        return "(none)"
    return "\n".join(f"{i + 1}. {item}" for i, item in enumerate(items))


class CritiqueRefinementLoop:
    """
    Scores a draft and rewrites it while any score is under the threshold.

    Draft -> Critiqued -> (Refined -> Critiqued | Accepted), bounded by
    ``max_iterations`` refinement passes. A failed critique ends the loop
    with the current draft; a failed refinement keeps the current draft.
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        llm: Optional[LLMClient] = None,
        decoder: Optional[RobustJSONDecoder] = None,
    ):
        self.llm_cfg = config_manager.llm
        self.cfg = config_manager.pipeline
        self.llm = llm or LLMClient(config_manager)
        self.decoder = decoder or RobustJSONDecoder()

    def run(
        self,
        draft: GenerateResponse,
        request: GenerateRequest,
        signals: List[GroundingSignal],
        playbook: Optional[List[PlaybookSearchResult]] = None,
        max_iterations: Optional[int] = None,
        threshold: Optional[float] = None,
    ) -> LoopOutcome:
        max_iterations = self.cfg.max_refinement_iterations if max_iterations is None else max_iterations
        threshold = self.cfg.refinement_threshold if threshold is None else threshold

        iterations = 0
        critique: Optional[CritiqueResult] = None

        while iterations < max_iterations:
            logger.info(f"Running self-critique (iteration {iterations + 1})")
            critique = self.critique(draft, request, signals)

            if critique is None:
                logger.warning("Critique failed, keeping current content")
                break

            logger.info(
                f"Critique scores - Overall: {critique.overall_score}, Brand: {critique.brand_voice_score}, "
                f"Keywords: {critique.keyword_integration}, GEO: {critique.geo_optimization}, "
                f"FAQ: {critique.faq_quality}"
            )

            if not critique.needs_refinement(threshold):
                logger.info("Content meets quality threshold, no refinement needed")
                break

            logger.info(f"Refinement needed ({len(critique.issues)} issues found)")
            patch = self.refine(draft, critique, request, signals, playbook or [], threshold)
            draft = merge_draft(draft, patch)
            iterations += 1

        logger.info(f"Critique loop finished after {iterations} refinement iteration(s)")
        return LoopOutcome(draft=draft, critique=critique, iterations=iterations)

    def critique(
        self,
        draft: GenerateResponse,
        request: GenerateRequest,
        signals: List[GroundingSignal],
    ) -> Optional[CritiqueResult]:
        prompt = CRITIQUE_PROMPT_TEMPLATE.format(
            brand=self.cfg.brand_name,
            product_name=request.product_name,
            description=draft.description,
            timestamps=draft.timestamps,
            hashtags=", ".join(draft.hashtags),
            faq=draft.faq,
            keywords=", ".join(request.keywords),
            top_signals=", ".join(s.term for s in signals[: self.cfg.critique_signal_count]),
        )
        try:
            raw = self.llm.complete_json(
                None,
                prompt,
                CRITIQUE_SCHEMA,
                schema_name="critique",
                temperature=self.llm_cfg.critique_temperature,
                max_tokens=self.llm_cfg.critique_max_output_tokens,
            )
            data = self.decoder.decode(raw)
            if not isinstance(data, dict):
                logger.warning("Critique output is not an object")
                return None
            return CritiqueResult.model_validate(data)
        except (GeoCopyError, ValidationError) as e:
            logger.error(f"Critique failed: {e}")
            return None

    def refine(
        self,
        draft: GenerateResponse,
        critique: CritiqueResult,
        request: GenerateRequest,
        signals: List[GroundingSignal],
        playbook: List[PlaybookSearchResult],
        threshold: float,
    ) -> DraftPatch:
        """Asks for a rewrite. Returns an empty patch when the rewrite fails."""
        sections = list(dict.fromkeys(result.metadata.section for result in playbook))
        guideline_sections = f"Guideline Sections: {', '.join(sections)}\n" if sections else ""

        prompt = REFINE_PROMPT_TEMPLATE.format(
            brand=self.cfg.brand_name,
            description=draft.description,
            timestamps=draft.timestamps,
            hashtags=", ".join(draft.hashtags),
            faq=draft.faq,
            brand_voice=critique.brand_voice_score,
            keyword_integration=critique.keyword_integration,
            geo_optimization=critique.geo_optimization,
            faq_quality=critique.faq_quality,
            issues=_numbered(critique.issues),
            suggestions=_numbered(critique.suggestions),
            product_name=request.product_name,
            keywords=", ".join(request.keywords),
            signals=", ".join(f"{s.term} ({s.score}%)" for s in signals[: self.cfg.prompt_signal_count]),
            guideline_sections=guideline_sections,
            threshold=threshold,
        )
        try:
            raw = self.llm.complete_json(
                None,
                prompt,
                RESPONSE_SCHEMA,
                schema_name="geo_content",
                temperature=self.llm_cfg.temperature,
                max_tokens=self.llm_cfg.max_output_tokens,
            )
            data = self.decoder.decode(raw)
            if not isinstance(data, dict):
                logger.warning("Refined output is not an object")
                return DraftPatch()
            patch = DraftPatch.model_validate(data)
        except (GeoCopyError, ValidationError) as e:
            logger.error(f"Refinement failed: {e}")
            return DraftPatch()

        if patch.missing_fields():
            logger.warning(f"Refinement omitted {', '.join(patch.missing_fields())}, keeping previous values")
        else:
            logger.success("Content refined successfully")
        return patch
