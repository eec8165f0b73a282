import re
import time
from pathlib import Path
from typing import List, Optional, Tuple

from loguru import logger

from geo_core.config_manager import ConfigManager
from geo_core.errors import GenerationError, InvalidRequestError
from geo_core.generation.composer import PromptComposer
from geo_core.generation.critique import CritiqueRefinementLoop, LoopOutcome
from geo_core.generation.generator import GenerationClient, templated_response
from geo_core.generation.llm import LLMClient
from geo_core.generation.models import (
    GenerateRequest,
    GenerateResponse,
    GenerationBreakdown,
    GroundingInfluence,
    GroundingSignal,
    PlaybookInfluence,
    PlaybookSearchResult,
    UserInputInfluence,
)
from geo_core.grounding.fetcher import GroundingFetcher
from geo_core.grounding.sections import SectionRelevanceMapper
from geo_core.retrieval.playbook import PlaybookRetriever
from geo_core.tuning.store import TuningStore
from geo_core.utils.logger import run_logger

_TIMESTAMP = re.compile(r"\d+:\d+")


def validate_request(request: GenerateRequest) -> None:
    if not request.product_name.strip() or not request.srt_content.strip():
        raise InvalidRequestError("Product name and SRT content are required")


def build_breakdown(
    playbook: List[PlaybookSearchResult],
    top_signals: List[GroundingSignal],
    keywords: List[str],
    outcome: LoopOutcome,
) -> GenerationBreakdown:
    critique = outcome.critique
    if critique and critique.brand_voice_score:
        confidence = critique.brand_voice_score
    elif playbook:
        mean = sum(result.score or 0.5 for result in playbook) / len(playbook)
        confidence = min(100.0, mean * 100)
    else:
        confidence = 0.0

    return GenerationBreakdown(
        playbook_influence=PlaybookInfluence(
            sections_used=list(dict.fromkeys(result.metadata.section for result in playbook)),
            guidelines_applied=len(playbook),
            confidence=confidence,
        ),
        grounding_influence=GroundingInfluence(top_signals=top_signals, signals_applied=len(top_signals)),
        user_input_influence=UserInputInfluence(
            keywords_integrated=list(keywords),
            timestamps_generated=len(_TIMESTAMP.findall(outcome.draft.timestamps or "")),
        ),
        quality_scores=critique.to_quality_scores(outcome.refined) if critique else None,
    )


class GenerationPipeline:
    """
    One request in, one response out: grounding, retrieval, prompt,
    generation, then critique and refinement.

    Only request validation raises. Every other failure degrades to less
    context or to the templated response.
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        tuning_store: Optional[TuningStore] = None,
        fetcher: Optional[GroundingFetcher] = None,
        retriever: Optional[PlaybookRetriever] = None,
        llm: Optional[LLMClient] = None,
    ):
        self.config_manager = config_manager
        self.cfg = config_manager.pipeline
        self.retrieval_enabled = config_manager.retrieval.enabled

        self.tuning_store = tuning_store or TuningStore(config_manager.paths.tuning_file)
        self.fetcher = fetcher or GroundingFetcher(config_manager)
        self.mapper = SectionRelevanceMapper(top_n=self.cfg.relevant_sections_top_n)
        self.retriever = retriever or PlaybookRetriever(config_manager, mapper=self.mapper)
        self.llm = llm or LLMClient(config_manager)
        self.composer = PromptComposer(config_manager)
        self.generator = GenerationClient(config_manager, llm=self.llm)
        self.loop = CritiqueRefinementLoop(config_manager, llm=self.llm)

    def ground(
        self,
        product_name: str,
        keywords: List[str],
        launch_date: Optional[str] = None,
    ) -> Tuple[List[GroundingSignal], List[str]]:
        signals = self.fetcher.fetch(product_name, keywords, launch_date)
        return signals, self.mapper.map_sections(signals)

    def run(self, request: GenerateRequest) -> GenerateResponse:
        validate_request(request)
        log = run_logger(request.product_name)

        if not self.llm.is_configured:
            log.warning("No completion credential configured. Returning templated content.")
            return templated_response(request.product_name, request.keywords, self.cfg)

        start = time.perf_counter()
        snapshot = self.tuning_store.snapshot()
        log.info(f"Using {snapshot.source} prompt '{snapshot.prompt_name}' (v{snapshot.version})")

        # Grounding must finish first: its signals steer retrieval
        if request.grounding_keywords is not None:
            signals = list(request.grounding_keywords)
            log.info(f"Using {len(signals)} pre-fetched grounding signals")
        else:
            signals = self.fetcher.fetch(request.product_name, request.keywords, request.launch_date)
        log.info(f"Grounding done in {(time.perf_counter() - start) * 1000:.0f}ms")

        rag_start = time.perf_counter()
        if request.use_playbook and self.retrieval_enabled:
            playbook = self.retriever.retrieve(
                request.product_name, request.keywords, request.product_category, signals
            )
        else:
            playbook = []
        log.info(
            f"Playbook context done in {(time.perf_counter() - rag_start) * 1000:.0f}ms. "
            f"Results: {len(playbook)}, Grounding signals: {len(signals)}"
        )

        top_signals = signals[: self.cfg.prompt_signal_count]
        prompt = self.composer.compose(request, playbook, signals, snapshot)

        try:
            draft = self.generator.generate(prompt.system_prompt, prompt.user_prompt)
        except GenerationError as e:
            log.error(f"Generation failed, returning templated content: {e}")
            return templated_response(request.product_name, request.keywords, self.cfg)

        outcome = self.loop.run(draft, request, top_signals, playbook)
        breakdown = build_breakdown(playbook, top_signals, request.keywords, outcome)

        if outcome.critique:
            log.info(f"Quality scores: {outcome.critique.to_quality_scores(outcome.refined).model_dump()}")
        log.success(
            f"Generated content for {request.product_name} in {(time.perf_counter() - start) * 1000:.0f}ms "
            f"({outcome.iterations} refinement iteration(s))"
        )
        return outcome.draft.model_copy(update={"breakdown": breakdown})

    def save(self, response: GenerateResponse, output_path: str) -> Path:
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(response.model_dump_json(by_alias=True, exclude_none=True, indent=2), encoding="utf-8")
        logger.info(f"Saved generated content to {path}")
        return path
