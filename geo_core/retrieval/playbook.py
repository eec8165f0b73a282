import time
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

from loguru import logger

from geo_core.config_manager import ConfigManager
from geo_core.generation.models import GroundingSignal, PlaybookSearchResult
from geo_core.grounding.sections import AI_CONTENT_GUIDE, SectionRelevanceMapper
from geo_core.retrieval.index import PlaybookIndex


class PlaybookRetriever:
    """
    Pulls the slice of the brand playbook that matters for one product.

    Grounding signals pick the playbook sections to favour: they add
    section-targeted queries and supplemental section lookups whose hits
    get a score boost.
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        index: Optional[PlaybookIndex] = None,
        mapper: Optional[SectionRelevanceMapper] = None,
    ):
        self.cfg = config_manager.pipeline
        self.brand = self.cfg.brand_name
        self.index = index or PlaybookIndex(config_manager)
        self.mapper = mapper or SectionRelevanceMapper(top_n=self.cfg.relevant_sections_top_n)

    def build_queries(self, product_name: str, keywords: List[str], sections: List[str]) -> List[str]:
        queries = [
            f"{self.brand} brand guidelines content creation {product_name}",
            f"GEO optimization generative engine AI search content {product_name}",
            f"{product_name} marketing strategy content guidelines",
        ]
        queries += [f"{self.brand} {keyword} marketing guidelines" for keyword in keywords[: self.cfg.keyword_query_count]]
        queries.append(f"{self.brand} tone of voice writing style guidelines")
        queries += [
            f"{self.brand} {section.replace('_', ' ')} guidelines {product_name}"
            for section in sections[: self.cfg.section_query_count]
        ]
        return queries

    def retrieve(
        self,
        product_name: str,
        keywords: List[str],
        category: Optional[str] = None,
        signals: Optional[List[GroundingSignal]] = None,
    ) -> List[PlaybookSearchResult]:
        try:
            start = time.perf_counter()
            sections = self.mapper.map_sections(signals or [])
            logger.info(f"Relevant sections from grounding: {', '.join(sections) or 'none'}")

            boosted_sections = sections[: self.cfg.boosted_section_count]
            with ThreadPoolExecutor(max_workers=2 + len(boosted_sections), thread_name_prefix="retrieve") as pool:
                base_future = pool.submit(
                    self.index.multi_query_search,
                    self.build_queries(product_name, keywords, sections),
                    product_category=category,
                    top_k_per_query=self.cfg.top_k_per_query,
                    final_top_n=self.cfg.multi_query_top_n,
                    deduplicate_by_content=True,
                )
                guide_future = pool.submit(
                    self.index.section_context,
                    AI_CONTENT_GUIDE,
                    product_category=category,
                    top_k=self.cfg.ai_guide_top_k,
                )
                section_futures = [
                    pool.submit(self._section_context_safely, section, category)
                    for section in boosted_sections
                ]

                base = base_future.result()
                guide = guide_future.result()
                supplements = [future.result() for future in section_futures]

            results = merge_results(base + guide, supplements, self.cfg.section_boost)[: self.cfg.playbook_top_n]
            logger.info(
                f"Retrieved {len(results)} playbook chunks in {(time.perf_counter() - start) * 1000:.0f}ms"
            )
            return results

        except Exception as e:
            logger.error(f"Playbook retrieval failed: {e}")
            return []

    def _section_context_safely(self, section: str, category: Optional[str]) -> List[PlaybookSearchResult]:
        try:
            return self.index.section_context(section, product_category=category, top_k=self.cfg.section_context_top_k)
        except Exception as e:
            logger.warning(f"Section lookup failed for {section}: {e}")
            return []


def merge_results(
    primary: List[PlaybookSearchResult],
    boosted_batches: List[List[PlaybookSearchResult]],
    boost: float = 1.1,
) -> List[PlaybookSearchResult]:
    """
    Merges result sets by id and sorts them by score, best first.

    The first occurrence of an id keeps its content. Hits from
    ``boosted_batches`` score ``boost`` times their raw score; when such an
    id was already seen, the higher of the two scores is kept.
    """
    merged: Dict[str, PlaybookSearchResult] = {}
    for result in primary:
        merged.setdefault(result.id, result)

    for batch in boosted_batches:
        for result in batch:
            boosted = (result.score or 0.0) * boost
            existing = merged.get(result.id)
            if existing is None:
                merged[result.id] = result.model_copy(update={"score": boosted})
            elif boosted > existing.score:
                merged[result.id] = existing.model_copy(update={"score": boosted})

    return sorted(merged.values(), key=lambda r: r.score, reverse=True)
