import math
import re
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

import requests
from loguru import logger
from pydantic import BaseModel, Field

from geo_core.config_manager import ConfigManager
from geo_core.generation.models import GroundingSignal

# Features, sentiment and comparison markers, format words, Korean equivalents
INTENT_TERMS = (
    "camera", "battery", "display", "screen", "performance", "price",
    "AI", "Galaxy AI", "design", "durability", "charging", "storage",
    "worth it", "problem",
    "카메라", "배터리", "디스플레이", "성능", "가격", "디자인", "충전", "비교", "리뷰",
    "comparison", "vs", "review", "unboxing", "test",
)

GROUNDING_QUERY_TEMPLATES = (
    "{product} reviews opinions {year}",
    "{product} vs competitors comparison",
    "{product} best features what users love",
    "{product} common questions problems issues",
    "{product} {keyword} real world performance",
)

KEYWORD_WEIGHT = 2


class SearchHit(BaseModel):
    """One web search result as returned by the search API."""

    title: Optional[str] = Field(default="")
    snippet: Optional[str] = Field(default="")
    url: Optional[str] = None
    date: Optional[str] = None


def _term_pattern(term: str) -> "re.Pattern[str]":
    lowered = re.escape(term.strip().lower())
    if term.isascii():
        # "ai" must not match inside "said"
        return re.compile(rf"(?<![a-z0-9]){lowered}(?![a-z0-9])")
    return re.compile(lowered)


def _parse_date(value: str) -> Optional[date]:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    for fmt in ("%Y-%m-%d", "%Y/%m/%d", "%B %d, %Y", "%b %d, %Y"):
        try:
            return datetime.strptime(value.strip(), fmt).date()
        except ValueError:
            continue
    return None


def filter_by_launch_date(hits: List[SearchHit], launch_date: Optional[str]) -> List[SearchHit]:
    """Drops hits published before the launch date. Undated hits are kept."""
    if not launch_date:
        return hits

    launch = _parse_date(launch_date)
    if launch is None:
        logger.warning(f"Ignoring unparseable launch date: {launch_date}")
        return hits

    kept = []
    for hit in hits:
        if not hit.date:
            kept.append(hit)
            continue
        published = _parse_date(hit.date)
        if published is not None and published >= launch:
            kept.append(hit)
    return kept


def extract_signals(
    hits: Iterable[SearchHit],
    keywords: Iterable[str],
    vocabulary: Iterable[str] = INTENT_TERMS,
) -> List[GroundingSignal]:
    """
    Counts intent terms across search hits and scores them 0-100.

    A vocabulary term counts once per hit that mentions it, a caller keyword
    counts twice. Scores are relative to the most frequent term, which gets
    100. Equal scores keep first-seen order.
    """
    patterns = [(term, _term_pattern(term)) for term in vocabulary if term.strip()]
    keyword_patterns = [(kw, _term_pattern(kw)) for kw in keywords if kw and kw.strip()]
    tally: Dict[str, dict] = {}

    def bump(term: str, amount: int, hit: SearchHit) -> None:
        key = term.strip().lower()
        entry = tally.setdefault(key, {"term": term.strip(), "count": 0, "source": None, "recency": None})
        entry["count"] += amount
        if hit.url and entry["source"] is None:
            entry["source"] = hit.url
        if hit.date and entry["recency"] is None:
            entry["recency"] = hit.date

    for hit in hits:
        text = f"{hit.title or ''} {hit.snippet or ''}".lower()
        for term, pattern in patterns:
            if pattern.search(text):
                bump(term, 1, hit)
        for keyword, pattern in keyword_patterns:
            if pattern.search(text):
                bump(keyword, KEYWORD_WEIGHT, hit)

    if not tally:
        return []

    max_count = max(entry["count"] for entry in tally.values())
    signals = [
        GroundingSignal(
            term=entry["term"],
            score=math.floor(entry["count"] * 100 / max_count + 0.5),
            source=entry["source"],
            recency=entry["recency"],
        )
        for entry in tally.values()
    ]
    return sorted(signals, key=lambda signal: signal.score, reverse=True)


class GroundingFetcher:
    """
    Collects user intent signals from live web search.

    Every failure is absorbed: no API key, a failing query or a broken
    response all end in fewer (or zero) signals, never an exception.
    """

    def __init__(self, config_manager: ConfigManager, session: Optional[requests.Session] = None):
        self.cfg = config_manager.grounding
        self.top_n = config_manager.pipeline.grounding_top_n
        self.session = session or requests.Session()
        self.vocabulary = tuple(INTENT_TERMS) + tuple(self.cfg.extra_intent_terms)

    def build_queries(self, product_name: str, keywords: List[str]) -> List[str]:
        keyword = keywords[0] if keywords else "camera"
        year = date.today().year
        return [
            template.format(product=product_name, keyword=keyword, year=year)
            for template in GROUNDING_QUERY_TEMPLATES
        ]

    def fetch(
        self,
        product_name: str,
        keywords: List[str],
        launch_date: Optional[str] = None,
    ) -> List[GroundingSignal]:
        if not self.cfg.perplexity_api_key:
            logger.warning("Search API key not found. Skipping grounding.")
            return []

        try:
            start = time.perf_counter()
            queries = self.build_queries(product_name, keywords)

            with ThreadPoolExecutor(max_workers=len(queries), thread_name_prefix="grounding") as pool:
                batches = list(pool.map(self._run_query_safely, queries))

            hits = [hit for batch in batches for hit in batch]
            logger.info(
                f"Grounding fetched {len(hits)} results from {len(queries)} queries "
                f"in {(time.perf_counter() - start) * 1000:.0f}ms"
            )

            hits = filter_by_launch_date(hits, launch_date)
            signals = extract_signals(hits, keywords, self.vocabulary)[: self.top_n]
            logger.info(f"Extracted {len(signals)} grounding signals")
            return signals

        except Exception as e:
            logger.error(f"Grounding failed: {e}")
            return []

    def _run_query_safely(self, query: str) -> List[SearchHit]:
        try:
            return self.search(query)
        except Exception as e:
            logger.warning(f"Grounding query failed: '{query[:30]}...' - {e}")
            return []

    def search(self, query: str) -> List[SearchHit]:
        response = self.session.post(
            self.cfg.search_url,
            headers={
                "Authorization": f"Bearer {self.cfg.perplexity_api_key}",
                "Content-Type": "application/json",
            },
            json={
                "query": query,
                "max_results": self.cfg.max_results_per_query,
                "max_tokens_per_page": self.cfg.max_tokens_per_page,
            },
            timeout=self.cfg.request_timeout_seconds,
        )

        if not response.ok:
            logger.error(f"Grounding query failed: '{query[:30]}...' - {response.status_code}")
            return []

        data = response.json() or {}
        return [SearchHit(**item) for item in data.get("results") or [] if isinstance(item, dict)]
