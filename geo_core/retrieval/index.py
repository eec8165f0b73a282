from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import chromadb
from loguru import logger
from sentence_transformers import CrossEncoder, SentenceTransformer

from geo_core.config_manager import ConfigManager
from geo_core.generation.models import PlaybookMetadata, PlaybookSearchResult
from geo_core.retrieval.ingest import GuidelineChunk

SECTION_QUERIES: Dict[str, str] = {
    "playbook_overview": "{brand} marketing playbook overview summary",
    "brand_core": "{brand} brand core values identity guidelines",
    "target_audience": "target audience persona demographics insights",
    "messaging_framework": "brand messaging framework key messages structure",
    "tone_voice": "tone of voice writing style brand voice guidelines",
    "content_strategy": "content strategy framework planning approach",
    "content_type_playbook": "content type guidelines best practices formats",
    "channel_playbook": "channel platform social media guidelines",
    "creative_guidelines": "visual creative standards imagery photography",
    "production_process": "content production process workflow",
    "measurement_optimization": "performance measurement KPIs optimization",
    "failure_patterns": "failure patterns avoid mistakes no-go examples",
    "ai_content_guide": "AI content GEO optimization generative engine",
    "partner_guidelines": "external partner agency guidelines",
    "pre_publish_checklist": "pre-publish checklist quality review",
    "other": "{brand} marketing playbook guidelines",
}


def build_where(
    product_category: Optional[str] = None,
    section: Optional[str] = None,
    language: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """Chroma metadata filter. Category "all" means no category filter."""
    clauses = []
    if product_category and product_category != "all":
        clauses.append({"product_category": {"$in": [product_category, "all"]}})
    if section:
        clauses.append({"section": {"$eq": section}})
    if language:
        clauses.append({"language": {"$eq": language}})

    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


class PlaybookIndex:
    """Vector index over brand guideline chunks."""

    def __init__(self, config_manager: ConfigManager):
        self.cfg = config_manager.retrieval
        self.brand = config_manager.pipeline.brand_name
        self.db_path = Path(self.cfg.db_path)

        # Lazy load models and client
        self._model: Optional[SentenceTransformer] = None
        self._reranker: Optional[CrossEncoder] = None
        self._client: Optional[Any] = None
        self._collection: Optional[Any] = None

    @property
    def model(self) -> SentenceTransformer:
        if not self._model:
            logger.info(f"Loading embedding model: {self.cfg.embedding_model_name}")
            self._model = SentenceTransformer(self.cfg.embedding_model_name)
        return self._model

    @property
    def reranker(self) -> CrossEncoder:
        if not self._reranker:
            logger.info(f"Loading rerank model: {self.cfg.rerank_model_name}")
            self._reranker = CrossEncoder(self.cfg.rerank_model_name)
        return self._reranker

    @property
    def collection(self) -> chromadb.Collection:
        if self._client is None:
            self._client = chromadb.PersistentClient(path=str(self.db_path))
        if self._collection is None:
            self._collection = self._client.get_or_create_collection(
                name=self.cfg.collection_name,
                metadata={"hnsw:space": "cosine"},
            )
        return self._collection

    def _embed(self, texts: Sequence[str]) -> List[List[float]]:
        return self.model.encode(list(texts), normalize_embeddings=True).tolist()

    def add_chunks(self, chunks: List[GuidelineChunk]) -> int:
        if not chunks:
            return 0
        self.collection.upsert(
            ids=[chunk.id for chunk in chunks],
            documents=[chunk.content for chunk in chunks],
            metadatas=[chunk.metadata for chunk in chunks],
            embeddings=self._embed([chunk.content for chunk in chunks]),
        )
        logger.debug(f"Upserted {len(chunks)} guideline chunks")
        return len(chunks)

    def count(self) -> int:
        return self.collection.count()

    def delete_all(self) -> None:
        existing = self.collection.get()
        if existing and existing["ids"]:
            self.collection.delete(ids=existing["ids"])
            logger.info(f"Deleted {len(existing['ids'])} guideline chunks")

    def search(
        self,
        query: str,
        section: Optional[str] = None,
        product_category: Optional[str] = None,
        language: Optional[str] = None,
        top_k: int = 10,
        rerank_top_n: int = 5,
    ) -> List[PlaybookSearchResult]:
        where = build_where(product_category, section, language)
        raw = self.collection.query(
            query_embeddings=self._embed([query]),
            n_results=top_k,
            where=where,
        )
        results = self._to_results(raw)

        if results and rerank_top_n > 0:
            results = self.rerank(query, results, rerank_top_n)
        return results

    def multi_query_search(
        self,
        queries: List[str],
        product_category: Optional[str] = None,
        section: Optional[str] = None,
        top_k_per_query: int = 5,
        final_top_n: int = 10,
        deduplicate_by_content: bool = True,
    ) -> List[PlaybookSearchResult]:
        """
        Runs every query concurrently, merges hits by id (and optionally by
        content prefix), then reranks the pool against the joined queries.
        """
        if not queries:
            return []

        def run(query: str) -> List[PlaybookSearchResult]:
            return self.search(
                query,
                section=section,
                product_category=product_category,
                top_k=top_k_per_query,
                rerank_top_n=0,
            )

        with ThreadPoolExecutor(max_workers=min(8, len(queries)), thread_name_prefix="playbook") as pool:
            batches = list(pool.map(run, queries))

        merged: List[PlaybookSearchResult] = []
        seen_ids = set()
        seen_content = set()
        for batch in batches:
            for result in batch:
                if result.id in seen_ids:
                    continue
                seen_ids.add(result.id)

                if deduplicate_by_content:
                    content_key = result.content[:200].lower()
                    if content_key in seen_content:
                        continue
                    seen_content.add(content_key)

                merged.append(result)

        return self.rerank(" ".join(queries), merged, final_top_n)

    def section_context(
        self,
        section: str,
        product_category: Optional[str] = None,
        top_k: int = 5,
    ) -> List[PlaybookSearchResult]:
        query = SECTION_QUERIES.get(section, SECTION_QUERIES["other"]).format(brand=self.brand)
        return self.search(
            query,
            section=section,
            product_category=product_category,
            top_k=top_k,
            rerank_top_n=top_k,
        )

    def rerank(self, query: str, results: List[PlaybookSearchResult], top_n: int) -> List[PlaybookSearchResult]:
        if not results:
            return []
        if len(results) <= top_n or not self.cfg.rerank_enabled:
            return sorted(results, key=lambda r: r.score, reverse=True)[:top_n]

        scores = self.reranker.predict([(query, result.content) for result in results])
        reranked = [
            result.model_copy(update={"rerank_score": float(score)})
            for result, score in zip(results, scores)
        ]
        reranked.sort(key=lambda r: r.rerank_score, reverse=True)
        return reranked[:top_n]

    def _to_results(self, raw: Dict[str, Any]) -> List[PlaybookSearchResult]:
        if not raw or not raw.get("ids") or not raw["ids"][0]:
            return []

        ids = raw["ids"][0]
        documents = (raw.get("documents") or [[]])[0]
        metadatas = (raw.get("metadatas") or [[]])[0]
        distances = (raw.get("distances") or [[]])[0]

        results = []
        for i, chunk_id in enumerate(ids):
            metadata = metadatas[i] if i < len(metadatas) and metadatas[i] else {}
            distance = distances[i] if i < len(distances) else 1.0
            results.append(
                PlaybookSearchResult(
                    id=chunk_id,
                    content=documents[i] if i < len(documents) else "",
                    # cosine space: distance 0 is identical
                    score=max(0.0, 1.0 - float(distance)),
                    metadata=PlaybookMetadata(**metadata),
                )
            )
        return results
