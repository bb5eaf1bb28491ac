"""
Related-products query orchestration.

PIPELINE (per query):
    1. Resolve the target's AttributeSet from one cache snapshot
    2. Sample candidate IDs (bounded by sample_size)
    3. Score every sampled candidate against the target
    4. Drop candidates below min_score
    5. Stable sort by score, descending (ties keep sampling order)
    6. Truncate to limit and resolve full records through the ProductLookup

Not-found and not-ready are reported through the result status, never as an
empty OK result, so callers can tell "no such product" and "cache still
building" apart from "nothing similar in the catalog".
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from catalog import CatalogRecord, DataFrameProductStore, ProductLookup, coerce_product_id
from equivalence import EquivalenceRegistry, load_registry
from extractor import AttributeSet
from intel_config import IntelConfig, get_config
from intel_logger import get_logger
from intelligence_cache import CacheSnapshot, IntelligenceCache
from sampler import CandidateSampler
from scorer import SimilarityScore, score_similarity

logger = get_logger("related_products")

# ---------------------------------------------------------------------------
# Result statuses
# ---------------------------------------------------------------------------

RELATED_STATUS_OK = "OK"                  # target found; items may still be empty
RELATED_STATUS_NOT_FOUND = "NOT_FOUND"    # target ID / SKU not in the catalog
RELATED_STATUS_NOT_READY = "NOT_READY"    # cache not built and no loader to build it


@dataclass(frozen=True)
class RankedProduct:
    record: Dict[str, Any]
    score: int
    reasons: Tuple[str, ...] = ()

    @property
    def product_id(self) -> Any:
        return self.record.get('product_id')


@dataclass
class RelatedProductsResult:
    status: str
    product_id: Any = None
    items: List[RankedProduct] = field(default_factory=list)
    sampled: int = 0
    scored: int = 0
    timed_out: bool = False
    elapsed_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == RELATED_STATUS_OK

    @property
    def records(self) -> List[Dict[str, Any]]:
        return [item.record for item in self.items]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status,
            'product_id': self.product_id,
            'items': [
                {**item.record, 'score': item.score, 'reasons': list(item.reasons)}
                for item in self.items
            ],
            'sampled': self.sampled,
            'scored': self.scored,
            'timed_out': self.timed_out,
            'elapsed_ms': round(self.elapsed_ms, 2),
        }


class RelatedProductsService:
    """
    Long-lived service: holds one IntelligenceCache and answers related-products
    queries against it.

    catalog_loader is a zero-argument callable returning the current catalog
    records. When it is set, the first query against an unbuilt cache builds
    it on demand and refresh() rebuilds from it; without it, queries against
    an unbuilt cache report NOT_READY.
    """

    def __init__(
        self,
        cache: IntelligenceCache,
        product_lookup: ProductLookup,
        config: Optional[IntelConfig] = None,
        catalog_loader: Optional[Callable[[], Iterable[CatalogRecord]]] = None,
        sampler: Optional[CandidateSampler] = None,
        registry: Optional[EquivalenceRegistry] = None,
    ):
        self.config = config or get_config()
        self.cache = cache
        self.product_lookup = product_lookup
        self.registry = registry or cache.registry
        self.sampler = sampler or CandidateSampler(
            sample_size=self.config.sample_size,
            seed=self.config.sampler_seed,
            strategy=self.config.sampling_strategy,
            registry=self.registry,
        )
        self._catalog_loader = catalog_loader
        self._ready_lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None
        if self.config.scoring_workers > 1:
            self._executor = ThreadPoolExecutor(
                max_workers=self.config.scoring_workers, thread_name_prefix="intel-score"
            )

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    # -- lifecycle ---------------------------------------------------------

    def _ensure_ready(self) -> bool:
        if self.cache.is_ready:
            return True
        if self._catalog_loader is None:
            return False
        with self._ready_lock:
            if not self.cache.is_ready:
                logger.info("Intelligence cache not built yet - building on demand")
                self.cache.build(self._catalog_loader())
        return True

    def refresh(self) -> Dict[str, Any]:
        """Rebuild the cache from the catalog loader and return fresh stats."""
        if self._catalog_loader is None:
            raise ValueError("No catalog loader configured; cannot refresh the intelligence cache")
        self.cache.refresh(self._catalog_loader())
        return self.stats()

    def stats(self) -> Dict[str, Any]:
        stats = self.cache.stats()
        stats['settings'] = {
            'sample_size': self.sampler.sample_size,
            'sampling_strategy': self.sampler.strategy,
            'min_score': self.config.min_score,
            'default_limit': self.config.default_limit,
        }
        return stats

    # -- queries -----------------------------------------------------------

    def resolve_target(self, identifier: Any) -> Optional[Any]:
        """
        Product ID for a numeric ID or a SKU, or None if neither matches.

        Numeric IDs win over SKUs: '1234' is looked up as an ID first and only
        then as a SKU.
        """
        if identifier is None or str(identifier).strip() == '':
            return None
        key = coerce_product_id(identifier)
        if key in self.cache:
            return key
        row = self.product_lookup.find_by_sku(str(identifier))
        if row is not None:
            return coerce_product_id(row.get('product_id'))
        return None

    def related_for_identifier(self, identifier: Any, limit: Optional[int] = None,
                               deadline_ms: Optional[int] = None) -> RelatedProductsResult:
        """related_products() for a numeric ID or SKU."""
        if not self._ensure_ready():
            return RelatedProductsResult(status=RELATED_STATUS_NOT_READY, product_id=identifier)
        product_id = self.resolve_target(identifier)
        if product_id is None:
            logger.debug(f"Related lookup: {identifier!r} is neither a product ID nor a SKU")
            return RelatedProductsResult(status=RELATED_STATUS_NOT_FOUND, product_id=identifier)
        return self.related_products(product_id, limit=limit, deadline_ms=deadline_ms)

    def related_products(self, product_id: Any, limit: Optional[int] = None,
                         deadline_ms: Optional[int] = None) -> RelatedProductsResult:
        """
        Up to `limit` related products for `product_id`, best first.

        Fewer than `limit` items come back when fewer candidates clear
        min_score; the list is never padded. With a deadline, scoring stops
        when it passes and the result ranks only what was scored
        (timed_out=True).
        """
        start = time.perf_counter()
        limit = self.config.default_limit if limit is None else int(limit)
        if limit < 0:
            raise ValueError("limit must be >= 0")
        if deadline_ms is None:
            deadline_ms = self.config.query_deadline_ms

        if not self._ensure_ready():
            logger.warning(f"Related lookup for {product_id!r} before the intelligence cache was built")
            return RelatedProductsResult(status=RELATED_STATUS_NOT_READY, product_id=product_id)

        snapshot = self.cache.snapshot()
        target = snapshot.get(product_id)
        if target is None:
            return RelatedProductsResult(
                status=RELATED_STATUS_NOT_FOUND,
                product_id=product_id,
                elapsed_ms=(time.perf_counter() - start) * 1000,
            )
        logger.debug(
            f"Target {product_id}: caliber={target.caliber} type={target.firearm_type} "
            f"action={target.action} barrel={target.barrel_length} capacity={target.capacity} "
            f"manufacturer={target.manufacturer}"
        )

        candidate_ids = self.sampler.sample(snapshot, product_id)
        deadline = start + deadline_ms / 1000 if deadline_ms else None
        scores, timed_out = self._score_candidates(snapshot, target, candidate_ids, deadline)
        if timed_out:
            logger.warning(
                f"Related lookup for {product_id} hit the {deadline_ms}ms deadline after "
                f"scoring {len(scores)}/{len(candidate_ids)} candidates"
            )

        ranked = [s for s in scores if s.score >= self.config.min_score]
        # list.sort is stable with reverse=True, so ties keep sampling order
        ranked.sort(key=lambda s: s.score, reverse=True)
        top = ranked[:limit]

        rows = self.product_lookup.fetch_products([s.product_id for s in top])
        rows_by_id = {coerce_product_id(row.get('product_id')): row for row in rows}
        items = [
            RankedProduct(record=rows_by_id[s.product_id], score=s.score, reasons=s.reasons)
            for s in top
            if s.product_id in rows_by_id
        ]

        elapsed_ms = (time.perf_counter() - start) * 1000
        for item in items[:3]:
            logger.debug(f"  {item.product_id}: score={item.score} reasons={', '.join(item.reasons)}")
        logger.debug(
            f"Related lookup {product_id}: {len(items)} results from {len(scores)} scored "
            f"({len(ranked)} above {self.config.min_score}) in {elapsed_ms:.1f}ms"
        )
        return RelatedProductsResult(
            status=RELATED_STATUS_OK,
            product_id=product_id,
            items=items,
            sampled=len(candidate_ids),
            scored=len(scores),
            timed_out=timed_out,
            elapsed_ms=elapsed_ms,
        )

    def _score_chunk(self, snapshot: CacheSnapshot, target: AttributeSet, candidate_ids: Sequence[Any],
                     deadline: Optional[float]) -> Tuple[List[SimilarityScore], bool]:
        scores: List[SimilarityScore] = []
        for pid in candidate_ids:
            if deadline is not None and time.perf_counter() >= deadline:
                return scores, True
            candidate = snapshot.get(pid)
            if candidate is None:
                continue
            scores.append(score_similarity(target, candidate, self.registry))
        return scores, False

    def _score_candidates(self, snapshot: CacheSnapshot, target: AttributeSet, candidate_ids: List[Any],
                          deadline: Optional[float]) -> Tuple[List[SimilarityScore], bool]:
        """Score in sampling order; parallel chunks are merged back in that order."""
        workers = self.config.scoring_workers
        if self._executor is None or len(candidate_ids) < workers * 2:
            return self._score_chunk(snapshot, target, candidate_ids, deadline)

        chunk_size = -(-len(candidate_ids) // workers)
        chunks = [candidate_ids[i:i + chunk_size] for i in range(0, len(candidate_ids), chunk_size)]
        futures = [
            self._executor.submit(self._score_chunk, snapshot, target, chunk, deadline)
            for chunk in chunks
        ]
        scores: List[SimilarityScore] = []
        timed_out = False
        for future in futures:
            chunk_scores, chunk_timed_out = future.result()
            scores.extend(chunk_scores)
            timed_out = timed_out or chunk_timed_out
        return scores, timed_out


def build_service(config: Optional[IntelConfig] = None) -> RelatedProductsService:
    """
    Wire config -> registry -> cache -> catalog store -> service.

    The catalog loader re-reads config.catalog_path, so refresh() picks up a
    new export of the same file. Builds the cache immediately when
    build_on_startup is set; otherwise the first query builds it.
    """
    config = config or get_config()
    if not config.catalog_path:
        raise ValueError("catalog_path is not configured (set INTEL_CATALOG_PATH or data.catalog_path)")

    registry = load_registry(config.registry_path or None)
    cache = IntelligenceCache(registry=registry, build_workers=config.build_workers)
    store = DataFrameProductStore.from_file(config.catalog_path)
    loaded = {'fresh': True}

    def load_records() -> List[CatalogRecord]:
        # The store was just read by from_file; re-read only on later loads
        if loaded['fresh']:
            loaded['fresh'] = False
        else:
            store.reload()
        return store.records()

    service = RelatedProductsService(
        cache, store, config=config, catalog_loader=load_records, registry=registry
    )
    if config.build_on_startup:
        service.refresh()
    return service
