"""
In-memory intelligence cache: product ID -> AttributeSet.

Extraction runs once per record at build time; queries only read. A build
produces a complete CacheSnapshot off to the side and then swaps the
reference in one assignment, so a query either sees the old snapshot or the
new one, never a half-built map. Only builds take the lock.

Refresh is a full rebuild. Extraction has no per-record state worth keeping,
so there is no incremental patching.
"""

import threading
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from catalog import CatalogRecord
from equivalence import DEFAULT_CALIBER_REGISTRY, EquivalenceRegistry, normalize_value
from extractor import DIMENSIONS, AttributeSet, analyze_record
from intel_logger import get_logger

logger = get_logger("intelligence_cache")

BUCKET_DIMENSIONS = ('manufacturer', 'category', 'caliber')


class CacheNotReady(RuntimeError):
    """Raised when the cache is read before its first build completed."""

    def __init__(self):
        super().__init__("Intelligence cache has not been built yet")


class CacheSnapshot:
    """One immutable, fully built generation of the cache."""

    def __init__(
        self,
        attributes: Dict[Any, AttributeSet],
        buckets: Dict[Tuple[str, str], Tuple[Any, ...]],
        built_at: float,
        build_seconds: float,
    ):
        self._attributes = MappingProxyType(attributes)
        self._ids = tuple(attributes.keys())
        self._buckets = MappingProxyType(buckets)
        self.built_at = built_at
        self.build_seconds = build_seconds

    def __len__(self) -> int:
        return len(self._attributes)

    def __contains__(self, product_id) -> bool:
        return product_id in self._attributes

    @property
    def attributes(self) -> Mapping[Any, AttributeSet]:
        return self._attributes

    def get(self, product_id) -> Optional[AttributeSet]:
        return self._attributes.get(product_id)

    def product_ids(self) -> Tuple[Any, ...]:
        """All IDs in catalog order."""
        return self._ids

    def bucket(self, dimension: str, key: str) -> Tuple[Any, ...]:
        return self._buckets.get((dimension, key), ())


def bucket_keys(attrs: AttributeSet, registry: EquivalenceRegistry) -> List[Tuple[str, str]]:
    """
    Bucket keys for an AttributeSet: same manufacturer, same category, same
    caliber family. Absent fields produce no key.
    """
    keys = []
    if attrs.manufacturer:
        keys.append(('manufacturer', attrs.manufacturer))
    if attrs.category:
        keys.append(('category', attrs.category))
    if attrs.caliber:
        family = registry.family_of(attrs.caliber)
        keys.append(('caliber', family or normalize_value(attrs.caliber)))
    return keys


class IntelligenceCache:
    """Build-once, read-many store of extracted product intelligence."""

    def __init__(self, registry: EquivalenceRegistry = DEFAULT_CALIBER_REGISTRY, build_workers: int = 1):
        self.registry = registry
        self.build_workers = max(1, int(build_workers))
        self._build_lock = threading.Lock()
        self._snapshot: Optional[CacheSnapshot] = None

    # -- lifecycle ---------------------------------------------------------

    @property
    def is_ready(self) -> bool:
        return self._snapshot is not None

    def snapshot(self) -> CacheSnapshot:
        """Current snapshot. Callers should hold on to it for a whole query."""
        snap = self._snapshot
        if snap is None:
            raise CacheNotReady()
        return snap

    def build(self, records: Iterable[CatalogRecord]) -> int:
        """
        Analyze every record and publish a new snapshot.

        Total: records whose names yield nothing still get an AttributeSet
        (manufacturer/category-only matching stays possible). Idempotent:
        building twice from the same records gives identical snapshots.

        Returns the number of products in the new snapshot.
        """
        records = list(records)
        with self._build_lock:
            start = time.perf_counter()
            attributes = self._analyze_all(records)
            buckets = self._build_buckets(attributes)
            elapsed = time.perf_counter() - start
            snap = CacheSnapshot(attributes, buckets, built_at=time.time(), build_seconds=elapsed)
            self._snapshot = snap

        with_attrs = sum(1 for a in attributes.values() if a.has_extracted_attributes())
        logger.info(
            f"Intelligence cache built: {len(snap):,} products analyzed in {elapsed:.2f}s "
            f"({with_attrs:,} with extracted attributes, {len(self.registry)} caliber families)"
        )
        return len(snap)

    def refresh(self, records: Iterable[CatalogRecord]) -> int:
        """Rebuild from a fresh snapshot of the catalog."""
        return self.build(records)

    def _analyze_all(self, records: List[CatalogRecord]) -> Dict[Any, AttributeSet]:
        if self.build_workers == 1 or len(records) < self.build_workers * 2:
            analyzed = [analyze_record(r, self.registry) for r in records]
        else:
            # Contiguous shards keep catalog order when results are concatenated
            shard_size = -(-len(records) // self.build_workers)
            shards = [records[i:i + shard_size] for i in range(0, len(records), shard_size)]
            with ThreadPoolExecutor(max_workers=self.build_workers) as pool:
                results = pool.map(self._analyze_shard, shards)
            analyzed = [attrs for shard in results for attrs in shard]

        attributes: Dict[Any, AttributeSet] = {}
        for attrs in analyzed:
            attributes[attrs.product_id] = attrs
        if len(attributes) < len(analyzed):
            logger.warning(
                f"{len(analyzed) - len(attributes)} duplicate product IDs in catalog; last record wins"
            )
        return attributes

    def _analyze_shard(self, shard: List[CatalogRecord]) -> List[AttributeSet]:
        return [analyze_record(r, self.registry) for r in shard]

    def _build_buckets(self, attributes: Dict[Any, AttributeSet]) -> Dict[Tuple[str, str], Tuple[Any, ...]]:
        buckets: Dict[Tuple[str, str], List[Any]] = {}
        for pid, attrs in attributes.items():
            for key in bucket_keys(attrs, self.registry):
                buckets.setdefault(key, []).append(pid)
        return {key: tuple(ids) for key, ids in buckets.items()}

    # -- reads -------------------------------------------------------------

    def __len__(self) -> int:
        snap = self._snapshot
        return len(snap) if snap is not None else 0

    def __contains__(self, product_id) -> bool:
        snap = self._snapshot
        return snap is not None and product_id in snap

    def get(self, product_id) -> Optional[AttributeSet]:
        """Cached AttributeSet, or None if the product is not in the catalog."""
        return self.snapshot().get(product_id)

    def product_ids(self) -> Tuple[Any, ...]:
        return self.snapshot().product_ids()

    def stats(self) -> Dict[str, Any]:
        """
        Extraction coverage and the distinct values seen per dimension.

        Returns {'ready': False, 'total_products': 0} before the first build.
        """
        snap = self._snapshot
        if snap is None:
            return {'ready': False, 'total_products': 0}

        total = len(snap)
        coverage = Counter()
        unique: Dict[str, set] = {dim: set() for dim in DIMENSIONS + ('manufacturer', 'category')}
        for attrs in snap.attributes.values():
            for dim in unique:
                value = getattr(attrs, dim)
                if value is not None:
                    coverage[dim] += 1
                    unique[dim].add(value)

        return {
            'ready': True,
            'total_products': total,
            'built_at': snap.built_at,
            'build_seconds': round(snap.build_seconds, 3),
            'coverage': {
                dim: round(coverage[dim] / total * 100, 1) if total else 0.0
                for dim in DIMENSIONS
            },
            'unique_calibers': sorted(unique['caliber']),
            'unique_firearm_types': sorted(unique['firearm_type']),
            'unique_actions': sorted(unique['action']),
            'unique_manufacturers': sorted(unique['manufacturer']),
            'unique_categories': sorted(unique['category']),
            'caliber_families': {
                family: sorted(members) for family, members in self.registry.families.items()
            },
        }
