"""
Candidate sampling: bound per-query scoring work regardless of catalog size.

A random subset of the catalog (minus the target) is scored instead of the
whole catalog. A true best match might not be drawn; that is the trade for
predictable latency on large catalogs.
"""

import random
from typing import Any, List, Optional, Sequence

from equivalence import DEFAULT_CALIBER_REGISTRY, EquivalenceRegistry
from intel_config import SAMPLING_STRATEGIES
from intelligence_cache import CacheSnapshot, bucket_keys


def sample_candidates(universe: Sequence[Any], sample_size: int, rng: random.Random) -> List[Any]:
    """
    Uniform random subset of `universe` with at most `sample_size` members.

    Drawn without replacement, so selection does not depend on the order IDs
    were inserted in. A universe no larger than the sample size is returned
    whole, in its original order.

    Examples:
        >>> sample_candidates([1, 2, 3], 500, random.Random(0))
        [1, 2, 3]
        >>> len(sample_candidates(list(range(1000)), 10, random.Random(0)))
        10
    """
    if sample_size <= 0:
        return []
    if len(universe) <= sample_size:
        return list(universe)
    return rng.sample(list(universe), sample_size)


class CandidateSampler:
    """
    Draws the candidate IDs scored against one target.

    strategy:
        'uniform'  - uniform subset of every other product in the catalog
        'bucketed' - up to half the budget from products sharing a
                     manufacturer, category or caliber family with the
                     target, the rest uniform from everything else

    With a seed, each call starts a fresh generator from that seed, so the same
    snapshot and target always produce the same sample. Without one, every
    call draws independently.
    """

    def __init__(
        self,
        sample_size: int = 500,
        seed: Optional[str] = None,
        strategy: str = "uniform",
        registry: EquivalenceRegistry = DEFAULT_CALIBER_REGISTRY,
    ):
        if sample_size <= 0:
            raise ValueError("sample_size must be positive")
        if strategy not in SAMPLING_STRATEGIES:
            raise ValueError(f"Unknown sampling strategy: {strategy!r}")
        self.sample_size = sample_size
        self.seed = seed
        self.strategy = strategy
        self.registry = registry

    def _rng(self, target_id: Any) -> random.Random:
        if self.seed is None:
            return random.Random()
        return random.Random(f"{self.seed}:{target_id}")

    def sample(self, snapshot: CacheSnapshot, target_id: Any) -> List[Any]:
        """Candidate IDs for `target_id`, never including the target itself."""
        rng = self._rng(target_id)
        if self.strategy == "bucketed":
            return self._sample_bucketed(snapshot, target_id, rng)
        universe = [pid for pid in snapshot.product_ids() if pid != target_id]
        return sample_candidates(universe, self.sample_size, rng)

    def _sample_bucketed(self, snapshot: CacheSnapshot, target_id: Any, rng: random.Random) -> List[Any]:
        target = snapshot.get(target_id)
        related: List[Any] = []
        seen = {target_id}
        if target is not None:
            for dimension, key in bucket_keys(target, self.registry):
                for pid in snapshot.bucket(dimension, key):
                    if pid not in seen:
                        seen.add(pid)
                        related.append(pid)

        bucket_budget = self.sample_size // 2
        picked = sample_candidates(related, bucket_budget, rng)

        picked_set = set(picked)
        picked_set.add(target_id)
        remainder = [pid for pid in snapshot.product_ids() if pid not in picked_set]
        picked.extend(sample_candidates(remainder, self.sample_size - len(picked), rng))
        return picked
