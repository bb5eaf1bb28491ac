"""
Tests for candidate sampling: bounds, target exclusion, determinism and
the bucketed strategy.
"""

import random
from collections import Counter

import pytest

from catalog import CatalogRecord
from intelligence_cache import IntelligenceCache
from sampler import CandidateSampler, sample_candidates


#  sample_candidates

class TestSampleCandidates:
    def test_small_universe_returned_whole_in_order(self):
        assert sample_candidates([5, 3, 9], 10, random.Random(1)) == [5, 3, 9]

    def test_universe_equal_to_sample_size(self):
        assert sample_candidates([1, 2, 3], 3, random.Random(1)) == [1, 2, 3]

    def test_empty_universe(self):
        assert sample_candidates([], 10, random.Random(1)) == []

    def test_bounded_and_without_duplicates(self):
        universe = list(range(1000))
        picked = sample_candidates(universe, 50, random.Random(3))
        assert len(picked) == 50
        assert len(set(picked)) == 50
        assert set(picked) <= set(universe)

    def test_same_seed_same_sample(self):
        universe = list(range(1000))
        assert sample_candidates(universe, 20, random.Random(42)) == sample_candidates(universe, 20, random.Random(42))

    def test_no_position_bias(self):
        # Each of 10 IDs drawn ~200 times out of 2000 single draws
        rng = random.Random(7)
        universe = list(range(10))
        counts = Counter(sample_candidates(universe, 1, rng)[0] for _ in range(2000))
        assert set(counts) == set(universe)
        assert all(120 <= c <= 280 for c in counts.values())


#  CandidateSampler over a cache

def build_cache(n):
    records = [
        CatalogRecord(
            product_id=i,
            name=f'ITEM {i}',
            manufacturer='GLOCK' if i % 10 == 0 else f'MAKER {i}',
            category=f'CAT {i}',
        )
        for i in range(1, n + 1)
    ]
    cache = IntelligenceCache()
    cache.build(records)
    return cache


class TestCandidateSampler:
    def test_excludes_target(self):
        snapshot = build_cache(50).snapshot()
        sampler = CandidateSampler(sample_size=500, seed='s')
        picked = sampler.sample(snapshot, 7)
        assert 7 not in picked
        assert len(picked) == 49

    def test_bounded_by_sample_size(self):
        snapshot = build_cache(200).snapshot()
        picked = CandidateSampler(sample_size=25).sample(snapshot, 1)
        assert len(picked) == 25
        assert len(set(picked)) == 25

    def test_seeded_sampler_is_deterministic(self):
        snapshot = build_cache(200).snapshot()
        sampler = CandidateSampler(sample_size=25, seed='fixed')
        assert sampler.sample(snapshot, 1) == sampler.sample(snapshot, 1)
        assert CandidateSampler(sample_size=25, seed='fixed').sample(snapshot, 1) == sampler.sample(snapshot, 1)

    def test_unknown_target_still_samples(self):
        snapshot = build_cache(30).snapshot()
        picked = CandidateSampler(sample_size=10, strategy='bucketed', seed=1).sample(snapshot, 999)
        assert len(picked) == 10

    @pytest.mark.parametrize("kwargs", [
        dict(sample_size=0),
        dict(sample_size=-5),
        dict(sample_size=10, strategy='nearest'),
    ])
    def test_invalid_settings(self, kwargs):
        with pytest.raises(ValueError):
            CandidateSampler(**kwargs)


class TestBucketedSampling:
    def test_half_the_budget_goes_to_related_products(self):
        # 20 GLOCK products (every 10th of 200) share a bucket with product 10
        snapshot = build_cache(200).snapshot()
        sampler = CandidateSampler(sample_size=10, seed='b', strategy='bucketed')
        picked = sampler.sample(snapshot, 10)
        same_maker = {pid for pid in picked if pid % 10 == 0}
        assert len(picked) == 10
        assert len(set(picked)) == 10
        assert 10 not in picked
        assert len(same_maker) >= 5

    def test_small_bucket_is_taken_whole(self):
        snapshot = build_cache(30).snapshot()
        sampler = CandidateSampler(sample_size=20, seed='b', strategy='bucketed')
        picked = sampler.sample(snapshot, 10)
        assert {20, 30} <= set(picked)
        assert len(picked) == 20
