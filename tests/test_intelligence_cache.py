"""
Tests for the intelligence cache: readiness, totality, refresh semantics,
sharded builds, bucket index and stats.
"""

import pytest

from catalog import CatalogRecord
from extractor import DIMENSIONS
from intelligence_cache import CacheNotReady, IntelligenceCache


class TestReadiness:
    def test_unbuilt_cache_is_not_ready(self):
        cache = IntelligenceCache()
        assert not cache.is_ready
        assert len(cache) == 0
        assert 1 not in cache
        assert cache.stats() == {'ready': False, 'total_products': 0}

    def test_unbuilt_cache_reads_raise(self):
        cache = IntelligenceCache()
        with pytest.raises(CacheNotReady):
            cache.get(1)
        with pytest.raises(CacheNotReady):
            cache.product_ids()

    def test_empty_catalog_is_ready(self):
        cache = IntelligenceCache()
        assert cache.build([]) == 0
        assert cache.is_ready
        assert cache.product_ids() == ()


class TestBuild:
    def test_every_record_is_cached(self, cache, records):
        assert len(cache) == len(records)
        assert cache.product_ids() == tuple(r.product_id for r in records)
        for record in records:
            assert cache.get(record.product_id) is not None

    def test_unknown_id_is_none(self, cache):
        assert cache.get(404) is None

    def test_record_without_attributes_is_kept(self, cache):
        attrs = cache.get(6)
        assert all(getattr(attrs, dim) is None for dim in DIMENSIONS)
        assert attrs.manufacturer == 'GLOCK'
        assert attrs.category == 'HANDGUNS'

    def test_build_is_idempotent(self, records):
        cache = IntelligenceCache()
        cache.build(records)
        first = dict(cache.snapshot().attributes)
        cache.build(records)
        assert dict(cache.snapshot().attributes) == first

    def test_sharded_build_matches_sequential(self, records):
        sequential = IntelligenceCache()
        sequential.build(records)
        sharded = IntelligenceCache(build_workers=3)
        sharded.build(records)
        assert sharded.product_ids() == sequential.product_ids()
        assert dict(sharded.snapshot().attributes) == dict(sequential.snapshot().attributes)

    def test_duplicate_ids_last_record_wins(self):
        cache = IntelligenceCache()
        cache.build([
            CatalogRecord(product_id=1, name='GLOCK 19 9MM'),
            CatalogRecord(product_id=1, name='RUGER 22LR'),
        ])
        assert len(cache) == 1
        assert cache.get(1).caliber == '22 LR'


class TestRefresh:
    def test_refresh_replaces_the_whole_map(self, records):
        cache = IntelligenceCache()
        cache.build(records)
        old_snapshot = cache.snapshot()

        cache.refresh([r for r in records if r.product_id != 5])
        assert 5 not in cache
        assert len(cache) == len(records) - 1
        # Readers holding the old snapshot keep a consistent view
        assert old_snapshot.get(5) is not None

    def test_refresh_picks_up_changed_names(self, records):
        cache = IntelligenceCache()
        cache.build(records)
        changed = [
            CatalogRecord(product_id=r.product_id, name='RUGER 10/22 22LR', manufacturer=r.manufacturer)
            if r.product_id == 1 else r
            for r in records
        ]
        cache.refresh(changed)
        assert cache.get(1).caliber == '22 LR'


class TestBuckets:
    def test_manufacturer_bucket(self, cache):
        assert cache.snapshot().bucket('manufacturer', 'GLOCK') == (1, 2, 3, 6, 7)

    def test_caliber_bucket_uses_family(self, cache):
        assert cache.snapshot().bucket('caliber', '9MM LUGER') == (1, 2, 4)

    def test_missing_bucket_is_empty(self, cache):
        assert cache.snapshot().bucket('category', 'OPTICS') == ()


class TestStats:
    def test_stats(self, cache):
        stats = cache.stats()
        assert stats['ready'] is True
        assert stats['total_products'] == 7
        assert set(stats['coverage']) == set(DIMENSIONS)
        # 1, 2, 4, 5 carry a caliber
        assert stats['coverage']['caliber'] == pytest.approx(57.1)
        assert stats['unique_calibers'] == ['308 WINCHESTER', '9MM LUGER']
        assert stats['unique_manufacturers'] == ['GLOCK', 'RUGER', 'SIG SAUER']
        assert '9MM LUGER' in stats['caliber_families']
