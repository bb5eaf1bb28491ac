"""Shared fixtures: a small firearm catalog with hand-checked expected scores."""

import pandas as pd
import pytest

from catalog import DataFrameProductStore, normalize_catalog_frame
from intel_config import IntelConfig
from intelligence_cache import IntelligenceCache
from related_products import RelatedProductsService

# Scores against product 1:
#   2 -> 500  perfect match + category + department + barrel + capacity + action + weight
#   4 -> 280  caliber + type + category + department + barrel + capacity + action + weight
#   6 -> 120  manufacturer + category + department (name yields nothing)
#   7 -> 120  same as 6, later in catalog order
#   3 ->  50  manufacturer only (below the default threshold)
#   5 ->   0  unrelated rifle
CATALOG_ROWS = [
    (1, 'GLOCK 19 9MM LUGER 4.02" 15RD STRIKER-FIRED PISTOL', 'Glock Inc', 'Handguns', '01', 1.5, 'GL-19'),
    (2, 'GLOCK 17 9MM 4.49" 17RD STRIKER-FIRED PISTOL', 'GLOCK', 'Handguns', '01', 1.6, 'GL-17'),
    (3, 'GLOCK CLEANING KIT', 'Glock', 'Accessories', '11', None, 'GL-KIT'),
    (4, 'SIG SAUER P320 9MM LUGER 4.7" 17RD STRIKER-FIRED PISTOL', 'Sig Sauer Inc.', 'Handguns', '01', 1.8, 'SIG-320'),
    (5, 'RUGER AMERICAN 308 WIN 22" 4RD BOLT ACTION RIFLE', 'Sturm, Ruger & Co.', 'Long Guns', '05', 6.6, 'RUG-AM'),
    (6, 'UNMARKED ITEM', 'Glock', 'Handguns', '01', None, 'GL-X1'),
    (7, 'UNMARKED ITEM', 'Glock', 'Handguns', '01', None, 'GL-X2'),
]


def make_raw_frame(rows=CATALOG_ROWS) -> pd.DataFrame:
    return pd.DataFrame(
        rows,
        columns=['Product ID', 'Description', 'Manufacturer', 'Category', 'Dept Number', 'Weight', 'SKU'],
    )


@pytest.fixture
def raw_frame():
    return make_raw_frame()


@pytest.fixture
def store(raw_frame):
    df, _ = normalize_catalog_frame(raw_frame)
    return DataFrameProductStore(df)


@pytest.fixture
def records(store):
    return store.records()


@pytest.fixture
def cache(records):
    cache = IntelligenceCache()
    cache.build(records)
    return cache


@pytest.fixture
def make_service(cache, store):
    """Factory: service over the fixture cache with a fixed sampler seed."""
    services = []

    def _make(**overrides):
        settings = {'sampler_seed': 'fixture'}
        settings.update(overrides)
        service = RelatedProductsService(cache, store, config=IntelConfig(**settings))
        services.append(service)
        return service

    yield _make
    for service in services:
        service.close()


@pytest.fixture
def clean_env(monkeypatch):
    """Remove INTEL_* overrides so config tests see only the YAML."""
    for name in (
        'INTEL_SAMPLE_SIZE', 'INTEL_MIN_SCORE', 'INTEL_DEFAULT_LIMIT', 'INTEL_SAMPLER_SEED',
        'INTEL_SAMPLING_STRATEGY', 'INTEL_QUERY_DEADLINE_MS', 'INTEL_CATALOG_PATH',
    ):
        monkeypatch.delenv(name, raising=False)
