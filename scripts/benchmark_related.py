"""
Micro-benchmark for the related-products engine.

Tests:
1. extract_name_attributes() on typical catalog names
2. IntelligenceCache.build() on a synthetic 20k catalog (sequential vs sharded)
3. related_products() latency per query at several sample sizes

Usage:
    python scripts/benchmark_related.py
"""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))
import time
import pandas as pd
import numpy as np
from catalog import DataFrameProductStore, normalize_catalog_frame
from extractor import extract_name_attributes, prepare_text
from intel_config import IntelConfig
from intelligence_cache import IntelligenceCache
from related_products import RelatedProductsService


def generate_synthetic_catalog(n_rows: int = 20000, seed: int = 7) -> pd.DataFrame:
    """Generate a synthetic firearm catalog export for benchmarking."""
    rng = np.random.RandomState(seed)
    makers = {
        'Glock': ('PISTOL', ['G17', 'G19', 'G26', 'G45']),
        'Smith & Wesson': ('PISTOL', ['M&P9', 'SHIELD PLUS', 'SD9VE']),
        'Sig Sauer': ('PISTOL', ['P320', 'P365', 'P226']),
        'Ruger': ('RIFLE', ['AMERICAN', '10/22', 'MINI-14']),
        'Mossberg': ('SHOTGUN', ['500', '590A1', 'MAVERICK 88']),
        'Henry': ('RIFLE', ['BIG BOY', 'GOLDEN BOY', 'X MODEL']),
    }
    calibers = {
        'PISTOL': ['9MM LUGER', '9MM', '40 S&W', '45 ACP', '380 ACP', '10MM AUTO'],
        'RIFLE': ['5.56 NATO', '223 REM', '308 WIN', '6.5 CREEDMOOR', '22LR', '44 MAG'],
        'SHOTGUN': ['12GA', '20GA', '410 GA'],
    }
    barrels = {
        'PISTOL': ['3.1"', '4"', '4.49"', '5"'],
        'RIFLE': ['16"', '18.5"', '20"', '22"', '24"'],
        'SHOTGUN': ['18.5"', '20"', '26"', '28"'],
    }
    capacities = {
        'PISTOL': ['10RD', '13RD', '15RD', '17RD'],
        'RIFLE': ['5RD', '10RD', '20RD', '30RD'],
        'SHOTGUN': ['5+1', '8+1', '4RD'],
    }
    actions = ['', '', 'SEMI-AUTO', 'STRIKER-FIRED', 'BOLT ACTION', 'PUMP', 'LEVER ACTION']

    maker_names = list(makers.keys())
    data = []
    for i in range(n_rows):
        maker = maker_names[rng.randint(len(maker_names))]
        ftype, models = makers[maker]
        model = models[rng.randint(len(models))]
        cal = calibers[ftype][rng.randint(len(calibers[ftype]))]
        bbl = barrels[ftype][rng.randint(len(barrels[ftype]))]
        cap = capacities[ftype][rng.randint(len(capacities[ftype]))]
        action = actions[rng.randint(len(actions))]
        name = f"{maker.upper()} {model} {cal} {bbl} {cap} {action} {ftype}".replace('  ', ' ').strip()

        data.append({
            'Product ID': i + 1,
            'Description': name,
            'Manufacturer': maker,
            'Category': 'Handguns' if ftype == 'PISTOL' else 'Long Guns',
            'Dept Number': '01' if ftype == 'PISTOL' else '05',
            'Weight': round(float(rng.uniform(1.0, 9.0)), 2),
            'SKU': f'SKU-{i:06d}',
        })

    return pd.DataFrame(data)


def benchmark_function(func, *args, **kwargs):
    """Benchmark a function and return (result, elapsed_ms)."""
    start = time.perf_counter()
    result = func(*args, **kwargs)
    end = time.perf_counter()
    elapsed_ms = (end - start) * 1000
    return result, elapsed_ms


def benchmark_extract_attributes(n_iterations: int = 5000):
    """Benchmark extract_name_attributes() on typical names."""
    print("\n" + "="*70)
    print("BENCHMARK: extract_name_attributes() - Attribute Extraction")
    print("="*70)

    test_names = [
        "GLOCK 19 GEN5 9MM LUGER 4.02\" 15RD PISTOL",
        "SMITH & WESSON 686 PLUS .357 MAG 6\" 7RD REVOLVER",
        "MOSSBERG 590A1 12GA 20\" 8+1RD PUMP SHOTGUN",
        "SAVAGE 110 TACTICAL 6.5 CREEDMOOR 24\" BBL 10RD BOLT ACTION",
        "SIG SAUER P226 LEGION",
    ]

    for name in test_names:
        # prepare_text is memoized; clear so every call pays the full cost
        prepare_text.cache_clear()
        start = time.perf_counter()
        for _ in range(n_iterations):
            _ = extract_name_attributes(name)
        end = time.perf_counter()

        elapsed_ms = (end - start) * 1000
        per_call_us = elapsed_ms * 1000 / n_iterations

        print(f"\nInput: {name}")
        print(f"  Total: {elapsed_ms:.2f}ms ({n_iterations} calls)")
        print(f"  Per call: {per_call_us:.2f}μs")


def benchmark_cache_build(n_rows: int = 20000):
    """Benchmark IntelligenceCache.build() sequential vs sharded."""
    print("\n" + "="*70)
    print(f"BENCHMARK: IntelligenceCache.build() - {n_rows // 1000}k Catalog")
    print("="*70)

    print(f"\nGenerating {n_rows // 1000}k synthetic catalog...")
    df_raw = generate_synthetic_catalog(n_rows)
    (df, stats), normalize_time = benchmark_function(normalize_catalog_frame, df_raw)
    print(f"  Normalize: {normalize_time:.2f}ms ({stats['final']:,} rows)")

    store = DataFrameProductStore(df)
    records = store.records()

    for workers in (1, 4):
        prepare_text.cache_clear()
        cache = IntelligenceCache(build_workers=workers)
        _, elapsed = benchmark_function(cache.build, records)
        print(f"  build_workers={workers}: {elapsed:.2f}ms ({len(records) / (elapsed / 1000):.0f} rows/sec)")

    coverage = cache.stats()['coverage']
    print(f"\nCoverage:")
    for dim, pct in coverage.items():
        print(f"  {dim}: {pct:.1f}%")
    return store, cache


def benchmark_queries(store, cache, n_queries: int = 200):
    """Benchmark related_products() latency at several sample sizes."""
    print("\n" + "="*70)
    print(f"BENCHMARK: related_products() - {n_queries} queries")
    print("="*70)

    ids = list(cache.product_ids())
    targets = [ids[i] for i in np.random.RandomState(11).randint(len(ids), size=n_queries)]

    for sample_size in (100, 500, 2000):
        config = IntelConfig(sample_size=sample_size, sampler_seed="bench")
        service = RelatedProductsService(cache, store, config=config)
        start = time.perf_counter()
        result_counts = []
        for pid in targets:
            result = service.related_products(pid)
            result_counts.append(len(result.items))
        elapsed_ms = (time.perf_counter() - start) * 1000

        print(f"\nsample_size={sample_size}")
        print(f"  Per query: {elapsed_ms / n_queries:.2f}ms")
        print(f"  Avg results: {np.mean(result_counts):.1f} (limit {config.default_limit})")


def main():
    """Run all benchmarks."""
    print("="*70)
    print("RELATED PRODUCTS ENGINE BENCHMARK")
    print("="*70)
    print("\nThis benchmark measures:")
    print("  1. extract_name_attributes() - per-record extraction cost")
    print("  2. IntelligenceCache.build() - cache build (20k catalog)")
    print("  3. related_products() - query latency vs sample size")

    benchmark_extract_attributes()
    store, cache = benchmark_cache_build()
    benchmark_queries(store, cache)

    print("\n" + "="*70)
    print("BENCHMARK COMPLETE")
    print("="*70)


if __name__ == '__main__':
    main()
