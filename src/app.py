"""
Catalog Intelligence — Related Products Inspector (Streamlit UI)

Load a catalog snapshot (the configured INTEL_CATALOG_PATH, or an uploaded
csv / xlsx / parquet export), then pick a product and see which products the
engine ranks as related, with the score and the reasons behind each one.

Run with:
    streamlit run src/app.py
"""

import io

import pandas as pd
import streamlit as st

from catalog import DataFrameProductStore, load_catalog
from equivalence import load_registry
from extractor import DIMENSIONS, self_test_extraction
from intel_config import SAMPLING_STRATEGIES, IntelConfig, get_config
from intelligence_cache import IntelligenceCache
from related_products import (
    RELATED_STATUS_NOT_FOUND,
    RELATED_STATUS_NOT_READY,
    RelatedProductsService,
)

# ---------------------------------------------------------------------------
# Page config
# ---------------------------------------------------------------------------
st.set_page_config(
    page_title="Related Products Inspector",
    page_icon="🎯",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.title("🎯 Related Products Inspector")
st.markdown("**Attribute extraction, caliber equivalence and weighted similarity over a catalog snapshot**")

base_config = get_config()

# ---------------------------------------------------------------------------
# Sidebar
# ---------------------------------------------------------------------------
st.sidebar.header("⚙️ Settings")

sample_size = st.sidebar.slider(
    "Sample size", min_value=50, max_value=5000, value=base_config.sample_size, step=50,
    help="Candidates scored per query. Larger = better recall, slower queries.",
)
min_score = st.sidebar.slider(
    "Minimum score", min_value=0, max_value=400, value=base_config.min_score, step=5,
    help="Candidates below this score are never shown.",
)
limit = st.sidebar.slider("Results", min_value=1, max_value=50, value=base_config.default_limit)
strategy = st.sidebar.selectbox(
    "Sampling strategy", SAMPLING_STRATEGIES,
    index=SAMPLING_STRATEGIES.index(base_config.sampling_strategy),
    help="'bucketed' spends half the sample on same maker / category / caliber family.",
)
seed = st.sidebar.text_input(
    "Sampler seed", value=base_config.sampler_seed or "",
    help="Set a seed to get the same sample (and ranking) on every run.",
)

st.sidebar.divider()

with st.sidebar.expander("Admin: Intelligence Cache"):
    if st.button("Rebuild Cache"):
        st.cache_resource.clear()
        st.rerun()

# =========================================================================
# Load catalog + build intelligence cache - CACHED per snapshot
# =========================================================================

@st.cache_resource(show_spinner="Analyzing catalog...")
def load_intelligence(source_bytes, file_name, catalog_path, registry_path, build_workers):
    """Load the snapshot and build the intelligence cache once per source."""
    if source_bytes is not None:
        buffer = io.BytesIO(source_bytes)
        buffer.name = file_name
        df, stats = load_catalog(buffer)
    else:
        df, stats = load_catalog(catalog_path)

    store = DataFrameProductStore(df, source_path=catalog_path or None)
    registry = load_registry(registry_path or None)
    cache = IntelligenceCache(registry=registry, build_workers=build_workers)
    cache.build(store.records())
    return {'store': store, 'cache': cache, 'registry': registry, 'stats': stats}


upload = st.file_uploader(
    "📁 Upload a catalog snapshot (.csv, .xlsx or .parquet)",
    type=["csv", "xlsx", "parquet"],
    key="catalog_upload",
    help="Needs at least a product name column. Manufacturer, category, department and weight columns improve matching.",
)

if upload is None and not base_config.catalog_path:
    st.info("💡 **Tip:** upload a catalog export, or set `INTEL_CATALOG_PATH` to load one on startup.")
    st.stop()

try:
    intel = load_intelligence(
        upload.getvalue() if upload is not None else None,
        upload.name if upload is not None else None,
        base_config.catalog_path,
        base_config.registry_path,
        base_config.build_workers,
    )
except ValueError as e:
    st.error(f"Failed to load catalog: {e}")
    st.stop()

store = intel['store']
cache = intel['cache']

config = IntelConfig(
    sample_size=sample_size,
    sampler_seed=seed.strip() or None,
    sampling_strategy=strategy,
    min_score=min_score,
    default_limit=limit,
    build_workers=base_config.build_workers,
    catalog_path=base_config.catalog_path,
    registry_path=base_config.registry_path,
)
service = RelatedProductsService(cache, store, config=config, registry=intel['registry'])

for warning in intel['stats'].get('warnings', []):
    st.warning(warning)

# =========================================================================
# Intelligence stats
# =========================================================================
stats = service.stats()

col1, col2, col3, col4 = st.columns(4)
col1.metric("Products Analyzed", f"{stats['total_products']:,}")
col2.metric("Calibers Seen", len(stats['unique_calibers']))
col3.metric("Manufacturers", len(stats['unique_manufacturers']))
col4.metric("Build Time", f"{stats['build_seconds']:.2f}s")

with st.expander("📊 Extraction Coverage"):
    df_cov = pd.DataFrame(
        [{'Attribute': dim, 'Coverage %': stats['coverage'][dim]} for dim in DIMENSIONS]
    )
    col_left, col_right = st.columns(2)
    with col_left:
        st.dataframe(df_cov, use_container_width=True, hide_index=True)
    with col_right:
        df_fam = pd.DataFrame(
            [{'Family': fam, 'Members': ', '.join(members)}
             for fam, members in stats['caliber_families'].items()]
        )
        st.dataframe(df_fam, use_container_width=True, hide_index=True, height=300)

st.divider()

# =========================================================================
# Related products lookup
# =========================================================================
st.subheader("🔍 Find Related Products")

lookup_col, search_col = st.columns(2)
with lookup_col:
    identifier = st.text_input("Product ID or SKU", key="identifier")
with search_col:
    query = st.text_input("...or search by name", key="name_query")

if query:
    hits = store.search_by_name(query, limit=15)
    if not hits:
        st.warning("No products match that name.")
    else:
        labels = {f"{row['product_id']} — {row['name']} ({score:.0f}%)": row['product_id'] for row, score in hits}
        picked = st.selectbox("Pick a product", list(labels.keys()))
        identifier = str(labels[picked])

if identifier:
    result = service.related_for_identifier(identifier, limit=limit)

    if result.status == RELATED_STATUS_NOT_READY:
        st.error("Intelligence cache is not built yet.")
        st.stop()
    if result.status == RELATED_STATUS_NOT_FOUND:
        st.error(f"No product with ID or SKU `{identifier}`.")
        st.stop()

    target_row = store.get_product(result.product_id) or {}
    target_attrs = cache.get(result.product_id)
    st.markdown(f"**Target:** `{result.product_id}` — {target_row.get('name', '')}")
    attr_cols = st.columns(len(DIMENSIONS) + 1)
    for col, dim in zip(attr_cols, DIMENSIONS):
        col.metric(dim.replace('_', ' ').title(), getattr(target_attrs, dim) or '—')
    attr_cols[-1].metric("Manufacturer", target_attrs.manufacturer or '—')

    ca, cb, cc = st.columns(3)
    ca.metric("Sampled", result.sampled)
    cb.metric("Results", len(result.items))
    cc.metric("Query Time", f"{result.elapsed_ms:.1f} ms")

    if not result.items:
        st.info(f"Nothing in the sample scored {min_score} or more.")
    else:
        df_related = pd.DataFrame([
            {
                'Product ID': item.product_id,
                'Name': item.record.get('name'),
                'Manufacturer': item.record.get('manufacturer'),
                'Category': item.record.get('category'),
                'Score': item.score,
                'Reasons': ', '.join(item.reasons),
            }
            for item in result.items
        ])
        st.dataframe(df_related, use_container_width=True, hide_index=True)
        st.download_button(
            label="📥 Download Results CSV",
            data=df_related.to_csv(index=False),
            file_name=f"related_{result.product_id}.csv",
            mime="text/csv",
        )

st.divider()

with st.expander("🧪 Extractor Self-Test"):
    failures = self_test_extraction()
    if failures:
        st.error(f"{len(failures)} extraction check(s) failed")
        for failure in failures:
            st.code(failure)
    else:
        st.success("All extraction checks passed")
