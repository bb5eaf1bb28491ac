"""
Catalog snapshot access: the read-only persistence collaborator.

The engine does not own product storage. It receives a snapshot (a DataFrame
loaded from a csv / xlsx / parquet export, or any iterable of CatalogRecord)
and resolves final product IDs back to full rows through a ProductLookup.

Column detection is role-based, so exports with headers like 'Product ID',
'Description', 'Mfg Name', 'Dept Number' all load without a mapping file.
"""

import os
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Protocol, Sequence, Tuple

import pandas as pd
from rapidfuzz import fuzz, process

from intel_logger import get_logger

logger = get_logger("catalog")


@dataclass(frozen=True)
class CatalogRecord:
    """One product as seen by the intelligence engine. Owned by the catalog."""
    product_id: Any
    name: str
    manufacturer: Optional[str] = None
    category: Optional[str] = None
    department: Optional[str] = None
    weight: Optional[float] = None
    sku: Optional[str] = None


class ProductLookup(Protocol):
    """Read-only product access used to resolve ranked IDs to full records."""

    def fetch_products(self, product_ids: Sequence[Any]) -> List[Dict[str, Any]]:
        ...

    def find_by_sku(self, sku: str) -> Optional[Dict[str, Any]]:
        ...


# ---------------------------------------------------------------------------
# Column role detection
# ---------------------------------------------------------------------------

ID_KEYWORDS = ['product_id', 'product id', 'productid', 'id']
NAME_KEYWORDS = ['name', 'description', 'desc', 'title', 'product', 'item']
MANUFACTURER_KEYWORDS = ['manufacturer', 'mfg', 'brand', 'make', 'vendor']
CATEGORY_KEYWORDS = ['category', 'type', 'class']
DEPARTMENT_KEYWORDS = ['department', 'dept']
WEIGHT_KEYWORDS = ['weight', 'wt']
SKU_KEYWORDS = ['sku', 'stock number', 'stock_number', 'upc', 'part_number']

# Columns that look like names but carry codes
NAME_EXCLUDE_KEYWORDS = ['id', 'sku', 'code', 'number', 'upc', 'manufacturer', 'category', 'type']

CANONICAL_COLUMNS = ['product_id', 'name', 'manufacturer', 'category', 'department', 'weight', 'sku']


def _find_column(columns: List[str], keywords: List[str], taken: set) -> Optional[str]:
    """First untaken column whose normalized header contains a keyword (keyword order = priority)."""
    for kw in keywords:
        kw_norm = kw.replace(' ', '_')
        for col in columns:
            if col in taken:
                continue
            col_norm = col.lower().strip().replace(' ', '_')
            if kw_norm == col_norm:
                return col
    for kw in keywords:
        kw_norm = kw.replace(' ', '_')
        for col in columns:
            if col in taken:
                continue
            col_norm = col.lower().strip().replace(' ', '_')
            if kw_norm in col_norm.split('_') or (len(kw_norm) > 3 and kw_norm in col_norm):
                return col
    return None


def _detect_name_column(columns: List[str], taken: set) -> Optional[str]:
    """Product name column, skipping ID-like and role columns ('Product ID', 'Manufacturer Name')."""
    for col in columns:
        if col in taken:
            continue
        col_lower = col.lower().strip()
        if any(excl in col_lower.replace('_', ' ').split() for excl in NAME_EXCLUDE_KEYWORDS):
            continue
        if any(kw in col_lower for kw in NAME_KEYWORDS):
            return col
    return None


def detect_catalog_columns(columns: List[str]) -> Dict[str, Optional[str]]:
    """
    Map each canonical role to a source column (or None).

    Detection order matters: ID and SKU are claimed first so 'Product ID'
    can never be mistaken for the product name.
    """
    columns = [str(c) for c in columns]
    taken: set = set()
    result: Dict[str, Optional[str]] = {}

    for role, keywords in (
        ('product_id', ID_KEYWORDS),
        ('sku', SKU_KEYWORDS),
        ('manufacturer', MANUFACTURER_KEYWORDS),
        ('department', DEPARTMENT_KEYWORDS),
        ('category', CATEGORY_KEYWORDS),
        ('weight', WEIGHT_KEYWORDS),
    ):
        col = _find_column(columns, keywords, taken)
        result[role] = col
        if col:
            taken.add(col)

    result['name'] = _detect_name_column(columns, taken)
    return result


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def _source_name(source) -> str:
    """File name of a path or an uploaded file object."""
    return str(getattr(source, 'name', source))


def read_snapshot(source) -> pd.DataFrame:
    """Read a raw export (path or file object) by extension: .csv, .xlsx/.xls, .parquet."""
    ext = os.path.splitext(_source_name(source))[1].lower()
    if ext == '.csv':
        return pd.read_csv(source, dtype=str, keep_default_na=False)
    if ext in ('.xlsx', '.xls'):
        return pd.read_excel(source, dtype=str)
    if ext == '.parquet':
        return pd.read_parquet(source)
    raise ValueError(f"Unsupported catalog file type: {ext or _source_name(source)}")


def normalize_catalog_frame(df_raw: pd.DataFrame) -> Tuple[pd.DataFrame, Dict]:
    """
    Rename detected columns to canonical names and clean the snapshot:
        1. Drop rows with empty names
        2. Drop duplicate product IDs (first occurrence wins)
        3. Coerce weight to float (unparseable -> NaN)

    Returns:
        - DataFrame with CANONICAL_COLUMNS
        - Stats dict (includes 'warnings' list)
    """
    df = df_raw.copy()
    df.columns = [str(c).strip() for c in df.columns]
    detected = detect_catalog_columns(df.columns.tolist())

    if detected['name'] is None:
        raise ValueError(f"No product name column found in {df.columns.tolist()}")

    warnings = []
    out = pd.DataFrame(index=df.index)
    for role in CANONICAL_COLUMNS:
        src = detected.get(role)
        out[role] = df[src] if src else None

    if detected['product_id'] is None:
        warnings.append("No product ID column found - using row numbers as IDs")
        out['product_id'] = range(1, len(out) + 1)

    original_count = len(out)
    out = out[out['name'].notna()]
    out = out[out['name'].astype(str).str.strip() != '']
    empty_dropped = original_count - len(out)

    pre_dupes = len(out)
    out = out.drop_duplicates(subset=['product_id'], keep='first').copy()
    duplicate_dropped = pre_dupes - len(out)
    if duplicate_dropped:
        warnings.append(f"Dropped {duplicate_dropped} rows with duplicate product IDs")

    out['weight'] = pd.to_numeric(out['weight'], errors='coerce')
    out = out.reset_index(drop=True)

    missing = [role for role, col in detected.items() if col is None]
    stats = {
        'original': original_count,
        'empty_name_dropped': empty_dropped,
        'duplicate_id_dropped': duplicate_dropped,
        'final': len(out),
        'columns': detected,
        'missing_columns': missing,
        'warnings': warnings,
    }
    return out, stats


def load_catalog(path) -> Tuple[pd.DataFrame, Dict]:
    """Load and normalize a catalog snapshot file."""
    df_raw = read_snapshot(path)
    df, stats = normalize_catalog_frame(df_raw)
    logger.info(f"Loaded catalog snapshot {_source_name(path)}: {stats['final']:,} products")
    for warning in stats['warnings']:
        logger.warning(warning)
    return df, stats


def _cell(value: Any) -> Any:
    """NaN / blank cells -> None."""
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    if isinstance(value, str) and not value.strip():
        return None
    return value


def coerce_product_id(value: Any) -> Any:
    """'42' -> 42 so IDs from text exports match numeric IDs from callers."""
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def iter_catalog_records(df: pd.DataFrame) -> Iterator[CatalogRecord]:
    """Yield a CatalogRecord per row of a normalized catalog frame."""
    for row in df.itertuples(index=False):
        weight = _cell(getattr(row, 'weight', None))
        yield CatalogRecord(
            product_id=coerce_product_id(row.product_id),
            name=str(row.name),
            manufacturer=_cell(getattr(row, 'manufacturer', None)),
            category=_cell(getattr(row, 'category', None)),
            department=_cell(getattr(row, 'department', None)),
            weight=float(weight) if weight is not None else None,
            sku=_cell(getattr(row, 'sku', None)),
        )


# ---------------------------------------------------------------------------
# In-memory product store
# ---------------------------------------------------------------------------

class DataFrameProductStore:
    """ProductLookup over a normalized catalog snapshot."""

    def __init__(self, df: pd.DataFrame, source_path: Optional[str] = None):
        self.source_path = source_path
        self._load_frame(df)

    def _load_frame(self, df: pd.DataFrame) -> None:
        df = df.copy()
        df['product_id'] = [coerce_product_id(v) for v in df['product_id']]
        rows: Dict[Any, Dict[str, Any]] = {}
        by_sku: Dict[str, Any] = {}
        for row in df.to_dict(orient='records'):
            clean = {k: _cell(v) for k, v in row.items()}
            rows[clean['product_id']] = clean
            if clean.get('sku'):
                by_sku[str(clean['sku']).strip().upper()] = clean['product_id']
        self._df = df
        self._rows = rows
        self._by_sku = by_sku
        self._names = {pid: str(r['name']) for pid, r in rows.items()}

    @classmethod
    def from_file(cls, path: str) -> "DataFrameProductStore":
        df, _ = load_catalog(path)
        return cls(df, source_path=path)

    def reload(self) -> int:
        """Re-read the source file (if any) and return the product count."""
        if self.source_path:
            df, _ = load_catalog(self.source_path)
            self._load_frame(df)
        return len(self._rows)

    @property
    def frame(self) -> pd.DataFrame:
        return self._df

    def __len__(self) -> int:
        return len(self._rows)

    def records(self) -> List[CatalogRecord]:
        return list(iter_catalog_records(self._df))

    def fetch_products(self, product_ids: Sequence[Any]) -> List[Dict[str, Any]]:
        """Full rows for the given IDs, in the order requested. Unknown IDs are skipped."""
        return [dict(self._rows[pid]) for pid in product_ids if pid in self._rows]

    def get_product(self, product_id: Any) -> Optional[Dict[str, Any]]:
        row = self._rows.get(coerce_product_id(product_id))
        return dict(row) if row else None

    def find_by_sku(self, sku: str) -> Optional[Dict[str, Any]]:
        if not sku:
            return None
        pid = self._by_sku.get(str(sku).strip().upper())
        return dict(self._rows[pid]) if pid is not None else None

    def search_by_name(self, query: str, limit: int = 10, score_cutoff: float = 60) -> List[Tuple[Dict[str, Any], float]]:
        """
        Fuzzy product lookup by name (token_set_ratio, order-independent).

        Used by the inspector UI to pick a target product from partial text.
        """
        if not query or not query.strip():
            return []
        hits = process.extract(
            query.upper(),
            self._names,
            scorer=fuzz.token_set_ratio,
            processor=str.upper,
            limit=limit,
            score_cutoff=score_cutoff,
        )
        # dict choices -> (name, score, key)
        return [(dict(self._rows[pid]), score) for _, score, pid in hits]
