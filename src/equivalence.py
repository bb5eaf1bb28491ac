"""
Equivalence registry for extracted attribute values.

Distributor feeds spell the same caliber many ways ("9MM", "9MM LUGER", "9X19",
"9MM PARA"). The registry groups those spellings into closed families so two
products are treated as ammo-compatible whenever their calibers land in the
same family.

Rules:
    - A family is authored as a closed group: canonical name + member spellings.
    - Every member maps to exactly one family, so compatibility is symmetric.
    - Values outside every family are compatible only with themselves, compared
      on a punctuation-insensitive key ("9 MM" == "9MM", "5.56" == "556").
    - The registry is immutable once built. Changing families means building a
      new registry (from_yaml / from_mapping) and swapping it in.
    - Unknown or missing values never raise: are_compatible() just says False.

Manufacturer names get the same treatment via an alias table plus legal-suffix
stripping, with a rapidfuzz fallback for near-miss spellings.
"""

import os
import re
from functools import lru_cache
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional

import yaml
from rapidfuzz import fuzz, process

from intel_logger import get_logger

logger = get_logger("equivalence")

# ---------------------------------------------------------------------------
# Caliber families
# ---------------------------------------------------------------------------

# canonical -> member spellings (the canonical is always a member of its own family)
CALIBER_FAMILIES: Dict[str, List[str]] = {
    # 9x19 family
    '9MM LUGER': ['9MM', '9MM LUGER', '9X19', '9X19MM', '9MM PARA', '9MM PARABELLUM', '9MM NATO'],
    # .357 Magnum chambers .38 Special
    '357 MAGNUM': ['357 MAGNUM', '357 MAG', '357MAG', '38 SPECIAL', '38 SPEC', '38 SPL', '38SPEC', '38 S&W SPECIAL'],
    '45 ACP': ['45 ACP', '45ACP', '45 AUTO', '45AUTO'],
    '40 S&W': ['40 S&W', '40S&W', '40 SW', '40SW'],
    '380 ACP': ['380 ACP', '380ACP', '380 AUTO', '9MM KURZ', '9X17'],
    '22 LR': ['22 LR', '22LR', '22 LONG RIFLE'],
    '22 WMR': ['22 WMR', '22WMR', '22 MAGNUM', '22 MAG', '22 WIN MAG', '22 WINCHESTER MAGNUM'],
    '10MM AUTO': ['10MM', '10MM AUTO'],
    # .44 Magnum chambers .44 Special
    '44 MAGNUM': ['44 MAGNUM', '44 MAG', '44 REM MAG', '44 REMINGTON MAGNUM', '44 SPECIAL', '44 SPL', '44 SPEC'],
    # 5.56 NATO / .223 Remington
    '223 REMINGTON': ['223 REMINGTON', '223 REM', '223 WYLDE', '5.56 NATO', '5.56', '556 NATO', '5.56X45', '5.56X45MM'],
    # 7.62x51 NATO / .308 Winchester
    '308 WINCHESTER': ['308 WINCHESTER', '308 WIN', '7.62 NATO', '762 NATO', '7.62X51', '7.62X51MM'],
    '7.62X39': ['7.62X39', '7.62X39MM'],
    '300 BLACKOUT': ['300 BLACKOUT', '300 BLK', '300 AAC BLACKOUT', '300 AAC', '7.62X35'],
    '6.5 CREEDMOOR': ['6.5 CREEDMOOR', '6.5 CREED', '6.5CM', '6.5MM CREEDMOOR'],
    '30-06 SPRINGFIELD': ['30-06 SPRINGFIELD', '30-06', '30-06 SPRG', '30-06 SPRGFLD'],
    '45 COLT': ['45 COLT', '45 LONG COLT', '45 LC'],
    '12 GAUGE': ['12 GAUGE', '12 GA', '12GA'],
    '20 GAUGE': ['20 GAUGE', '20 GA', '20GA'],
    '410 BORE': ['410 BORE', '410 GA', '410 GAUGE'],
}


@lru_cache(maxsize=50000)
def normalize_value(value: str) -> str:
    """
    Comparison key for an attribute value: uppercase, no whitespace/dots/dashes.

    Examples:
        '9 MM'      -> '9MM'
        '.45 ACP'   -> '45ACP'
        '5.56 NATO' -> '556NATO'
        '30-06'     -> '3006'
    """
    if not isinstance(value, str):
        return ''
    return re.sub(r'[\s.\-_]+', '', value.upper().strip())


def clean_display(value: str) -> str:
    """Display form: uppercase, single spaces, no leading dot ('.45 acp' -> '45 ACP')."""
    if not isinstance(value, str):
        return ''
    s = value.upper().strip().lstrip('.')
    return re.sub(r'\s+', ' ', s).strip()


class EquivalenceRegistry:
    """Immutable table of closed equivalence families."""

    def __init__(self, families: Mapping[str, Iterable[str]]):
        index: Dict[str, str] = {}
        table: Dict[str, FrozenSet[str]] = {}

        for canonical, members in families.items():
            canon = clean_display(canonical)
            if not canon:
                raise ValueError("Equivalence family with an empty canonical name")
            group = {clean_display(m) for m in members if clean_display(m)}
            group.add(canon)

            for member in group:
                key = normalize_value(member)
                owner = index.get(key)
                if owner is not None and owner != canon:
                    raise ValueError(
                        f"'{member}' is listed in both '{owner}' and '{canon}' families"
                    )
                index[key] = canon

            table[canon] = table.get(canon, frozenset()) | frozenset(group)

        self._index = MappingProxyType(index)
        self._families = MappingProxyType(table)

    @classmethod
    def from_mapping(cls, families: Mapping[str, Iterable[str]]) -> "EquivalenceRegistry":
        return cls(families)

    @classmethod
    def from_yaml(cls, path: str) -> "EquivalenceRegistry":
        """
        Load families from YAML. Accepts either a top-level 'families' key or a
        bare mapping of canonical -> [members].
        """
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
        families = data.get('families', data) if isinstance(data, dict) else None
        if not isinstance(families, dict):
            raise ValueError(f"Registry file {path} must contain a mapping of families")
        return cls(families)

    @property
    def families(self) -> Mapping[str, FrozenSet[str]]:
        return self._families

    def __len__(self) -> int:
        return len(self._families)

    def __contains__(self, value) -> bool:
        return normalize_value(value) in self._index

    def family_of(self, value: Optional[str]) -> Optional[str]:
        """Canonical family name for a value, or None if unregistered."""
        if not value:
            return None
        return self._index.get(normalize_value(value))

    def canonicalize(self, raw: Optional[str]) -> Optional[str]:
        """
        Canonical spelling for a raw extracted value.

        Registered values collapse onto their family name; anything else comes
        back in display form so it can still match itself.
        """
        cleaned = clean_display(raw) if raw else ''
        if not cleaned:
            return None
        return self._index.get(normalize_value(cleaned), cleaned)

    def members(self, value: Optional[str]) -> FrozenSet[str]:
        """All values interchangeable with `value`, including itself."""
        family = self.family_of(value)
        if family is not None:
            return self._families[family]
        cleaned = clean_display(value) if value else ''
        return frozenset({cleaned}) if cleaned else frozenset()

    def are_compatible(self, a: Optional[str], b: Optional[str]) -> bool:
        """True if both values are present and equal or in the same family."""
        if not a or not b:
            return False
        key_a = normalize_value(a)
        key_b = normalize_value(b)
        if not key_a or not key_b:
            return False
        if key_a == key_b:
            return True
        family_a = self._index.get(key_a)
        return family_a is not None and family_a == self._index.get(key_b)


DEFAULT_CALIBER_REGISTRY = EquivalenceRegistry(CALIBER_FAMILIES)


def load_registry(path: Optional[str] = None) -> EquivalenceRegistry:
    """Registry from a YAML file, or the built-in families when no path is given."""
    if not path:
        return DEFAULT_CALIBER_REGISTRY
    if not os.path.exists(path):
        logger.warning(f"Registry file not found: {path} - using built-in caliber families")
        return DEFAULT_CALIBER_REGISTRY
    registry = EquivalenceRegistry.from_yaml(path)
    logger.info(f"Loaded {len(registry)} caliber families from {path}")
    return registry


# ---------------------------------------------------------------------------
# Manufacturer normalization
# ---------------------------------------------------------------------------

MANUFACTURER_ALIASES: Dict[str, str] = {
    # Smith & Wesson
    'S&W': 'SMITH & WESSON', 'SMITH & WESSON': 'SMITH & WESSON', 'SMITH&WESSON': 'SMITH & WESSON',
    'SMITH WESSON': 'SMITH & WESSON',
    # Sig Sauer
    'SIG': 'SIG SAUER', 'SIG SAUER': 'SIG SAUER', 'SIGARMS': 'SIG SAUER', 'SIG ARMS': 'SIG SAUER',
    # Heckler & Koch
    'HK': 'HECKLER & KOCH', 'H&K': 'HECKLER & KOCH', 'HECKLER & KOCH': 'HECKLER & KOCH',
    'HK USA': 'HECKLER & KOCH',
    # Ruger
    'RUGER': 'RUGER', 'STURM RUGER': 'RUGER', 'STURM RUGER & CO': 'RUGER',
    # FN
    'FN': 'FN', 'FN AMERICA': 'FN', 'FN HERSTAL': 'FN', 'FNH': 'FN', 'FNH USA': 'FN',
    # CZ
    'CZ': 'CZ', 'CZ-USA': 'CZ', 'CZ USA': 'CZ', 'CESKA ZBROJOVKA': 'CZ',
    # Mossberg
    'MOSSBERG': 'MOSSBERG', 'OF MOSSBERG': 'MOSSBERG', 'OF MOSSBERG & SONS': 'MOSSBERG',
    'MOSSBERG & SONS': 'MOSSBERG',
    # Springfield
    'SPRINGFIELD': 'SPRINGFIELD ARMORY', 'SPRINGFIELD ARMORY': 'SPRINGFIELD ARMORY',
    # Long-form company names -> short trade names
    'REMINGTON ARMS': 'REMINGTON', 'WINCHESTER REPEATING ARMS': 'WINCHESTER',
    'SAVAGE ARMS': 'SAVAGE', 'HENRY REPEATING ARMS': 'HENRY', 'HENRY RIFLES': 'HENRY',
    "COLT'S MANUFACTURING": 'COLT', 'COLTS MANUFACTURING': 'COLT',
    'PSA': 'PALMETTO STATE ARMORY', 'DD': 'DANIEL DEFENSE',
    'GLOCK': 'GLOCK', 'BERETTA': 'BERETTA', 'TAURUS': 'TAURUS', 'KIMBER': 'KIMBER',
}

# Suffixes to strip from manufacturer names before alias lookup
_MANUFACTURER_SUFFIXES = re.compile(
    r'\s+(?:INC|LLC|CO|CORP|CORPORATION|MFG|LTD|USA|INTERNATIONAL)\s*$'
)

_CANONICAL_MANUFACTURERS = sorted(set(MANUFACTURER_ALIASES.values()))
_MANUFACTURER_FUZZY_CUTOFF = 92


@lru_cache(maxsize=20000)
def normalize_manufacturer(manufacturer: str) -> Optional[str]:
    """
    Canonical manufacturer name, or None when blank.

    Examples:
        'Smith & Wesson Inc.' -> 'SMITH & WESSON'
        'S&W'                 -> 'SMITH & WESSON'
        'Sturm, Ruger & Co.'  -> 'RUGER'
        'Glock Inc'           -> 'GLOCK'
        'Unknown Arms'        -> 'UNKNOWN ARMS'
    """
    if not isinstance(manufacturer, str) or not manufacturer.strip():
        return None
    m = manufacturer.upper().strip()
    m = re.sub(r'[.,]', '', m)
    m = re.sub(r'\s+AND\s+', ' & ', m)
    m = re.sub(r'\s+', ' ', m).strip()

    if m in MANUFACTURER_ALIASES:
        return MANUFACTURER_ALIASES[m]

    # Strip legal suffixes until stable ("KIMBER MFG INC" -> "KIMBER")
    stripped = m
    while True:
        shorter = _MANUFACTURER_SUFFIXES.sub('', stripped).strip()
        if shorter == stripped or not shorter:
            break
        stripped = shorter
    if stripped in MANUFACTURER_ALIASES:
        return MANUFACTURER_ALIASES[stripped]

    best = process.extractOne(
        stripped,
        _CANONICAL_MANUFACTURERS,
        scorer=fuzz.token_sort_ratio,
        score_cutoff=_MANUFACTURER_FUZZY_CUTOFF,
    )
    if best:
        return best[0]
    return stripped
