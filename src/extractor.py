"""
Attribute extraction from free-text distributor product names.

The upstream feed gives almost nothing structured beyond manufacturer,
category and department, so caliber, barrel length, capacity, action and
firearm type all have to be read out of names like:

    'GLOCK 19 GEN5 9MM 4.02" 15RD FS STRIKER-FIRED PISTOL'
    'MOSSBERG 590A1 12GA 20" 8+1RD PUMP SHOTGUN'

Approach:
    - Each dimension has an ordered list of ExtractionRule(pattern, build).
    - Rules are tried in declared order; the first rule that yields a
      well-formed value wins. Names often carry several numbers (model,
      barrel, capacity), so precedence is fixed, never merged.
    - Calibers are fed through the equivalence registry so "9MM", "9X19" and
      "9MM PARA" are all stored as '9MM LUGER'.
    - No match means the field stays None. Nothing is defaulted and empty
      strings never stand in for "unknown".
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Pattern, Tuple

from equivalence import DEFAULT_CALIBER_REGISTRY, EquivalenceRegistry, normalize_manufacturer
from intel_logger import get_logger

logger = get_logger("extractor")

# Plausibility windows. A match outside these is treated as "no value".
BARREL_MIN_INCHES = 1.0
BARREL_MAX_INCHES = 40.0
CAPACITY_MIN_ROUNDS = 1
CAPACITY_MAX_ROUNDS = 200

DIMENSIONS = ('caliber', 'barrel_length', 'capacity', 'action', 'firearm_type')


# ---------------------------------------------------------------------------
# Attribute record
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AttributeSet:
    """
    Structured view of one catalog record.

    Extracted fields (caliber .. firearm_type) come from the name; manufacturer,
    category, department and weight are carried through from the record.
    Every field is either a well-formed value or None.
    """
    product_id: Any
    name: str = ''
    caliber: Optional[str] = None
    barrel_length: Optional[str] = None
    capacity: Optional[str] = None
    action: Optional[str] = None
    firearm_type: Optional[str] = None
    manufacturer: Optional[str] = None
    category: Optional[str] = None
    department: Optional[str] = None
    weight: Optional[float] = None

    @property
    def barrel_inches(self) -> Optional[float]:
        return barrel_length_inches(self.barrel_length)

    @property
    def capacity_rounds(self) -> Optional[int]:
        return capacity_rounds(self.capacity)

    def has_extracted_attributes(self) -> bool:
        return any(getattr(self, dim) is not None for dim in DIMENSIONS)


def barrel_length_inches(value: Optional[str]) -> Optional[float]:
    """'4.5"' -> 4.5. Malformed or missing -> None (never 0)."""
    if not value:
        return None
    m = re.match(r'^\s*(\d+(?:\.\d+)?)', str(value))
    return float(m.group(1)) if m else None


def capacity_rounds(value: Optional[str]) -> Optional[int]:
    """'15' -> 15, '10+1' -> 10 (first number of a compound form)."""
    if not value:
        return None
    m = re.match(r'^\s*(\d+)', str(value))
    return int(m.group(1)) if m else None


# ---------------------------------------------------------------------------
# Rule tables
# ---------------------------------------------------------------------------

class ExtractionRule(NamedTuple):
    pattern: Pattern
    build: Callable[[re.Match], Optional[str]]


def first_match(rules: List[ExtractionRule], text: str) -> Optional[str]:
    """
    Ordered first-match: return the value of the first rule that produces one.

    Within a rule, occurrences are tried left to right; a rule whose matches
    all fail their build step falls through to the next rule.
    """
    for rule in rules:
        for m in rule.pattern.finditer(text):
            value = rule.build(m)
            if value:
                return value
    return None


def _constant(value: str) -> Callable[[re.Match], str]:
    return lambda m: value


# Numbers must not be glued to a preceding word/number ("P226", "1911" stay intact)
_NUM_START = r'(?<![\w.])'

_CARTRIDGE_SUFFIXES = (
    r'S&W SPECIAL|S&W|SW|ACP|AUTO|SPECIAL|SPEC|SPL|WIN MAG|WINCHESTER MAGNUM|MAGNUM|MAG|WMR|HMR|'
    r'LONG RIFLE|LR|LONG COLT|COLT|LC|REMINGTON MAGNUM|REM MAG|REMINGTON|REM|WINCHESTER|WIN|WSM|NATO|'
    r'AAC BLACKOUT|BLACKOUT|BLK|AAC|CREEDMOOR|CREED|PRC|GRENDEL|VALKYRIE|LEGEND|'
    r'WYLDE|NOSLER|WEATHERBY|LAPUA|ARC|SUPER|SAUM|RUM|HORNET|SIG|GOVT'
)


def _metric_compound(m: re.Match) -> str:
    return f"{m.group(1)}X{m.group(2)}"


def _metric_mm(m: re.Match) -> str:
    suffix = m.group(2)
    return f"{m.group(1)}MM {suffix}" if suffix else f"{m.group(1)}MM"


def _number_suffix(m: re.Match) -> str:
    return f"{m.group(1)} {m.group(2)}"


def _hyphen_compound(m: re.Match) -> str:
    base = f"{m.group(1)}-{m.group(2)}"
    return f"{base} {m.group(3)}" if m.group(3) else base


def _slash_dual(m: re.Match) -> str:
    # '38/357 MAG' -> the larger chambering carries the family
    return f"{m.group(2)} {m.group(3)}"


CALIBER_RULES: List[ExtractionRule] = [
    # 9X19, 7.62X39MM, 5.56X45
    ExtractionRule(
        re.compile(r'(?<![\w.\-])(\d{1,2}(?:\.\d{1,2})?)\s*X\s*(\d{2})(?:\s*MM)?\b'),
        _metric_compound,
    ),
    # 9MM, 9MM LUGER, 10MM AUTO, 6.5MM CREEDMOOR
    ExtractionRule(
        re.compile(_NUM_START + r'(\d{1,2}(?:\.\d)?)\s*MM\b'
                   r'(?:\s+(LUGER|PARABELLUM|PARA|NATO|AUTO|KURZ|MAKAROV|CREEDMOOR))?'),
        _metric_mm,
    ),
    # .45 ACP, 40 S&W, 357 MAG, 22LR, 5.56 NATO, 6.5 CREEDMOOR, 300 BLK
    # (not the tail of a hyphen compound: '30-30 WIN' is not '30 WIN')
    ExtractionRule(
        re.compile(r'(?<![\w.\-])\.?(\d{2,3}|\d\.\d{1,2})\s*-?\s*(' + _CARTRIDGE_SUFFIXES + r')\b'),
        _number_suffix,
    ),
    # 6.5CM, 6.8 CM (decimal only: '30CM' is a length)
    ExtractionRule(
        re.compile(r'(?<![\w.\-])(\d\.\d)\s*(CM)\b'),
        _number_suffix,
    ),
    # 12GA, 20 GAUGE, 410 BORE
    ExtractionRule(
        re.compile(_NUM_START + r'\.?(10|12|16|20|28|410)\s*-?\s*(GAUGE|GA|BORE)\b'),
        _number_suffix,
    ),
    # 30-06 SPRG, 30-30 WIN
    ExtractionRule(
        re.compile(_NUM_START + r'(\d{2})-(\d{2})\b(?:\s+(SPRINGFIELD|SPRGFLD|SPRG|WINCHESTER|WIN))?'),
        _hyphen_compound,
    ),
    # 38/357 MAG dual-marked revolvers
    ExtractionRule(
        re.compile(_NUM_START + r'\.?(\d{2,3})\s*/\s*\.?(\d{2,3})\s*(MAGNUM|MAG|WMR|SPECIAL|SPL)\b'),
        _slash_dual,
    ),
    # Bare metric decimals: 5.56, 7.62
    ExtractionRule(
        re.compile(_NUM_START + r'(5\.56|5\.45|5\.7|6\.5|6\.8|7\.62)(?![\d.])'),
        lambda m: m.group(1),
    ),
]


def _barrel_value(m: re.Match) -> Optional[str]:
    try:
        inches = float(m.group(1))
    except ValueError:
        return None
    if not BARREL_MIN_INCHES <= inches <= BARREL_MAX_INCHES:
        return None
    return f'{inches:g}"'


_BARREL_NUMBER = _NUM_START + r'(\d{1,2}(?:\.\d{1,3})?)'

BARREL_LENGTH_RULES: List[ExtractionRule] = [
    ExtractionRule(re.compile(_BARREL_NUMBER + r'\s*(?:"|\'\')'), _barrel_value),
    ExtractionRule(re.compile(_BARREL_NUMBER + r'\s*-?\s*INCH(?:ES)?\b'), _barrel_value),
    ExtractionRule(re.compile(_BARREL_NUMBER + r'\s*IN\b'), _barrel_value),
    ExtractionRule(re.compile(_BARREL_NUMBER + r'\s*-?\s*(?:BBL|BRL|BARREL)\b'), _barrel_value),
]


def _capacity_in_range(count: str) -> bool:
    return CAPACITY_MIN_ROUNDS <= int(count) <= CAPACITY_MAX_ROUNDS


def _compound_capacity(m: re.Match) -> Optional[str]:
    if not _capacity_in_range(m.group(1)):
        return None
    return f"{int(m.group(1))}+{int(m.group(2))}"


def _single_capacity(m: re.Match) -> Optional[str]:
    if not _capacity_in_range(m.group(1)):
        return None
    return str(int(m.group(1)))


_ROUND_MARKER = r'(?:RDS?|RNDS?|ROUNDS?|SHOTS?)'

CAPACITY_RULES: List[ExtractionRule] = [
    # Magazine + chamber: 10+1RD, 17 + 1 ROUNDS
    ExtractionRule(
        re.compile(_NUM_START + r'(\d{1,3})\s*\+\s*(\d{1,2})\s*' + _ROUND_MARKER + r'?\b'),
        _compound_capacity,
    ),
    ExtractionRule(
        re.compile(_NUM_START + r'(\d{1,3})\s*-?\s*' + _ROUND_MARKER + r'\b'),
        _single_capacity,
    ),
]

ACTION_RULES: List[ExtractionRule] = [
    ExtractionRule(re.compile(r'\b(?:SEMI[\s-]?AUTO(?:MATIC)?|SEMI)\b'), _constant('SEMI-AUTO')),
    ExtractionRule(re.compile(r'\b(?:BOLT[\s-]?ACTION|BOLT)\b'), _constant('BOLT')),
    ExtractionRule(re.compile(r'\b(?:PUMP[\s-]?ACTION|PUMP)\b'), _constant('PUMP')),
    ExtractionRule(re.compile(r'\b(?:LEVER[\s-]?ACTION|LEVER)\b'), _constant('LEVER')),
    ExtractionRule(
        re.compile(r'\b(?:BREAK[\s-]?ACTION|BREAK[\s-]?OPEN|BREAK|OVER[\s/-]?UNDER|O/U|SXS|SIDE[\s-]BY[\s-]SIDE)\b'),
        _constant('BREAK'),
    ),
    ExtractionRule(re.compile(r'\b(?:SA/DA|DA/SA)\b'), _constant('DA/SA')),
    ExtractionRule(re.compile(r'\b(?:DOUBLE[\s-]ACTION[\s-]ONLY|DAO)\b'), _constant('DAO')),
    ExtractionRule(re.compile(r'\b(?:SINGLE[\s-]ACTION|SAO)\b'), _constant('SINGLE-ACTION')),
    ExtractionRule(re.compile(r'\b(?:DOUBLE[\s-]ACTION)\b'), _constant('DOUBLE-ACTION')),
    ExtractionRule(re.compile(r'\b(?:SINGLE[\s-]SHOT)\b'), _constant('SINGLE-SHOT')),
    ExtractionRule(re.compile(r'\b(?:STRIKER[\s-]?FIRED|STRIKER)\b'), _constant('STRIKER-FIRED')),
    ExtractionRule(re.compile(r'\b(?:REVOLVER|REV)\b'), _constant('REVOLVER')),
    ExtractionRule(re.compile(r'\b(?:FULL[\s-]?AUTO(?:MATIC)?|AUTOMATIC)\b'), _constant('AUTOMATIC')),
    ExtractionRule(re.compile(r'\b(?:MANUAL[\s-]ACTION)\b'), _constant('MANUAL')),
]


def _ar_platform(m: re.Match) -> str:
    return 'AR-10' if m.group(0).endswith('10') else 'AR-15'


FIREARM_TYPE_RULES: List[ExtractionRule] = [
    ExtractionRule(re.compile(r'\b(?:PISTOL|HANDGUN|SIDEARM|DERRINGER)\b'), _constant('PISTOL')),
    ExtractionRule(re.compile(r'\b(?:REVOLVER|REV)\b'), _constant('REVOLVER')),
    # '22 LONG RIFLE' is a cartridge, not a rifle
    ExtractionRule(re.compile(r'(?<!LONG )\b(?:RIFLE|CARBINE)\b'), _constant('RIFLE')),
    ExtractionRule(re.compile(r'\b(?:SHOTGUN|SMOOTHBORE)\b'), _constant('SHOTGUN')),
    ExtractionRule(re.compile(r'\b(?:AR[\s-]?15|AR[\s-]?10|AR)\b'), _ar_platform),
    ExtractionRule(re.compile(r'\b(?:AK[\s-]?47|AK[\s-]?74|AKM|AK)\b'), _constant('AK')),
    ExtractionRule(re.compile(r'\b1911\b'), _constant('1911')),
]


# ---------------------------------------------------------------------------
# Per-dimension extraction
# ---------------------------------------------------------------------------

@lru_cache(maxsize=50000)
def prepare_text(text: str) -> str:
    """Uppercase, straighten typographic quotes, collapse whitespace."""
    if not isinstance(text, str):
        return ''
    s = text.upper()
    s = s.replace('”', '"').replace('“', '"').replace('″', '"')
    s = s.replace('’', "'").replace('′', "'")
    return re.sub(r'\s+', ' ', s).strip()


def extract_caliber(text: str, registry: EquivalenceRegistry = DEFAULT_CALIBER_REGISTRY) -> Optional[str]:
    """
    Canonical caliber from a product name.

    Examples:
        '9MM LUGER 15RD'          -> '9MM LUGER'
        'SW MP SHIELD 9X19'       -> '9MM LUGER'
        'AR15 5.56 NATO 16"'      -> '223 REMINGTON'
        'MARLIN 336 30-30 WIN'    -> '30-30 WIN'
    """
    raw = first_match(CALIBER_RULES, prepare_text(text))
    return registry.canonicalize(raw) if raw else None


def extract_barrel_length(text: str) -> Optional[str]:
    """Barrel length with a trailing inch mark ('4.5"'), or None."""
    return first_match(BARREL_LENGTH_RULES, prepare_text(text))


def extract_capacity(text: str) -> Optional[str]:
    """Round count ('15') or magazine+chamber compound ('10+1'), or None."""
    return first_match(CAPACITY_RULES, prepare_text(text))


def extract_action(text: str) -> Optional[str]:
    return first_match(ACTION_RULES, prepare_text(text))


def extract_firearm_type(text: str) -> Optional[str]:
    return first_match(FIREARM_TYPE_RULES, prepare_text(text))


def extract_name_attributes(
    name: str,
    registry: EquivalenceRegistry = DEFAULT_CALIBER_REGISTRY,
) -> Dict[str, Optional[str]]:
    """
    Run every dimension over one name.

    Returns dict with keys caliber, barrel_length, capacity, action,
    firearm_type; each value is a string or None.
    """
    return {
        'caliber': extract_caliber(name, registry),
        'barrel_length': extract_barrel_length(name),
        'capacity': extract_capacity(name),
        'action': extract_action(name),
        'firearm_type': extract_firearm_type(name),
    }


# ---------------------------------------------------------------------------
# Record analysis
# ---------------------------------------------------------------------------

def _clean_field(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    if not s or s.lower() in ('nan', 'none', 'null'):
        return None
    return s.upper()


def _clean_weight(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        weight = float(value)
    except (TypeError, ValueError):
        return None
    # Feed stores unknown weight as 0; NaN fails the comparison too
    return weight if weight > 0 else None


def analyze_record(record, registry: EquivalenceRegistry = DEFAULT_CALIBER_REGISTRY) -> AttributeSet:
    """
    Build the AttributeSet for one catalog record.

    Never raises: if extraction blows up on a pathological name the record
    still gets an AttributeSet carrying its manufacturer/category/department,
    so it stays matchable on those signals.
    """
    try:
        return _analyze_record_inner(record, registry)
    except Exception:
        logger.warning(
            f"Attribute extraction failed for product {getattr(record, 'product_id', '?')}; "
            "keeping record with no extracted attributes",
            exc_info=True,
        )
        return AttributeSet(
            product_id=record.product_id,
            name=str(record.name or ''),
            manufacturer=_fallback_manufacturer(record.manufacturer),
            category=_clean_field(record.category),
            department=_clean_field(record.department),
            weight=_clean_weight(record.weight),
        )


def _fallback_manufacturer(value: Any) -> Optional[str]:
    """Normalized manufacturer, or the raw upper-cased value if normalization fails too."""
    try:
        return normalize_manufacturer(value or '')
    except Exception:
        return _clean_field(value)


def _analyze_record_inner(record, registry: EquivalenceRegistry) -> AttributeSet:
    """Inner implementation of analyze_record (wrapped by try/except)."""
    name = str(record.name or '')
    attrs = extract_name_attributes(name, registry)
    return AttributeSet(
        product_id=record.product_id,
        name=name,
        caliber=attrs['caliber'],
        barrel_length=attrs['barrel_length'],
        capacity=attrs['capacity'],
        action=attrs['action'],
        firearm_type=attrs['firearm_type'],
        manufacturer=normalize_manufacturer(record.manufacturer or ''),
        category=_clean_field(record.category),
        department=_clean_field(record.department),
        weight=_clean_weight(record.weight),
    )


# ---------------------------------------------------------------------------
# Self-test: extraction rule correctness
# ---------------------------------------------------------------------------

SELF_TEST_CASES: List[Tuple[str, str, Optional[str], str]] = [
    # (name, dimension, expected, description)

    # --- CALIBER ---
    ('GLOCK 19 GEN5 9MM LUGER 15RD', 'caliber', '9MM LUGER', '9MM LUGER canonical'),
    ('SIG P365 9MM 10RD', 'caliber', '9MM LUGER', 'bare 9MM joins 9x19 family'),
    ('CZ 75 B 9X19 16RD', 'caliber', '9MM LUGER', 'metric compound 9X19'),
    ('SW 686 .357 MAG 6" 6RD REVOLVER', 'caliber', '357 MAGNUM', 'leading-dot magnum'),
    ('COLT COBRA 38 SPL 2" REV', 'caliber', '357 MAGNUM', '.38 SPL in .357 family'),
    ('SPRINGFIELD 1911 45ACP 5" 7RD', 'caliber', '45 ACP', 'model number 1911 ignored'),
    ('RUGER 10/22 22LR 18.5" 10RD', 'caliber', '22 LR', 'rimfire joined form'),
    ('PSA AR15 5.56 NATO 16" 30RD RIFLE', 'caliber', '223 REMINGTON', 'decimal NATO'),
    ('SAVAGE 110 6.5 CREEDMOOR 24"', 'caliber', '6.5 CREEDMOOR', 'decimal named cartridge'),
    ('RUGER SUPER REDHAWK 44 REM MAG 7.5" 6RD', 'caliber', '44 MAGNUM', 'two-word magnum suffix'),
    ('MOSSBERG 500 12GA 28" PUMP', 'caliber', '12 GAUGE', 'joined gauge'),
    ('REMINGTON 700 30-06 SPRG 22"', 'caliber', '30-06 SPRINGFIELD', 'hyphen compound'),
    ('TAURUS JUDGE 45LC/410 3" REVOLVER', 'caliber', '45 COLT', 'first of a dual marking'),
    ('SIG P226 LEGION', 'caliber', None, 'model number is not a caliber'),

    # --- BARREL LENGTH ---
    ('GLOCK 17 9MM 4.49" 17RD', 'barrel_length', '4.49"', 'inch mark'),
    ('HENRY BIG BOY 44 MAG 20 INCH', 'barrel_length', '20"', 'word INCH'),
    ('BENELLI M4 12GA 18.5IN', 'barrel_length', '18.5"', 'IN suffix'),
    ('RUGER AMERICAN 308 WIN 22 BBL', 'barrel_length', '22"', 'BBL suffix'),
    ('TAURUS G3C 9MM 12RD', 'barrel_length', None, 'no barrel length'),

    # --- CAPACITY ---
    ('GLOCK 19 9MM LUGER 15RD', 'capacity', '15', 'simple round count'),
    ('MOSSBERG 590A1 12GA 20" 8+1RD', 'capacity', '8+1', 'compound mag+chamber'),
    ('SPRINGFIELD HELLCAT 9MM 11 ROUNDS', 'capacity', '11', 'word ROUNDS'),
    ('RUGER LCP MAX 380 ACP', 'capacity', None, 'no capacity'),

    # --- ACTION ---
    ('BROWNING X-BOLT 6.5 CREEDMOOR BOLT ACTION', 'action', 'BOLT', 'bolt action'),
    ('BERETTA 92FS 9MM DA/SA', 'action', 'DA/SA', 'DA/SA marking'),
    ('SIG P320 9MM STRIKER-FIRED PISTOL', 'action', 'STRIKER-FIRED', 'striker fired'),
    ('SPRINGFIELD M1A 308 SEMI-AUTOMATIC RIFLE', 'action', 'SEMI-AUTO', 'semi-automatic'),
    ('COLT 1911 45 AUTO 5"', 'action', None, '45 AUTO is a cartridge, not an action'),

    # --- FIREARM TYPE ---
    ('GLOCK 19 9MM PISTOL', 'firearm_type', 'PISTOL', 'pistol'),
    ('RUGER 10/22 22 LONG RIFLE CARBINE', 'firearm_type', 'RIFLE', 'carbine not LONG RIFLE'),
    ('HENRY GOLDEN BOY 22 LONG RIFLE', 'firearm_type', None, 'LONG RIFLE is a cartridge'),
    ('REMINGTON 870 12GA SHOTGUN', 'firearm_type', 'SHOTGUN', 'shotgun'),
    ('DANIEL DEFENSE DDM4 V7 AR-15 5.56', 'firearm_type', 'AR-15', 'AR platform'),
]

_EXTRACTORS: Dict[str, Callable[[str], Optional[str]]] = {
    'caliber': extract_caliber,
    'barrel_length': extract_barrel_length,
    'capacity': extract_capacity,
    'action': extract_action,
    'firearm_type': extract_firearm_type,
}


def self_test_extraction() -> List[str]:
    """
    Run built-in sanity checks for the extraction rules.

    Returns a list of failure messages (empty list = all passed).
    """
    failures: List[str] = []
    for name, dimension, expected, description in SELF_TEST_CASES:
        got = _EXTRACTORS[dimension](name)
        if got != expected:
            failures.append(f"{description}: {dimension}({name!r}) -> {got!r}, expected {expected!r}")
    return failures
