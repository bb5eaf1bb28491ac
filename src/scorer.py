"""
Similarity scoring between two AttributeSets.

Strictly additive: each signal contributes its weight once and appends one
reason string, in evaluation order. A signal fires only when both sides
carry the attribute; absence never counts as agreement.
"""

from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from equivalence import DEFAULT_CALIBER_REGISTRY, EquivalenceRegistry
from extractor import AttributeSet

# ---------------------------------------------------------------------------
# Signal weights
# ---------------------------------------------------------------------------

# Replaces the manufacturer, caliber and type signals for the same pair.
# Must stay >= their sum (190) or a third agreeing signal would lower the score.
WEIGHT_PERFECT_MATCH = 360
WEIGHT_CALIBER = 80
WEIGHT_FIREARM_TYPE = 60
WEIGHT_MANUFACTURER = 50
WEIGHT_CATEGORY = 40
WEIGHT_DEPARTMENT = 30
WEIGHT_ACTION = 25
WEIGHT_BARREL_LENGTH = 20
WEIGHT_CAPACITY = 15
WEIGHT_WEIGHT = 10

BARREL_TOLERANCE_INCHES = 1.0
CAPACITY_TOLERANCE_ROUNDS = 3
WEIGHT_TOLERANCE_RATIO = 0.20   # of the two weights' mean
# Tolerance bounds are inclusive; absorbs float error like 1.1 - 0.9 = 0.20000000000000007
TOLERANCE_EPSILON = 1e-9

REASON_PERFECT_MATCH = 'Perfect match (manufacturer + caliber + type)'
REASON_MANUFACTURER = 'Same manufacturer'
REASON_CALIBER = 'Compatible caliber'
REASON_FIREARM_TYPE = 'Same firearm type'
REASON_CATEGORY = 'Same category'
REASON_DEPARTMENT = 'Same department'
REASON_BARREL_LENGTH = 'Similar barrel length'
REASON_CAPACITY = 'Similar capacity'
REASON_ACTION = 'Same action type'
REASON_WEIGHT = 'Similar weight'


@dataclass(frozen=True)
class SimilarityScore:
    product_id: Any
    score: int
    reasons: Tuple[str, ...] = ()


def _same(a: Optional[str], b: Optional[str]) -> bool:
    return a is not None and b is not None and a == b


def _within(a: Optional[float], b: Optional[float], tolerance: float) -> bool:
    if a is None or b is None:
        return False
    return abs(a - b) <= tolerance + TOLERANCE_EPSILON


def _similar_weight(a: Optional[float], b: Optional[float]) -> bool:
    if a is None or b is None:
        return False
    mean = (a + b) / 2
    return mean > 0 and abs(a - b) <= mean * WEIGHT_TOLERANCE_RATIO + TOLERANCE_EPSILON


def score_similarity(
    target: AttributeSet,
    candidate: AttributeSet,
    registry: EquivalenceRegistry = DEFAULT_CALIBER_REGISTRY,
) -> SimilarityScore:
    """
    Score `candidate` against `target`.

    Which signals fire does not depend on argument order; the result is
    labelled with the candidate's ID.

    Examples:
        Same maker, 9MM vs 9MM LUGER, both pistols:
            -> 360, ['Perfect match (manufacturer + caliber + type)']
        Same maker only:
            -> 50, ['Same manufacturer']
    """
    score = 0
    reasons: List[str] = []

    same_maker = _same(target.manufacturer, candidate.manufacturer)
    compatible_caliber = registry.are_compatible(target.caliber, candidate.caliber)
    same_type = _same(target.firearm_type, candidate.firearm_type)

    if same_maker and compatible_caliber and same_type:
        score += WEIGHT_PERFECT_MATCH
        reasons.append(REASON_PERFECT_MATCH)
    else:
        if same_maker:
            score += WEIGHT_MANUFACTURER
            reasons.append(REASON_MANUFACTURER)
        if compatible_caliber:
            score += WEIGHT_CALIBER
            reasons.append(REASON_CALIBER)
        if same_type:
            score += WEIGHT_FIREARM_TYPE
            reasons.append(REASON_FIREARM_TYPE)

    if _same(target.category, candidate.category):
        score += WEIGHT_CATEGORY
        reasons.append(REASON_CATEGORY)

    if _same(target.department, candidate.department):
        score += WEIGHT_DEPARTMENT
        reasons.append(REASON_DEPARTMENT)

    if _within(target.barrel_inches, candidate.barrel_inches, BARREL_TOLERANCE_INCHES):
        score += WEIGHT_BARREL_LENGTH
        reasons.append(REASON_BARREL_LENGTH)

    target_rounds = target.capacity_rounds
    candidate_rounds = candidate.capacity_rounds
    if _within(target_rounds, candidate_rounds, CAPACITY_TOLERANCE_ROUNDS):
        score += WEIGHT_CAPACITY
        reasons.append(REASON_CAPACITY)

    if _same(target.action, candidate.action):
        score += WEIGHT_ACTION
        reasons.append(REASON_ACTION)

    if _similar_weight(target.weight, candidate.weight):
        score += WEIGHT_WEIGHT
        reasons.append(REASON_WEIGHT)

    return SimilarityScore(product_id=candidate.product_id, score=score, reasons=tuple(reasons))
