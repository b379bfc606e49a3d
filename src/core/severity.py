"""Impact levels and page scoring for axe-core violations.

axe-core tags every violation with an impact level. A page score starts at 100
and loses a weighted penalty per violation, so heavier pages sort first in the
dashboard.
"""

from typing import Any, Dict, Iterable, Mapping, Optional

# Impact levels, most severe first
CRITICAL = "critical"  # Blocks access for users with disabilities
SERIOUS = "serious"  # Significant barrier
MODERATE = "moderate"  # Some users will struggle
MINOR = "minor"  # Annoyance, workarounds exist

IMPACT_LEVELS = (CRITICAL, SERIOUS, MODERATE, MINOR)

# Points subtracted from 100 per violation of each impact level
IMPACT_WEIGHTS: Dict[str, int] = {
    CRITICAL: 10,
    SERIOUS: 5,
    MODERATE: 2,
    MINOR: 1,
}

# Largest total penalty a single page can receive
MAX_PENALTY = 90

MAX_SCORE = 100

# Priority order for sorting
IMPACT_ORDER = {level: i for i, level in enumerate(IMPACT_LEVELS)}


def impact_of(violation: Any) -> Optional[str]:
    """Return the impact level of a violation record or raw axe dict."""
    if isinstance(violation, Mapping):
        impact = violation.get("impact")
    else:
        impact = getattr(violation, "impact", None)
    if impact is None:
        return None
    impact = str(impact).lower()
    return impact if impact in IMPACT_WEIGHTS else None


def count_by_impact(violations: Iterable[Any]) -> Dict[str, int]:
    """Count violations per impact level.

    Violations without a recognised impact are not counted in any bucket.
    """
    counts = {level: 0 for level in IMPACT_LEVELS}
    for violation in violations:
        impact = impact_of(violation)
        if impact is not None:
            counts[impact] += 1
    return counts


def compute_penalty(counts: Mapping[str, int], weights: Optional[Mapping[str, int]] = None) -> int:
    weights = weights or IMPACT_WEIGHTS
    return sum(weights.get(level, 0) * max(0, counts.get(level, 0)) for level in IMPACT_LEVELS)


def compute_score(
    counts: Mapping[str, int],
    weights: Optional[Mapping[str, int]] = None,
    max_penalty: int = MAX_PENALTY,
) -> int:
    """Compute the 0-100 page score from per-impact violation counts.

    The penalty is capped at ``max_penalty`` before it is subtracted and the
    result is floored at zero.

    Args:
        counts: Mapping of impact level to number of violations
        weights: Optional override of IMPACT_WEIGHTS
        max_penalty: Cap applied to the summed penalty

    Returns:
        Integer score between 0 and 100
    """
    penalty = compute_penalty(counts, weights)
    cap = max(0, max_penalty)
    return max(0, MAX_SCORE - min(cap, penalty))


def violations_by_rule(violations: Iterable[Any]) -> Dict[str, int]:
    """Number of affected nodes per axe rule id."""
    out: Dict[str, int] = {}
    for violation in violations:
        if isinstance(violation, Mapping):
            rule_id = violation.get("id")
            nodes = violation.get("nodes") or []
        else:
            rule_id = getattr(violation, "id", None)
            nodes = getattr(violation, "nodes", None) or []
        if not rule_id:
            continue
        out[rule_id] = out.get(rule_id, 0) + max(1, len(nodes))
    return out


def sort_by_impact(violations: Iterable[Any]) -> list:
    """Sort violations by impact (critical first, unknown last)."""
    return sorted(
        violations,
        key=lambda v: IMPACT_ORDER.get(impact_of(v), len(IMPACT_LEVELS)),
    )
