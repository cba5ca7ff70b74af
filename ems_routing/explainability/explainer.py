"""
Generates dispatcher-facing explanations for hospital scores.

This module turns a ScoreResult into a plain dictionary summarizing the factors
behind a hospital's suitability score, so the routing dashboard and the CLI can
show why a hospital ranks where it does or why it was skipped.
"""

import logging
from typing import Any, Dict, List

from ems_routing.core.models import ScoreResult

logger = logging.getLogger(__name__)

FACTOR_LABELS = {
    "capability": "Clinical capability",
    "specialists": "Specialists on duty",
    "equipment": "Equipment",
    "beds": "Bed availability",
    "load": "Operational load",
    "distance": "Distance",
}


def _factor_lines(result: ScoreResult) -> List[Dict[str, Any]]:
    breakdown = result.score_breakdown
    weights = result.weights
    lines = []
    for factor, label in FACTOR_LABELS.items():
        score = getattr(breakdown, factor)
        weight = getattr(weights, factor) if weights is not None else 0.0
        lines.append(
            {
                "factor": factor,
                "label": label,
                "score": score,
                "weight": round(weight, 3),
                "contribution": round(score * weight, 2),
            }
        )
    lines.sort(key=lambda line: line["contribution"], reverse=True)
    return lines


def generate_score_explanation(result: ScoreResult) -> Dict[str, Any]:
    """
    Generates a simplified, human-readable explanation for one hospital score.

    Args:
        result: Scored hospital.

    Returns:
        A dictionary with:
            - "hospital": Hospital name and id.
            - "headline": One-line summary.
            - "factors": Weighted factor contributions, largest first (empty if disqualified).
            - "reasons": Recommendation reasons or disqualification reasons.
            - "warnings": Stale data, diversion and rejection penalty notes.
    """
    hospital = f"{result.hospital_name} ({result.hospital_id})"

    if result.disqualified:
        return {
            "hospital": hospital,
            "headline": f"{result.hospital_name} was skipped: "
            + "; ".join(result.disqualify_reasons),
            "score": 0,
            "factors": [],
            "reasons": list(result.disqualify_reasons),
            "warnings": [],
        }

    warnings = []
    multiplier = result.score_breakdown.freshness_multiplier
    if multiplier < 1.0:
        warnings.append(f"Capacity data is stale; score scaled by {multiplier:.2f}")
    if result.score_breakdown.load_penalty >= 50:
        warnings.append("Hospital is under heavy operational load")
    if result.rejection_penalty_applied:
        warnings.append(
            f"Hospital already rejected this case; score reduced from {result.original_score}"
        )

    headline = (
        f"{result.hospital_name} scores {result.suitability_score}/100, "
        f"{result.distance_km} km away (about {result.eta_minutes} min)"
    )
    if result.golden_hour.in_golden_hour:
        headline += f", {result.golden_hour.minutes_remaining} min of golden hour left"

    logger.debug(f"Explained score for {hospital}: {result.suitability_score}")

    return {
        "hospital": hospital,
        "headline": headline,
        "score": result.suitability_score,
        "factors": _factor_lines(result),
        "reasons": list(result.recommendation_reasons),
        "warnings": warnings,
    }
