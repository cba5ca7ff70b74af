"""
Main decision engine for hospital routing.

This module combines the disqualification filter, the component scorers and
the acuity-based weighting into a suitability score per hospital, and orders
hospitals into a ranked recommendation list.
"""

import logging
import math
from datetime import datetime
from typing import Any, Iterable, List, Optional

from ems_routing.core.decision.disqualification import check_disqualification
from ems_routing.core.models import (
    EmergencyCase,
    Hospital,
    ScoreBreakdown,
    ScoreResult,
    WeightProfile,
    utcnow,
)
from ems_routing.core.normalizer import normalize_case, normalize_hospital
from ems_routing.core.profiles import get_profile
from ems_routing.core.scoring.components import (
    freshness_multiplier,
    score_beds,
    score_capability,
    score_distance,
    score_equipment,
    score_load,
    score_specialists,
)
from ems_routing.core.scoring.weights import get_weight_profile, golden_hour_state
from ems_routing.utils.geolocation import (
    estimate_eta_minutes,
    pickup_distance_km,
    round_half_up,
    round_tenth,
)
from ems_routing.utils.timestamps import to_datetime

logger = logging.getLogger(__name__)

DEFAULT_REJECTION_PENALTY = 0.85

VERY_CLOSE_KM = 5
NEARBY_KM = 15


def aggregate_score(
    factor_scores: dict, weights: WeightProfile, multiplier: float
) -> int:
    """
    Weighted sum of factor scores scaled by the freshness multiplier.

    A non-finite result falls back to the unweighted mean of the finite
    factor scores, or 0 if none are finite.

    Args:
        factor_scores: Factor name -> score, keyed like WeightProfile fields.
        weights: Weight profile in effect.
        multiplier: Data freshness multiplier.

    Returns:
        Score rounded to an integer in [0, 100].
    """
    weighted = sum(
        score * getattr(weights, factor) for factor, score in factor_scores.items()
    )
    final = weighted * multiplier

    if not math.isfinite(final):
        finite = [s for s in factor_scores.values() if math.isfinite(s)]
        fallback = sum(finite) / len(finite) if finite else 0.0
        logger.warning(
            f"Non-finite weighted score ({final}); falling back to mean of "
            f"{len(finite)} finite factor scores ({fallback:.1f})"
        )
        final = fallback

    return max(0, min(100, round_half_up(final)))


def score_hospital(
    hospital: Any, case: Any, now: Optional[datetime] = None
) -> ScoreResult:
    """
    Score one hospital for one case.

    Never raises on bad data: raw records are normalized first and a
    disqualified hospital comes back with score 0 and its reasons.

    Args:
        hospital: Hospital or raw hospital record.
        case: EmergencyCase or raw case record.
        now: Reference time for golden hour and freshness, defaults to now.

    Returns:
        ScoreResult for the hospital.
    """
    hospital = normalize_hospital(hospital)
    case = normalize_case(case)
    now = to_datetime(now) or utcnow()
    profile = get_profile(case.emergency_type)

    raw_distance = pickup_distance_km(case.pickup_location, hospital.location)
    distance_km = round_tenth(raw_distance)
    eta_minutes = estimate_eta_minutes(raw_distance)

    disqualify_reasons = check_disqualification(hospital, case, profile)
    if disqualify_reasons:
        return ScoreResult(
            hospital_id=hospital.hospital_id,
            hospital_name=hospital.name,
            suitability_score=0,
            distance_km=distance_km,
            eta_minutes=eta_minutes,
            disqualified=True,
            disqualify_reasons=disqualify_reasons,
            trauma_level=hospital.trauma_level,
        )

    golden_hour = golden_hour_state(case, now)
    weights = get_weight_profile(case.acuity_level, golden_hour.modifier)

    capability = score_capability(hospital, case, profile)
    specialists = score_specialists(hospital, profile)
    equipment = score_equipment(hospital, case, profile)
    beds = score_beds(hospital, profile)
    load = score_load(hospital)
    distance = score_distance(raw_distance)
    multiplier, freshness_reason = freshness_multiplier(
        hospital.capacity_last_updated, now
    )

    factor_scores = {
        "capability": capability.score,
        "specialists": specialists.score,
        "equipment": equipment.score,
        "beds": beds.score,
        "load": load.score,
        "distance": distance,
    }
    final_score = aggregate_score(factor_scores, weights, multiplier)

    reasons = capability.reasons[:2] + specialists.reasons[:1] + beds.reasons[:2]
    if raw_distance <= VERY_CLOSE_KM:
        reasons.append(f"Very close ({distance_km} km)")
    elif raw_distance <= NEARBY_KM:
        reasons.append(f"Nearby ({round_half_up(raw_distance)} km)")
    if golden_hour.in_golden_hour:
        reasons.append(f"Golden hour: {golden_hour.minutes_remaining}min remaining")
    if golden_hour.escalation_boost > 0:
        reasons.append("Proximity prioritized after escalation")
    if freshness_reason:
        reasons.append(freshness_reason)

    logger.debug(
        f"Scored {hospital.name} for case {case.case_id}: {final_score} "
        f"(factors={factor_scores}, freshness={multiplier})"
    )

    return ScoreResult(
        hospital_id=hospital.hospital_id,
        hospital_name=hospital.name,
        suitability_score=final_score,
        distance_km=distance_km,
        eta_minutes=eta_minutes,
        disqualified=False,
        score_breakdown=ScoreBreakdown(
            capability=capability.score,
            specialists=specialists.score,
            equipment=equipment.score,
            beds=beds.score,
            load=load.score,
            load_penalty=load.penalty,
            distance=distance,
            freshness_multiplier=multiplier,
            icu_count=beds.count,
            specialist_count=specialists.count,
        ),
        weights=weights,
        golden_hour=golden_hour,
        recommendation_reasons=[r for r in reasons if r],
        trauma_level=hospital.trauma_level,
    )


def tie_break_key(result: ScoreResult):
    """Sort key: higher score, then shorter distance, more ICU beds, more specialists."""
    return (
        -result.suitability_score,
        result.distance_km,
        -result.score_breakdown.icu_count,
        -result.score_breakdown.specialist_count,
    )


def order_results(results: Iterable[ScoreResult]) -> List[ScoreResult]:
    """Qualified results in tie-break order, then disqualified ones in input order."""
    results = list(results)
    qualified = sorted((r for r in results if not r.disqualified), key=tie_break_key)
    disqualified = [r for r in results if r.disqualified]
    return qualified + disqualified


def rank_hospitals(
    hospitals: Iterable[Any], case: Any, now: Optional[datetime] = None
) -> List[ScoreResult]:
    """
    Score and rank hospitals for a case.

    Args:
        hospitals: Hospitals or raw hospital records.
        case: EmergencyCase or raw case record.
        now: Reference time, defaults to now.

    Returns:
        Qualified hospitals sorted best first, with disqualified hospitals appended.
    """
    hospitals = list(hospitals or [])
    if not hospitals:
        return []

    case = normalize_case(case)
    now = to_datetime(now) or utcnow()
    scored = [score_hospital(h, case, now) for h in hospitals]
    ranked = order_results(scored)

    qualified = sum(1 for r in ranked if not r.disqualified)
    logger.info(
        f"Ranked {len(ranked)} hospitals for case {case.case_id} "
        f"({qualified} qualified, {len(ranked) - qualified} disqualified)"
    )
    return ranked


def get_top_recommendations(
    hospitals: Iterable[Any], case: Any, n: int = 3, now: Optional[datetime] = None
) -> List[ScoreResult]:
    """Top n qualified hospitals for a case."""
    ranked = rank_hospitals(hospitals, case, now)
    return [r for r in ranked if not r.disqualified][: max(0, n)]


def get_best_match(
    hospitals: Iterable[Any], case: Any, now: Optional[datetime] = None
) -> Optional[ScoreResult]:
    """Best qualified hospital for a case, or None."""
    top = get_top_recommendations(hospitals, case, 1, now)
    return top[0] if top else None


def apply_rejection_penalty(
    results: Iterable[ScoreResult],
    rejected_hospital_ids: Iterable[str],
    multiplier: float = DEFAULT_REJECTION_PENALTY,
) -> List[ScoreResult]:
    """
    Disfavor hospitals that already rejected the case and re-sort.

    Rejecting hospitals stay eligible; their score is multiplied by the penalty
    and rounded, and the original score is kept on the result. Other scores
    are left unchanged.

    Args:
        results: Ranked or unranked score results.
        rejected_hospital_ids: Hospitals with a rejected notification for the case.
        multiplier: Penalty multiplier.

    Returns:
        Re-sorted results.
    """
    rejected = set(rejected_hospital_ids)
    penalized = []
    for result in results:
        if result.disqualified or result.hospital_id not in rejected:
            penalized.append(result)
            continue
        new_score = max(0, min(100, round_half_up(result.suitability_score * multiplier)))
        penalized.append(
            result.model_copy(
                update={
                    "suitability_score": new_score,
                    "original_score": result.suitability_score,
                    "rejection_penalty_applied": True,
                    "recommendation_reasons": result.recommendation_reasons
                    + ["Previously rejected this case"],
                }
            )
        )
    return order_results(penalized)
