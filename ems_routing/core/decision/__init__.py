"""
Decision Engine components for hospital routing.

This package contains the disqualification filter and the ranking engine that
turns component scores into an ordered list of hospital recommendations.
"""

from ems_routing.core.decision.engine import (
    get_best_match,
    get_top_recommendations,
    rank_hospitals,
    score_hospital,
)
