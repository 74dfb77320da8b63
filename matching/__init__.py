#Expose the matching pieces:
#Scoring / ranking (basic additive model and the extended weighted model)
#Transfer matching and its pricing model
#Tunable weights live in policy.py

from .engine import (
    MatchResult,
    RouteDetails,
    calculate_matching_score,
    get_top_matches,
    match_gillers_to_request,
    rank_gillers,
)
from .policy import MatchingPolicy, TransferPricingPolicy, default_matching_policy, default_transfer_pricing_policy
from .transfer import (
    StationRoute,
    TransferCandidate,
    TransferMatch,
    TransferMatcher,
    TransferPossibility,
    TransferPricing,
    calculate_transfer_pricing,
    fixed_travel_time,
    pathfinding_travel_time,
)

__all__ = [
    "MatchResult",
    "RouteDetails",
    "match_gillers_to_request",
    "get_top_matches",
    "calculate_matching_score",
    "rank_gillers",
    "MatchingPolicy",
    "TransferPricingPolicy",
    "default_matching_policy",
    "default_transfer_pricing_policy",
    "TransferMatcher",
    "TransferPossibility",
    "TransferPricing",
    "TransferMatch",
    "TransferCandidate",
    "StationRoute",
    "calculate_transfer_pricing",
    "fixed_travel_time",
    "pathfinding_travel_time",
]
