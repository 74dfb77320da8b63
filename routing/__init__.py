#Marks routing as a package.
#Re-exports the public routing API (pathfinding engine, route validator)
#so other modules import from routing without knowing internal file names.
#No business logic.

from .pathfinding import EtaResult, PathfindingEngine, PathfindingError, PathResult
from .route_validator import (
    RouteSlot,
    RouteValidationPolicy,
    ValidationResult,
    check_route_overlap,
    default_route_validation_policy,
    estimate_travel_time,
    find_time_conflicts,
    validate_route_input,
)

__all__ = [
    "PathfindingEngine",
    "PathfindingError",
    "PathResult",
    "EtaResult",
    "validate_route_input",
    "estimate_travel_time",
    "check_route_overlap",
    "find_time_conflicts",
    "RouteSlot",
    "RouteValidationPolicy",
    "ValidationResult",
    "default_route_validation_policy",
]
