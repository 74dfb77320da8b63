"""
Gillers domain package.

Public API:
- GillerRoute: a commuter's registered subway route with delivery stats
- GillerStats: rating / delivery counters read from the users collection
- RouteService: validated registration, lookup and upkeep of giller routes
"""
from .models import GillerRoute, GillerStats
from .route_service import RouteService, RouteValidationError

__all__ = ["GillerRoute", "GillerStats", "RouteService", "RouteValidationError"]
