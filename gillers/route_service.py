"""
Purpose: Registration and upkeep of a giller's commute routes.
What it does:
- Validates new and edited routes: input checks, the per-giller active route
  limit, exact duplicates (error) and near-simultaneous departures (warning).
- Persists routes to the routes collection in the shape the matching side
  reads back with GillerRoute.from_document.
- Serves per-giller, per-day and per-station route lists through a TTLCache
  and clears the affected keys on every write.

Cache keys:
    route:<id>, userRoutes:<giller>:all, userRoutes:<giller>:active,
    stationRoutes:<station>

Rule: Only the owning giller can read, edit or delete a route. Validation
reads then writes, so two concurrent registrations can both pass the limit.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from common.timeutil import as_aware, local_now, parse_hhmm
from routing.route_validator import (
    RouteSlot,
    RouteValidationPolicy,
    ValidationResult,
    check_route_overlap,
    default_route_validation_policy,
    find_time_conflicts,
    validate_route_input,
)
from stations.graph import StationGraph, StationNotFound
from storage.cache import TTLCache
from storage.repository import ROUTES, USERS, Repository

from .models import GillerRoute, GillerStats

logger = logging.getLogger(__name__)

ROUTE_CACHE_TTL_SECONDS = 5 * 60
USER_ROUTES_CACHE_TTL_SECONDS = 2 * 60

DAY_LABELS = {1: "월", 2: "화", 3: "수", 4: "목", 5: "금", 6: "토", 7: "일"}

DUPLICATE_ROUTE_MESSAGE = "같은 시간에 이미 등록된 동선입니다."


class RouteValidationError(ValueError):
    """Raised when a route cannot be saved. `errors` holds the user-facing messages."""

    def __init__(self, errors: Iterable[str]):
        self.errors = list(errors)
        super().__init__(f"경로 유효성 검사 실패: {', '.join(self.errors)}")


def describe_route(route: GillerRoute) -> str:
    days = ", ".join(DAY_LABELS[day] for day in sorted(route.days_of_week) if day in DAY_LABELS)
    return f"{route.start_station.name} → {route.end_station.name} ({route.departure_time}, {days})"


def _slot(route: GillerRoute) -> RouteSlot:
    return RouteSlot(
        start_station_id=route.start_station.station_id,
        end_station_id=route.end_station.station_id,
        departure_time=route.departure_time,
        days_of_week=route.days_of_week,
        route_id=route.route_id,
    )


def _created_sort_key(doc: Dict[str, Any]) -> float:
    created_at = doc.get("created_at")
    if isinstance(created_at, datetime):
        return as_aware(created_at).timestamp()
    return 0.0


class RouteService:
    def __init__(
        self,
        repository: Repository,
        graph: StationGraph,
        cache: Optional[TTLCache] = None,
        policy: Optional[RouteValidationPolicy] = None,
        clock: Callable[[], datetime] = local_now,
    ):
        self.repository = repository
        self.graph = graph
        self.cache = cache or TTLCache()
        self.policy = policy or default_route_validation_policy()
        self.clock = clock

    # --- Validation ---

    def validate_route_for_create(
        self,
        giller_id: str,
        start_station_id: str,
        end_station_id: str,
        departure_time: str,
        days_of_week: Iterable[int],
    ) -> ValidationResult:
        days = frozenset(days_of_week)
        base = validate_route_input(
            self.graph.get_station(start_station_id),
            self.graph.get_station(end_station_id),
            departure_time,
            days,
            self.policy,
        )
        if not base.is_valid:
            return base

        errors = list(base.errors)
        warnings = list(base.warnings)

        active = self.get_user_active_routes(giller_id)
        limit = self.policy.max_active_routes
        if len(active) >= limit:
            errors.append(f"동선을 더 이상 등록할 수 없습니다. 최대 {limit}개까지 등록 가능합니다. (현재: {len(active)}개)")
            return ValidationResult(is_valid=False, errors=errors, warnings=warnings)
        if len(active) == limit - 1:
            warnings.append(f"동선이 {len(active)}개입니다. 최대 {limit}개까지 등록 가능하며, 이후에는 더 이상 등록할 수 없습니다.")

        new_slot = RouteSlot(start_station_id, end_station_id, departure_time, days)
        self._check_against(new_slot, active, errors, warnings)
        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)

    def validate_route_for_update(
        self,
        giller_id: str,
        route_id: str,
        start_station_id: str,
        end_station_id: str,
        departure_time: str,
        days_of_week: Iterable[int],
    ) -> ValidationResult:
        """
        Same checks as for a new route, minus the count limit, ignoring the
        route being edited.
        """
        days = frozenset(days_of_week)
        base = validate_route_input(
            self.graph.get_station(start_station_id),
            self.graph.get_station(end_station_id),
            departure_time,
            days,
            self.policy,
        )
        if not base.is_valid:
            return base

        errors = list(base.errors)
        warnings = list(base.warnings)
        others = [route for route in self.get_user_active_routes(giller_id) if route.route_id != route_id]

        new_slot = RouteSlot(start_station_id, end_station_id, departure_time, days, route_id=route_id)
        self._check_against(new_slot, others, errors, warnings)
        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)

    def find_overlapping_routes(
        self,
        giller_id: str,
        departure_time: str,
        days_of_week: Iterable[int],
    ) -> List[GillerRoute]:
        """
        Active routes of the giller departing within the overlap window on a shared day.
        """
        requested = RouteSlot("", "", departure_time, frozenset(days_of_week))
        return self._time_conflicts(requested, self.get_user_active_routes(giller_id))

    def _check_against(
        self,
        new_slot: RouteSlot,
        routes: List[GillerRoute],
        errors: List[str],
        warnings: List[str],
    ) -> None:
        if check_route_overlap(new_slot, [_slot(route) for route in routes]):
            errors.append(DUPLICATE_ROUTE_MESSAGE)
            return

        conflicts = self._time_conflicts(new_slot, routes)
        if conflicts:
            listing = "\n".join(f"• {describe_route(route)}" for route in conflicts)
            warnings.append(f"시간대가 겹치는 동선이 있습니다.\n{listing}")

    def _time_conflicts(self, new_slot: RouteSlot, routes: List[GillerRoute]) -> List[GillerRoute]:
        by_id = {route.route_id: route for route in routes}
        conflicts = find_time_conflicts(new_slot, [_slot(route) for route in routes], self.policy.overlap_window_minutes)
        return [by_id[slot.route_id] for slot in conflicts]

    # --- Create ---

    def create_route(
        self,
        giller_id: str,
        start_station_id: str,
        end_station_id: str,
        departure_time: str,
        days_of_week: Iterable[int],
    ) -> GillerRoute:
        """
        Validate and store a new active route. Raises RouteValidationError
        with every blocking message when validation fails.
        """
        days = frozenset(days_of_week)
        result = self.validate_route_for_create(giller_id, start_station_id, end_station_id, departure_time, days)
        if not result.is_valid:
            raise RouteValidationError(result.errors)
        for warning in result.warnings:
            logger.info("Route warning for giller %s: %s", giller_id, warning)

        route = GillerRoute.new(
            giller_id,
            self.graph.require_station(start_station_id),
            self.graph.require_station(end_station_id),
            departure_time,
            days,
            stats=self._stats(giller_id),
        )
        now = self.clock()
        doc = route.to_document()
        doc["created_at"] = now
        doc["updated_at"] = now
        route_id = self.repository.create(ROUTES, doc)

        self._invalidate(giller_id)
        logger.info("Giller %s registered route %s (%s)", giller_id, route_id, describe_route(route))
        return dataclasses.replace(route, route_id=route_id)

    # --- Read ---

    def get_route(self, route_id: str, giller_id: str) -> Optional[GillerRoute]:
        """
        The route, or None when it does not exist or belongs to someone else.
        """
        cache_key = f"route:{route_id}"
        route = self.cache.get(cache_key)
        if route is None:
            doc = self.repository.get(ROUTES, route_id)
            if doc is None:
                return None
            route = GillerRoute.from_document(doc, self.graph, self._stats(doc["giller_id"]))
            self.cache.set(cache_key, route, ROUTE_CACHE_TTL_SECONDS)

        if route.giller_id != giller_id:
            logger.warning("Giller %s asked for route %s owned by %s", giller_id, route_id, route.giller_id)
            return None
        return route

    def get_user_routes(self, giller_id: str) -> List[GillerRoute]:
        """Newest first."""
        cache_key = f"userRoutes:{giller_id}:all"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        docs = self.repository.query(ROUTES, "giller_id", "==", giller_id)
        docs.sort(key=_created_sort_key, reverse=True)
        routes = self._resolve(docs, self._stats(giller_id))
        self.cache.set(cache_key, routes, USER_ROUTES_CACHE_TTL_SECONDS)
        return routes

    def get_user_active_routes(self, giller_id: str) -> List[GillerRoute]:
        cache_key = f"userRoutes:{giller_id}:active"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        routes = [route for route in self.get_user_routes(giller_id) if route.is_active]
        self.cache.set(cache_key, routes, USER_ROUTES_CACHE_TTL_SECONDS)
        return routes

    def get_active_routes_for_day(self, giller_id: str, day_of_week: int) -> List[GillerRoute]:
        if not 1 <= day_of_week <= 7:
            raise ValueError("요일은 1-7 사이여야 합니다.")
        return [route for route in self.get_user_active_routes(giller_id) if route.runs_on(day_of_week)]

    def get_routes_by_station(self, station_id: str) -> List[GillerRoute]:
        """
        Active routes of every giller starting or ending at `station_id`.
        """
        cache_key = f"stationRoutes:{station_id}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        docs = [
            doc
            for doc in self.repository.query(ROUTES, "is_active", "==", True)
            if station_id in (doc.get("start_station_id"), doc.get("end_station_id"))
        ]
        routes = self._resolve(docs)
        self.cache.set(cache_key, routes, ROUTE_CACHE_TTL_SECONDS)
        return routes

    # --- Update / delete ---

    def update_route(
        self,
        route_id: str,
        giller_id: str,
        start_station_id: Optional[str] = None,
        end_station_id: Optional[str] = None,
        departure_time: Optional[str] = None,
        days_of_week: Optional[Iterable[int]] = None,
        is_active: Optional[bool] = None,
    ) -> Optional[GillerRoute]:
        """
        Apply the given fields. Returns None when the route is missing or not
        owned by `giller_id`; raises ValueError on invalid values.
        """
        existing = self.get_route(route_id, giller_id)
        if existing is None:
            return None

        patch: Dict[str, Any] = {"updated_at": self.clock()}

        if start_station_id is not None:
            patch["start_station_id"] = self.graph.require_station(start_station_id).station_id
        if end_station_id is not None:
            patch["end_station_id"] = self.graph.require_station(end_station_id).station_id

        if departure_time is not None:
            try:
                parse_hhmm(departure_time)
            except ValueError:
                raise ValueError("출발 시간 형식이 올바르지 않습니다. (HH:mm)") from None
            patch["departure_time"] = departure_time

        if days_of_week is not None:
            days = sorted(set(days_of_week))
            if not days or any(day < 1 or day > 7 for day in days):
                raise ValueError("운영 요일이 올바르지 않습니다.")
            patch["days_of_week"] = days

        if is_active is not None:
            if is_active and not existing.is_active:
                active = self.get_user_active_routes(giller_id)
                if len(active) >= self.policy.max_active_routes:
                    raise RouteValidationError(
                        [f"동선을 더 이상 활성화할 수 없습니다. 최대 {self.policy.max_active_routes}개까지 가능합니다."]
                    )
            patch["is_active"] = is_active

        self.repository.update(ROUTES, route_id, patch)
        self._invalidate(giller_id, route_id)
        logger.info("Giller %s updated route %s: %s", giller_id, route_id, sorted(patch))
        return self.get_route(route_id, giller_id)

    def activate_route(self, route_id: str, giller_id: str) -> Optional[GillerRoute]:
        return self.update_route(route_id, giller_id, is_active=True)

    def deactivate_route(self, route_id: str, giller_id: str) -> Optional[GillerRoute]:
        return self.update_route(route_id, giller_id, is_active=False)

    def delete_route(self, route_id: str, giller_id: str) -> bool:
        if self.get_route(route_id, giller_id) is None:
            return False

        deleted = self.repository.delete(ROUTES, route_id)
        self._invalidate(giller_id, route_id)
        logger.info("Giller %s deleted route %s", giller_id, route_id)
        return deleted

    # --- Cache management ---

    def clear_route_cache(self, giller_id: Optional[str] = None) -> None:
        if giller_id:
            self.cache.clear(f"^userRoutes:{re.escape(giller_id)}:")
        else:
            self.cache.clear()

    def _invalidate(self, giller_id: str, route_id: Optional[str] = None) -> None:
        if route_id:
            self.cache.clear(f"^route:{re.escape(route_id)}$")
        self.cache.clear(f"^userRoutes:{re.escape(giller_id)}:")
        self.cache.clear("^stationRoutes:")

    # --- Internal helpers ---

    def _stats(self, giller_id: str) -> GillerStats:
        return GillerStats.from_document(self.repository.get(USERS, giller_id))

    def _resolve(self, docs: List[Dict[str, Any]], stats: Optional[GillerStats] = None) -> List[GillerRoute]:
        routes = []
        for doc in docs:
            try:
                routes.append(GillerRoute.from_document(doc, self.graph, stats or self._stats(doc["giller_id"])))
            except StationNotFound as e:
                logger.warning("Skipping route %s of giller %s: unknown station %s", doc.get("id"), doc.get("giller_id"), e)
        return routes
