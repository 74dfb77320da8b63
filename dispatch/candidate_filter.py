#Purpose: Non-scoring hard eligibility filtering (rule gates).
#Builds the base candidate set before scoring/ranking.
#Rules:
#route is flagged active
#route runs on the day being matched
#both route stations exist in the station graph
#Output: rule-qualified giller routes with their delivery stats (still not ranked).

from __future__ import annotations

import logging
from typing import Dict, List

from gillers.models import GillerRoute, GillerStats
from stations.graph import StationGraph, StationNotFound
from storage.repository import ROUTES, USERS, Repository

logger = logging.getLogger(__name__)


def load_giller_stats(repository: Repository, giller_id: str) -> GillerStats:
    return GillerStats.from_document(repository.get(USERS, giller_id))


def load_active_routes(repository: Repository, graph: StationGraph) -> List[GillerRoute]:
    """
    Every active route in store order, joined with the giller's stats.
    Routes pointing at stations the graph does not know are skipped.
    """
    stats_by_giller: Dict[str, GillerStats] = {}
    routes = []

    for doc in repository.query(ROUTES, "is_active", "==", True):
        giller_id = doc["giller_id"]
        if giller_id not in stats_by_giller:
            stats_by_giller[giller_id] = load_giller_stats(repository, giller_id)

        try:
            routes.append(GillerRoute.from_document(doc, graph, stats_by_giller[giller_id]))
        except StationNotFound as e:
            logger.warning("Skipping route %s of giller %s: unknown station %s", doc.get("id"), giller_id, e)

    return routes


def build_base_candidates(repository: Repository, graph: StationGraph, day_of_week: int) -> List[GillerRoute]:
    routes = load_active_routes(repository, graph)
    candidates = [route for route in routes if route.runs_on(day_of_week)]
    logger.debug("%s of %s active routes run on day %s", len(candidates), len(routes), day_of_week)
    return candidates
