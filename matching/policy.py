"""
Purpose: Central configuration for giller matching and transfer pricing.
What it does:

Stores every tunable weight and threshold used by the matching engine:

BASE_SCORE = 50, STATION_MATCH_BONUS = 30, DAY/TIME BONUS = 10
Extended weights: route 50, time 30, rating 15, completion 5
Transfer pricing: bonus 1000, subway fee tiers 1400 / 1600 / 1800 KRW

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

HourRange = Tuple[int, int]


@dataclass(frozen=True)
class MatchingPolicy:
    """
    Central configuration for scoring and ranking gillers.
    """

    # --- Basic scoring (additive) ---
    base_score: int = 50
    station_match_bonus: int = 30
    day_match_bonus: int = 10
    time_match_bonus: int = 10
    # |route hour - request hour| at or below this earns the time bonus
    time_match_hours: int = 1
    high_score_threshold: int = 70

    # --- Extended route match (0-50) ---
    # Scored once for the pickup station and once for the delivery station.
    exact_station_points: float = 25.0
    shared_line_points: float = 20.0
    other_station_points: float = 15.0

    # --- Extended time match (0-30) ---
    # Departure points drop by one every `departure_minutes_per_point` minutes of difference.
    departure_max_points: float = 20.0
    departure_minutes_per_point: float = 3.0
    flexibility_max_points: float = 10.0

    # --- Rating (0-15) ---
    rating_max_points: float = 15.0
    rating_floor: float = 1.0
    rating_ceiling: float = 5.0

    # --- Completion rate (0-5) ---
    completion_max_points: float = 5.0
    # Gillers without any delivery history get half credit
    completion_default_points: float = 2.5

    # --- Congestion by departure hour (inclusive) ---
    high_congestion_hours: Tuple[HourRange, ...] = ((7, 9), (17, 19))
    medium_congestion_hours: HourRange = (9, 17)

    def validate(self) -> None:
        """
        Basic sanity checks.
        """
        if self.time_match_hours < 0:
            raise ValueError("time_match_hours must be >= 0")

        if self.departure_minutes_per_point <= 0:
            raise ValueError("departure_minutes_per_point must be > 0")

        if self.rating_ceiling <= self.rating_floor:
            raise ValueError("rating_ceiling must be greater than rating_floor")


def default_matching_policy() -> MatchingPolicy:
    """
    Convenience factory for the default policy.
    """
    p = MatchingPolicy()
    p.validate()
    return p


@dataclass(frozen=True)
class TransferPricingPolicy:
    """
    Fee model for transfer deliveries (KRW).
    """
    transfer_bonus: int = 1000
    # (minutes strictly above, fee); first matching tier from the top wins
    subway_fee_tiers: Tuple[Tuple[int, int], ...] = ((50, 1800), (30, 1600))
    base_subway_fee: int = 1400
    giller_share: float = 0.9

    walking_buffer_minutes: int = 3
    max_detour_minutes: int = 15
    # travel-time stub used until real segment lookups are wired in
    fixed_segment_minutes: int = 30

    def validate(self) -> None:
        if not 0 < self.giller_share <= 1:
            raise ValueError("giller_share must be in (0, 1]")

        thresholds = [minutes for minutes, _ in self.subway_fee_tiers]
        if thresholds != sorted(thresholds, reverse=True):
            raise ValueError("subway_fee_tiers must be ordered from the longest threshold down")

        if self.walking_buffer_minutes < 0 or self.max_detour_minutes < 0:
            raise ValueError("walking buffer and detour limit must be >= 0")


def default_transfer_pricing_policy() -> TransferPricingPolicy:
    p = TransferPricingPolicy()
    p.validate()
    return p
