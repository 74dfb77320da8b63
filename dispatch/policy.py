"""
Purpose: Central configuration for the matching orchestrator and retry scheduler.
What it does:

Stores the tunable limits and timings for dispatching matches:

TOP_N = 5, PROCESS_TOP_N = 3, RESULTS_LIMIT = 10
MAX_RETRIES = 3, BASE_DELAY_SECONDS = 2.0 (2s, 4s, 8s ...)
AUTO_RETRY_TIMEOUT_SECONDS = 30, MONITOR_INTERVAL_SECONDS = 60

Values can be overridden from the environment (.env is loaded first):

MATCHING_TOP_N, MATCHING_MAX_RETRIES, MATCHING_BASE_DELAY_SECONDS,
MATCHING_AUTO_RETRY_TIMEOUT_SECONDS, MATCHING_MONITOR_INTERVAL_SECONDS,
PUSH_API_URL, PUSH_TIMEOUT_SECONDS

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Optional

from dotenv import load_dotenv


@dataclass(frozen=True)
class DispatchPolicy:
    """
    Central configuration for matching dispatch and retries.
    """

    # --- Ranking ---
    top_n: int = 5
    # How many candidates get a MatchRecord and a notification
    process_top_n: int = 3
    results_limit: int = 10
    # Fee shown for the first ranked giller when a request has none stored
    default_base_fee: int = 3000
    # Each lower rank adds this share of the base fee
    rank_fee_step: float = 0.1

    # --- Retry backoff ---
    max_retries: int = 3
    base_delay_seconds: float = 2.0
    auto_retry_timeout_seconds: float = 30.0

    # --- Status monitor ---
    monitor_interval_seconds: float = 60.0
    # Only requests created within this window are swept
    monitor_lookback_seconds: float = 5 * 60
    # ... and only once they have waited at least this long
    stale_after_seconds: float = 30.0

    # --- Fan-out ---
    max_workers: int = 4

    # --- Push ---
    push_api_url: Optional[str] = None
    push_timeout_seconds: float = 5.0

    def validate(self) -> None:
        """
        Basic sanity checks.
        """
        if min(self.top_n, self.process_top_n, self.results_limit) <= 0:
            raise ValueError("top-N limits must be > 0")

        if self.max_retries <= 0:
            raise ValueError("max_retries must be > 0")

        if self.base_delay_seconds < 0 or self.auto_retry_timeout_seconds < 0:
            raise ValueError("delays must be >= 0")

        if self.monitor_interval_seconds <= 0:
            raise ValueError("monitor_interval_seconds must be > 0")

        if self.stale_after_seconds > self.monitor_lookback_seconds:
            raise ValueError("stale_after_seconds must not exceed monitor_lookback_seconds")

        if self.max_workers <= 0:
            raise ValueError("max_workers must be > 0")


def default_dispatch_policy() -> DispatchPolicy:
    """
    Convenience factory for the default policy.
    """
    p = DispatchPolicy()
    p.validate()
    return p


def _env(name: str, cast, default):
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return cast(raw)


def dispatch_policy_from_env(base: Optional[DispatchPolicy] = None) -> DispatchPolicy:
    """
    Default policy with overrides from the environment / .env file.
    """
    load_dotenv()
    base = base or DispatchPolicy()

    p = replace(
        base,
        top_n=_env("MATCHING_TOP_N", int, base.top_n),
        max_retries=_env("MATCHING_MAX_RETRIES", int, base.max_retries),
        base_delay_seconds=_env("MATCHING_BASE_DELAY_SECONDS", float, base.base_delay_seconds),
        auto_retry_timeout_seconds=_env(
            "MATCHING_AUTO_RETRY_TIMEOUT_SECONDS", float, base.auto_retry_timeout_seconds
        ),
        monitor_interval_seconds=_env(
            "MATCHING_MONITOR_INTERVAL_SECONDS", float, base.monitor_interval_seconds
        ),
        push_api_url=_env("PUSH_API_URL", str, base.push_api_url),
        push_timeout_seconds=_env("PUSH_TIMEOUT_SECONDS", float, base.push_timeout_seconds),
    )
    p.validate()
    return p
