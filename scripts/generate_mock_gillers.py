import os

import numpy as np
import pandas as pd

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

# Commute departures cluster around the two rush hours
MORNING_PEAK_MINUTES = 8 * 60
EVENING_PEAK_MINUTES = 18 * 60 + 30

GILLER_NAMES = ["김민준", "이서연", "박지호", "최하은", "정도윤", "강서준", "조수아", "윤지우", "장예린", "임시우"]


def _hhmm(minutes: int) -> str:
    minutes = int(np.clip(minutes, 5 * 60, 23 * 60))
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def generate_mock_gillers(num_gillers=50, stations_csv="sampledata/stations.csv", seed=None) -> pd.DataFrame:
    """
    Random commuter routes over the sample stations.
    Most gillers ride weekdays in the morning rush; some commute in the evening.
    """
    rng = np.random.default_rng(seed)
    stations = pd.read_csv(os.path.join(BASE_DIR, stations_csv), dtype={"station_id": str})
    station_ids = stations["station_id"].to_numpy()

    rows = []
    for index in range(num_gillers):
        start, end = rng.choice(station_ids, size=2, replace=False)

        peak = MORNING_PEAK_MINUTES if rng.random() < 0.7 else EVENING_PEAK_MINUTES
        departure = _hhmm(peak + rng.normal(0, 25))

        # 85% weekday commuters, the rest pick random days
        if rng.random() < 0.85:
            days = [1, 2, 3, 4, 5]
        else:
            days = sorted(rng.choice(np.arange(1, 8), size=rng.integers(1, 4), replace=False).tolist())

        total = int(rng.integers(0, 80))
        completed = int(rng.binomial(total, 0.92)) if total else 0

        rows.append({
            "giller_id": f"giller_{str(index + 1).zfill(3)}",
            "giller_name": GILLER_NAMES[index % len(GILLER_NAMES)],
            "start_station_id": start,
            "end_station_id": end,
            "departure_time": departure,
            "days_of_week": "|".join(str(day) for day in days),
            "rating": float(np.round(np.clip(rng.normal(4.3, 0.5), 1.0, 5.0), 1)),
            "total_deliveries": total,
            "completed_deliveries": completed,
            "is_active": bool(rng.random() < 0.9),
        })

    return pd.DataFrame(rows)


def generate_mock_requests(num_requests=20, stations_csv="sampledata/stations.csv", seed=None) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    stations = pd.read_csv(os.path.join(BASE_DIR, stations_csv), dtype={"station_id": str})
    names = stations["station_name"].to_numpy()

    rows = []
    for index in range(num_requests):
        pickup, delivery = rng.choice(names, size=2, replace=False)
        start = int(MORNING_PEAK_MINUTES + rng.normal(0, 40))
        rows.append({
            "request_id": f"req_{str(index + 1).zfill(4)}",
            "requester_id": f"user_{rng.integers(1000, 9999)}",
            "pickup_station_name": pickup,
            "delivery_station_name": delivery,
            "pickup_start": _hhmm(start),
            "pickup_end": _hhmm(start + 30),
            "delivery_deadline": _hhmm(start + 120),
            "preferred_days": "1|2|3|4|5",
            "package_size": rng.choice(["small", "medium", "large"], p=[0.6, 0.3, 0.1]),
            "package_weight_kg": float(np.round(rng.uniform(0.2, 5.0), 1)),
            "fee": int(rng.choice([3000, 3500, 4000, 5000])),
        })

    return pd.DataFrame(rows)


if __name__ == "__main__":
    gillers = generate_mock_gillers(seed=7)
    requests_df = generate_mock_requests(seed=11)

    gillers.to_csv(os.path.join(BASE_DIR, "sampledata/gillers.csv"), index=False)
    requests_df.to_csv(os.path.join(BASE_DIR, "sampledata/requests.csv"), index=False)
    print(f"Successfully generated {len(gillers)} mock gillers and {len(requests_df)} mock requests into 'sampledata/'.")
