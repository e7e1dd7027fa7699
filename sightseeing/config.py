"""
config.py
---------
Central configuration for the sightseeing optimizer.
All secrets loaded from environment variables, never hard-coded.

Every value below is only a default: components accept the same knobs as
constructor arguments so callers and tests can override them per instance.
"""

import os


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


# ── External maps service (Google Distance Matrix API) ───────────────────────
# Leave GOOGLE_MAPS_API_KEY empty to run fully offline on geometric estimates.
GOOGLE_MAPS_API_KEY: str = os.getenv("GOOGLE_MAPS_API_KEY", "")
MAPS_API_URL: str = os.getenv(
    "MAPS_API_URL", "https://maps.googleapis.com/maps/api/distancematrix/json"
)
MAPS_TRAVEL_MODE: str = os.getenv("MAPS_TRAVEL_MODE", "driving")
MAPS_REQUEST_TIMEOUT_S: float = float(os.getenv("MAPS_REQUEST_TIMEOUT_S", "5"))
# Pause held by each worker slot after an external call (rate limiting)
MAPS_RATE_LIMIT_DELAY_S: float = float(os.getenv("MAPS_RATE_LIMIT_DELAY_S", "0.1"))

# Set USE_FALLBACK_DISTANCES=false to make provider failures fatal for a matrix build.
USE_FALLBACK_DISTANCES: bool = _env_bool("USE_FALLBACK_DISTANCES", "true")

# ── Travel-time cache ─────────────────────────────────────────────────────────
TRAVEL_CACHE_MAX_ENTRIES: int = int(os.getenv("TRAVEL_CACHE_MAX_ENTRIES", "10000"))
TRAVEL_CACHE_PRECISION: int = int(os.getenv("TRAVEL_CACHE_PRECISION", "6"))  # decimal places

# ── Matrix construction ───────────────────────────────────────────────────────
MATRIX_BATCH_SIZE: int = int(os.getenv("MATRIX_BATCH_SIZE", "5"))   # concurrent lookups

# ── Geometric estimator (units: km, km/h, minutes) ───────────────────────────
EARTH_RADIUS_KM: float = 6371.0
MIN_DISTANCE_KM: float = 0.1
CITY_SPEED_KMH: float = 24.0        # legs < 20 km
REGIONAL_SPEED_KMH: float = 35.0    # legs 20-100 km
HIGHWAY_SPEED_KMH: float = 50.0     # legs > 100 km
TRAVEL_BUFFER_FACTOR: float = float(os.getenv("TRAVEL_BUFFER_FACTOR", "1.25"))
PEAK_TRAFFIC_FACTOR: float = 1.2    # 07:30-10:00 and 17:00-20:00
NIGHT_TRAFFIC_FACTOR: float = 0.9   # 22:00-06:00

# ── Optimizer limits ──────────────────────────────────────────────────────────
OPTIMIZE_TIMEOUT_S: float = float(os.getenv("OPTIMIZE_TIMEOUT_S", "30"))
MAX_PLACES: int = int(os.getenv("MAX_PLACES", "20"))
DP_MAX_PLACES: int = int(os.getenv("DP_MAX_PLACES", "10"))   # state space O(2^n * n)
LOOKAHEAD_DAYS: int = 3
RELAXED_BUDGET_FACTOR: float = 1.5
TWO_OPT_MAX_PASSES: int = int(os.getenv("TWO_OPT_MAX_PASSES", "50"))

# Multi-start width per optimization level
START_CANDIDATES: dict[str, int] = {
    "fast": 1,
    "balanced": 3,
    "optimal": 5,
}

# ── Scoring (weights normalised to sum 1 at runtime) ─────────────────────────
DEFAULT_PRIORITY_WEIGHT: float = 0.3
DEFAULT_TIME_WEIGHT: float = 0.4
DEFAULT_OPENING_WEIGHT: float = 0.3
DEFAULT_DIVERSITY_WEIGHT: float = 0.0   # off unless the caller asks for category variety
DIVERSITY_REPEAT_PENALTY: float = 0.2   # per earlier visit of the same category
PROXIMITY_SCALE_MINUTES: float = 30.0     # travel time at which proximity term = 0.5
WAIT_HORIZON_MINUTES: float = 120.0       # waits beyond this earn no opening credit
TRAVEL_PENALTY_PER_MINUTE: float = 0.01   # aggregate run score penalty

# ── Warnings ──────────────────────────────────────────────────────────────────
HIGH_TRAVEL_SHARE: float = 0.6
LATE_FINISH_TIME: str = "20:00"
