"""
FPL Insights - Constants Module

Lookup tables derived from MODEL_CONFIG plus the small numeric helpers every
model leans on (clamping, finite-float coercion, per-90 conversion).
"""

import math
from typing import Any, List, Optional

from fpl_insights.config import MODEL_CONFIG


# ============ CONSTANTS ============

POSITION_MAP = {1: "GKP", 2: "DEF", 3: "MID", 4: "FWD"}
POSITION_ID_MAP = {"GKP": 1, "DEF": 2, "MID": 3, "FWD": 4}

# Scoring tables from config
GOAL_POINTS = MODEL_CONFIG["xpts"].goal_points
CS_POINTS = MODEL_CONFIG["xpts"].cs_points
ASSIST_POINTS = MODEL_CONFIG["xpts"].assist_points
POSITION_POINTS_CAP = MODEL_CONFIG["xpts"].position_ceiling

# Venue adjustments for fixture implied goals
HOME_ADVANTAGE = MODEL_CONFIG["implied_goals"].home_advantage
AWAY_PENALTY = MODEL_CONFIG["implied_goals"].away_penalty

DEFAULT_LEAGUE_AVG_GOALS = MODEL_CONFIG["strength"].default_league_avg_goals

# Horizon weights: near fixtures count more, flat beyond the table
FIXTURE_WEIGHTS = MODEL_CONFIG["aggregation"].fixture_weights
DEFAULT_FIXTURE_WEIGHT = FIXTURE_WEIGHTS[-1]

CONFIDENCE_LABELS = {
    "high": "High confidence",
    "medium": "Medium confidence",
    "low": "Higher risk",
}

# Snapshot file names, searched in order
ADVANCED_SNAPSHOT_FILES = [
    "understat.json",
    "understat-snapshot.json",
    "understat/snapshot.json",
]
ODDS_SNAPSHOT_FILES = [
    "odds.json",
    "odds/snapshot.json",
]
SEASON_SNAPSHOT_FILE = "season.json"


# ============ HELPERS ============

def clamp(value: float, low: float, high: float) -> float:
    """Bound value to [low, high]."""
    return max(low, min(high, value))


def safe_float(value: Any, default: float = 0.0) -> float:
    """
    Coerce FPL-style values ("4.5", None, 7) to a finite float.
    Anything unparseable, NaN or infinite becomes default.
    """
    if value is None:
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(result):
        return default
    return result


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    if not denominator:
        return default
    result = numerator / denominator
    return result if math.isfinite(result) else default


def per_90(value: float, minutes: float) -> float:
    """Convert a season total to a per-90 rate (0 for no minutes)."""
    minutes = safe_float(minutes)
    if minutes <= 0:
        return 0.0
    return safe_float(value) / minutes * 90


def ict_per_90(ict_index: Any, minutes: Any) -> float:
    """
    ICT index as a per-90 figure once the player has a full game of minutes,
    otherwise the raw index.
    """
    ict = safe_float(ict_index)
    mins = safe_float(minutes)
    if mins >= MODEL_CONFIG["attacking"].ict_per_90_min_minutes:
        return ict / mins * 90
    return ict


def fixture_weight(index: int) -> float:
    if 0 <= index < len(FIXTURE_WEIGHTS):
        return FIXTURE_WEIGHTS[index]
    return DEFAULT_FIXTURE_WEIGHT


def mean(values: List[float], default: float = 0.0) -> float:
    if not values:
        return default
    return sum(values) / len(values)


def sample_std(values: List[float]) -> Optional[float]:
    """Sample standard deviation (n - 1). None with fewer than two values."""
    if len(values) < 2:
        return None
    avg = mean(values)
    variance = sum((v - avg) ** 2 for v in values) / (len(values) - 1)
    return math.sqrt(variance)


def population_std(values: List[float]) -> float:
    if not values:
        return 0.0
    avg = mean(values)
    return math.sqrt(sum((v - avg) ** 2 for v in values) / len(values))
