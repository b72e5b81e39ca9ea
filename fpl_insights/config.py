import os
from dataclasses import dataclass, field
from typing import Dict, List, Tuple


# =============================================================================
# MODEL CONFIGURATION - All calibration constants with documentation
# =============================================================================

@dataclass
class StrengthConfig:
    """
    Team strength index configuration.

    Indices are ratios against the league average, so 1.0 = average team.
    attack_index > 1 scores more than average, defence_index > 1 concedes
    less than average (higher = more clean-sheet prone).
    """

    default_rate_per_game: float = 1.2   # Used when a team has no usable data
    default_league_avg_goals: float = 1.3
    index_min: float = 0.6
    index_max: float = 1.6


@dataclass
class ImpliedGoalsConfig:
    """
    Fixture implied goals and clean sheet configuration.

    Home/away adjustments apply to the neutral model estimate only; odds-derived
    implied goals are taken as-is (they already price venue in).
    """

    home_advantage: float = 1.08   # Home side scores ~8% more than neutral
    away_penalty: float = 0.92     # Away side scores ~8% less than neutral

    xg_min: float = 0.2
    xg_max: float = 3.5

    # Poisson P(0 goals) bounds - nobody is a lock, nobody is hopeless
    cs_prob_min: float = 0.05
    cs_prob_max: float = 0.65


@dataclass
class MinutesConfig:
    """Expected minutes configuration."""

    default_availability: float = 90.0

    # No history: position-independent defaults by availability band
    no_history_minutes: List[Tuple[float, float]] = field(default_factory=lambda: [
        (75, 70.0),
        (50, 45.0),
        (0, 20.0),
    ])

    # Returning-from-absence detection over the most recent games
    returning_window: int = 5
    returning_min_zero_games: int = 2
    returning_min_played_games: int = 1
    returning_start_minutes: int = 60
    returning_fit_minutes: int = 45
    returning_fit_games: int = 10
    returning_default_minutes: float = 75.0
    returning_boost: float = 1.05

    # Recency weighting for settled players
    recency_games: int = 8
    recency_decay: float = 0.05   # weight = 1 - decay * index

    # Role factor step function: (min average minutes, factor)
    role_factors: List[Tuple[float, float]] = field(default_factory=lambda: [
        (85, 1.00),
        (75, 0.95),
        (60, 0.90),
        (45, 0.80),
        (0, 0.70),
    ])

    # Softened availability penalty: (availability / 100) ** exponent
    availability_exponent: float = 0.5


@dataclass
class BaselineConfig:
    """
    Season baseline and form configuration.

    form_multiplier = clamp(form_base + (recent_pp90 / pp90 - 1) * form_slope)
    """

    recent_games: int = 5
    min_recent_90s: float = 0.5   # Floor on 90s played to avoid tiny-sample blow-ups
    form_base: float = 0.85
    form_slope: float = 0.15
    form_min: float = 0.85
    form_max: float = 1.20

    # Form trend (rising / stable / falling)
    trend_min_games: int = 4
    trend_window: int = 3
    trend_threshold: float = 1.5


@dataclass
class AttackingConfig:
    """Attacking output (xG / xA per fixture) configuration."""

    opponent_adj_min: float = 0.75
    opponent_adj_max: float = 1.35

    home_modifier: float = 1.08
    away_modifier: float = 0.92

    # Difficulty multiplier: 1.15 at FDR 1, -0.08 per step, bounded
    difficulty_base: float = 1.15
    difficulty_step: float = 0.08
    difficulty_min: float = 0.80
    difficulty_max: float = 1.20

    # How much of the difficulty effect each position feels.
    # Attackers feel fixtures most; defensive players are steadier.
    position_sensitivity: Dict[int, float] = field(default_factory=lambda: {
        1: 0.60,   # GKP
        2: 0.70,   # DEF
        3: 0.90,   # MID
        4: 1.00,   # FWD
    })

    default_xg_share: float = 0.6

    # Index-based fallback: clamp((ict + form * 2) / divisor, min, max)
    index_divisor: float = 15.0
    index_min_xgi90: float = 0.1
    index_max_xgi90: float = 1.2
    ict_per_90_min_minutes: int = 90


@dataclass
class HeadToHeadConfig:
    """
    Head-to-head boost configuration.

    A single prior meeting is a thin sample, so it only counts at
    single_meeting_factor of the normal weight. Disable for testing.
    """

    enabled: bool = True
    weight: float = 0.30
    max_boost: float = 0.15
    full_weight_meetings: int = 2
    single_meeting_factor: float = 0.5


@dataclass
class XptsConfig:
    """Expected points mapping configuration."""

    goal_points: Dict[int, int] = field(default_factory=lambda: {
        1: 6, 2: 6, 3: 5, 4: 4  # GKP, DEF, MID, FWD
    })

    cs_points: Dict[int, int] = field(default_factory=lambda: {
        1: 4, 2: 4, 3: 1, 4: 0
    })

    assist_points: int = 3

    # Appearance: 1 pt for any minutes, ramps to 2 pts at 60 minutes
    full_appearance_minutes: float = 60.0

    # Bonus from ICT per 90, discounted
    bonus_ict_divisor: float = 20.0
    bonus_discount: float = 0.8

    # Season anchoring - heuristic, undocumented provenance, keep overridable
    anchor_min_minutes: float = 45.0
    fixture_weight: float = 0.7
    baseline_weight: float = 0.3
    points_floor: float = 1.0
    position_ceiling: Dict[int, float] = field(default_factory=lambda: {
        1: 8.0,
        2: 10.0,
        3: 12.0,
        4: 11.0,
    })


@dataclass
class ConfidenceConfig:
    """Confidence score (20-100) configuration."""

    score_min: int = 20
    score_max: int = 100

    minutes_weight: float = 30.0
    minutes_default: float = 60.0
    minutes_lookback: int = 10
    rotation_risk_minutes: float = 60.0
    nailed_minutes: float = 85.0

    sample_weight: float = 25.0
    sample_cap_games: int = 12
    limited_sample_games: int = 5
    strong_sample_games: int = 15

    availability_weight: float = 20.0
    availability_exponent: float = 0.7

    consistency_weight: float = 15.0
    consistency_cv_scale: float = 10.0
    consistency_min_samples: int = 3

    form_scores: Dict[str, float] = field(default_factory=lambda: {
        "stable": 10.0,
        "rising": 8.0,
        "falling": 4.0,
    })

    good_momentum: float = 0.65
    poor_momentum: float = 0.35
    momentum_adjustment: float = 3.0
    returning_adjustment: float = 5.0
    returning_fit_minutes: int = 70
    proven_points: int = 100
    proven_adjustment: float = 5.0

    news_max_chars: int = 60

    high_threshold: int = 80
    medium_threshold: int = 60


@dataclass
class AggregationConfig:
    """Fixture horizon aggregation configuration."""

    fixture_weights: List[float] = field(default_factory=lambda: [1.0, 0.95, 0.9, 0.85, 0.8])
    default_horizon: int = 5
    max_horizon: int = 10

    band_min_minutes: int = 30
    band_lookback: int = 10
    band_min_samples: int = 3
    band_default_std: float = 2.5
    band_std_divisor: float = 10.0
    band_min: float = 0.1
    band_max: float = 0.3


@dataclass
class TransferConfig:
    """Transfer recommendation thresholds."""

    max_per_team: int = 3
    pool_size: int = 40
    targets_per_position: int = 10
    top_transfers: int = 10
    min_reasons_without_gain: int = 3

    fixture_ease_delta: float = 0.3
    minutes_delta: float = 10.0
    momentum_delta: float = 15.0
    value_delta: float = 0.3
    confidence_delta: float = 15.0

    excluded_statuses: Tuple[str, ...] = ("i", "s", "u", "n")


@dataclass
class CacheConfig:
    """Expiring cache TTLs (seconds)."""

    default_ttl: float = 300.0
    context_ttl: float = 60.0
    projection_ttl: float = 90.0
    snapshot_max_age: float = 1800.0
    max_snapshot_bytes: int = 50 * 1024 * 1024


def get_data_dir() -> str:
    """Directory holding season.json / understat.json / odds.json snapshots."""
    return os.environ.get("FPL_INSIGHTS_DATA_DIR", os.path.join(os.getcwd(), "data"))


# Initialize global config
MODEL_CONFIG = {
    "strength": StrengthConfig(),
    "implied_goals": ImpliedGoalsConfig(),
    "minutes": MinutesConfig(),
    "baseline": BaselineConfig(),
    "attacking": AttackingConfig(),
    "h2h": HeadToHeadConfig(),
    "xpts": XptsConfig(),
    "confidence": ConfidenceConfig(),
    "aggregation": AggregationConfig(),
    "transfers": TransferConfig(),
    "cache": CacheConfig(),
}
