"""
FPL Insights - Services Module

Expected minutes, season baseline, form trend, head-to-head boost,
confidence scoring, and the fixture / player / team projections that
tie the calculators together over a ProjectionSnapshot.
"""

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from fpl_insights.config import (
    MODEL_CONFIG, MinutesConfig, BaselineConfig, HeadToHeadConfig, ConfidenceConfig,
)
from fpl_insights.constants import (
    CONFIDENCE_LABELS, clamp, safe_float, mean, sample_std, population_std,
    fixture_weight, ict_per_90,
)
from fpl_insights.models import (
    ConfidenceFactor, ConfidenceScore, FixtureProjection, FormTrend, MatchHistoryEntry,
    MinutesModel, PlayerFixtureProjection, PlayerProjection, PlayerSeasonStats,
    SeasonBaseline, Severity, TeamFixtureOutlook, TeamOutlook,
    UpcomingFixture,
)
from fpl_insights.calculators import implied_goals_model, attacking_model, points_mapper
from fpl_insights.snapshot import ProjectionSnapshot

logger = logging.getLogger("fpl_insights")


def sort_history(history: Iterable[MatchHistoryEntry]) -> List[MatchHistoryEntry]:
    """Most recent round first."""
    return sorted(history or [], key=lambda h: h.round, reverse=True)


def played_games(history: Sequence[MatchHistoryEntry]) -> List[MatchHistoryEntry]:
    return [h for h in history if h.minutes > 0]


def resolve_availability(availability: Optional[float], default: float = None) -> float:
    default = MODEL_CONFIG["minutes"].default_availability if default is None else default
    if availability is None:
        return default
    return clamp(safe_float(availability, default), 0, 100)


# ============ EXPECTED MINUTES ============

def is_returning_from_absence(history: Sequence[MatchHistoryEntry], config: MinutesConfig = None) -> bool:
    """
    Back from injury / suspension: at least two blanks and at least one
    appearance in the recent window, with one of those appearances a start-length game.
    """
    config = config or MODEL_CONFIG["minutes"]
    recent = sort_history(history)[:config.returning_window]
    zero_games = [h for h in recent if h.minutes == 0]
    with_minutes = [h for h in recent if h.minutes > 0]
    return (
        len(zero_games) >= config.returning_min_zero_games
        and len(with_minutes) >= config.returning_min_played_games
        and any(h.minutes >= config.returning_start_minutes for h in with_minutes)
    )


def get_role_factor(average_minutes: float, config: MinutesConfig = None) -> float:
    config = config or MODEL_CONFIG["minutes"]
    for threshold, factor in config.role_factors:
        if average_minutes >= threshold:
            return factor
    return config.role_factors[-1][1]


def calculate_expected_minutes(
    history: Iterable[MatchHistoryEntry],
    availability: Optional[float] = None,
    config: MinutesConfig = None,
) -> MinutesModel:
    """
    Expected minutes for the next fixture.

    Priority order:
    1. No history - availability band default
    2. Returning from absence - average of fit games, small boost
    3. Everyone else - recency-weighted average of the last 8 games
    """
    config = config or MODEL_CONFIG["minutes"]
    availability = resolve_availability(availability, config.default_availability)
    ordered = sort_history(history)

    # ==================== NO HISTORY ====================
    if not ordered:
        for threshold, minutes in config.no_history_minutes:
            if availability >= threshold:
                return MinutesModel(expected_minutes=minutes, role_factor=1.0, average_minutes=minutes)
        minutes = config.no_history_minutes[-1][1]
        return MinutesModel(expected_minutes=minutes, role_factor=1.0, average_minutes=minutes)

    # ==================== RETURNING / SETTLED ====================
    returning = is_returning_from_absence(ordered, config)
    boost = 1.0
    if returning:
        fit_games = [h for h in ordered if h.minutes >= config.returning_fit_minutes][:config.returning_fit_games]
        average = mean([h.minutes for h in fit_games], config.returning_default_minutes)
        boost = config.returning_boost
    else:
        recent = ordered[:config.recency_games]
        weights = [1 - config.recency_decay * i for i in range(len(recent))]
        average = sum(w * h.minutes for w, h in zip(weights, recent)) / sum(weights)

    role = get_role_factor(average, config)
    availability_factor = (availability / 100) ** config.availability_exponent
    expected = clamp(average * role * availability_factor * boost, 0, 90)

    return MinutesModel(
        expected_minutes=round(expected, 2),
        role_factor=role,
        average_minutes=round(average, 2),
        is_returning_from_absence=returning,
    )


# ============ SEASON BASELINE & FORM ============

def _points_per_90(games: Sequence[MatchHistoryEntry], min_90s: float) -> float:
    minutes = sum(h.minutes for h in games)
    points = sum(h.total_points for h in games)
    return points / max(minutes / 90, min_90s)


def calculate_season_baseline(
    player_id: int,
    history: Iterable[MatchHistoryEntry],
    config: BaselineConfig = None,
) -> SeasonBaseline:
    """Season rates plus a bounded form multiplier from the last few played games."""
    config = config or MODEL_CONFIG["baseline"]
    ordered = sort_history(history)
    played = played_games(ordered)

    total_minutes = sum(h.minutes for h in ordered)
    total_points = sum(h.total_points for h in ordered)
    pp90 = total_points / total_minutes * 90 if total_minutes > 0 else 0.0
    ppg = total_points / len(played) if played else 0.0

    recent = played[:config.recent_games]
    recent_pp90 = _points_per_90(recent, config.min_recent_90s) if recent else 0.0

    ratio = recent_pp90 / pp90 if pp90 > 0 else 1.0
    form_multiplier = clamp(
        config.form_base + (ratio - 1) * config.form_slope,
        config.form_min,
        config.form_max,
    )

    return SeasonBaseline(
        player_id=player_id,
        points_per_90=round(pp90, 3),
        points_per_game=round(ppg, 3),
        recent_points_per_90=round(recent_pp90, 3),
        form_multiplier=round(form_multiplier, 4),
        games_played=len(played),
        total_minutes=total_minutes,
        total_points=total_points,
    )


def calculate_form_trend(
    history: Iterable[MatchHistoryEntry],
    is_returning: bool = False,
    config: BaselineConfig = None,
) -> FormTrend:
    """Compare the last 3 played games with the 3 before them."""
    config = config or MODEL_CONFIG["baseline"]
    if is_returning:
        return FormTrend.STABLE

    played = played_games(sort_history(history))
    if len(played) < config.trend_min_games:
        return FormTrend.STABLE

    window = config.trend_window
    recent = mean([h.total_points for h in played[:window]])
    earlier = mean([h.total_points for h in played[window:window * 2]])
    diff = recent - earlier
    if diff > config.trend_threshold:
        return FormTrend.RISING
    if diff < -config.trend_threshold:
        return FormTrend.FALLING
    return FormTrend.STABLE


def calculate_h2h_boost(
    history: Iterable[MatchHistoryEntry],
    opponent_id: int,
    season_pp90: float,
    config: HeadToHeadConfig = None,
) -> float:
    """
    Multiplier from past games against this opponent.

    Fewer than full_weight_meetings meetings only count at
    single_meeting_factor of the normal weight.
    """
    config = config or MODEL_CONFIG["h2h"]
    if not config.enabled or season_pp90 <= 0:
        return 1.0

    meetings = [h for h in history if h.opponent_team == opponent_id and h.minutes > 0]
    if not meetings:
        return 1.0

    h2h_pp90 = _points_per_90(meetings, MODEL_CONFIG["baseline"].min_recent_90s)
    sample_factor = 1.0 if len(meetings) >= config.full_weight_meetings else config.single_meeting_factor
    adjustment = (h2h_pp90 / season_pp90 - 1) * config.weight * sample_factor
    return 1 + clamp(adjustment, -config.max_boost, config.max_boost)


# ============ CONFIDENCE ============

def get_confidence_label(score: int, config: ConfidenceConfig = None) -> str:
    config = config or MODEL_CONFIG["confidence"]
    if score >= config.high_threshold:
        return CONFIDENCE_LABELS["high"]
    if score >= config.medium_threshold:
        return CONFIDENCE_LABELS["medium"]
    return CONFIDENCE_LABELS["low"]


class ConfidenceScorer:
    """
    How much to trust a projection, 20-100.

    Five bounded components (minutes security, sample size, availability,
    consistency, form) plus small team / player adjustments.
    """

    def __init__(self, config: ConfidenceConfig = None):
        self.config = config or MODEL_CONFIG["confidence"]

    def score(
        self,
        history: Iterable[MatchHistoryEntry],
        availability: Optional[float] = None,
        form_trend: FormTrend = FormTrend.STABLE,
        is_returning: bool = False,
        team_momentum: float = 0.5,
        season_points: int = 0,
        news: str = "",
    ) -> ConfidenceScore:
        cfg = self.config
        factors: List[ConfidenceFactor] = []
        played = played_games(sort_history(history))
        recent = played[:cfg.minutes_lookback]

        # 1. Minutes security
        avg_minutes = mean([h.minutes for h in recent], cfg.minutes_default)
        minutes_score = clamp(min(avg_minutes / 90, 1) * cfg.minutes_weight, 0, cfg.minutes_weight)
        if avg_minutes < cfg.rotation_risk_minutes:
            factors.append(ConfidenceFactor("Rotation risk", Severity.WARNING))
        elif avg_minutes >= cfg.nailed_minutes:
            factors.append(ConfidenceFactor("Nailed starter", Severity.POSITIVE))

        # 2. Sample size
        games = len(played)
        sample_score = min(games / cfg.sample_cap_games, 1) * cfg.sample_weight
        if games < cfg.limited_sample_games:
            factors.append(ConfidenceFactor("Limited match data", Severity.WARNING))
        elif games >= cfg.strong_sample_games:
            factors.append(ConfidenceFactor("Strong sample size", Severity.POSITIVE))

        # 3. Availability (unknown means no flag)
        chance = 100.0 if availability is None else clamp(safe_float(availability, 100.0), 0, 100)
        availability_score = (chance / 100) ** cfg.availability_exponent * cfg.availability_weight
        if chance == 0:
            factors.append(ConfidenceFactor("Ruled out", Severity.DANGER))
        elif chance < 100:
            if chance < 50:
                severity = Severity.DANGER
            elif chance < 75:
                severity = Severity.WARNING
            else:
                severity = Severity.INFO
            factors.append(ConfidenceFactor(f"{chance:g}% chance of playing", severity))

        # 4. Consistency
        consistency_score = cfg.consistency_weight
        points = [h.total_points for h in recent]
        if len(points) >= cfg.consistency_min_samples:
            avg_points = mean(points)
            cv = population_std(points) / avg_points if avg_points > 0 else 1.0
            consistency_score = clamp(cfg.consistency_weight - cv * cfg.consistency_cv_scale, 0, cfg.consistency_weight)

        # 5. Form
        form_score = cfg.form_scores[form_trend.value]
        if form_trend == FormTrend.RISING:
            factors.append(ConfidenceFactor("Form improving", Severity.POSITIVE))
        elif form_trend == FormTrend.FALLING:
            factors.append(ConfidenceFactor("Form declining", Severity.DANGER))

        total = minutes_score + sample_score + availability_score + consistency_score + form_score

        # ==================== ADJUSTMENTS ====================
        momentum = safe_float(team_momentum, 0.5)
        if momentum > cfg.good_momentum:
            factors.append(ConfidenceFactor("Team in good form", Severity.POSITIVE))
            total += cfg.momentum_adjustment
        elif momentum < cfg.poor_momentum:
            factors.append(ConfidenceFactor("Team struggling", Severity.WARNING))
            total -= cfg.momentum_adjustment

        recent_window = sort_history(history)[:MODEL_CONFIG["minutes"].returning_window]
        if is_returning and any(h.minutes >= cfg.returning_fit_minutes for h in recent_window):
            factors.append(ConfidenceFactor("Back from absence", Severity.INFO))
            total += cfg.returning_adjustment

        if season_points >= cfg.proven_points:
            factors.append(ConfidenceFactor("Proven season output", Severity.POSITIVE))
            total += cfg.proven_adjustment

        if news:
            factors.append(ConfidenceFactor(news[:cfg.news_max_chars], Severity.INFO))

        score = int(round(clamp(total, cfg.score_min, cfg.score_max)))
        return ConfidenceScore(score=score, label=get_confidence_label(score, cfg), factors=factors)


confidence_scorer = ConfidenceScorer()


# ============ PROJECTIONS ============

def resolve_horizon(horizon: Optional[int]) -> int:
    cfg = MODEL_CONFIG["aggregation"]
    if horizon is None:
        return cfg.default_horizon
    return int(clamp(int(horizon), 1, cfg.max_horizon))


def project_fixture(fixture: UpcomingFixture, snapshot: ProjectionSnapshot) -> FixtureProjection:
    """Implied goals and clean sheet chances for both sides."""
    return implied_goals_model.project(
        fixture.fixture_id,
        fixture.home_team_id,
        fixture.away_team_id,
        snapshot.strength,
        snapshot.league_avg_goals,
        snapshot.odds.get(fixture.fixture_id),
    )


def calculate_points_band(
    history: Iterable[MatchHistoryEntry], base: float
) -> Tuple[float, float]:
    """Low/high band around base, widened by how volatile recent returns have been."""
    cfg = MODEL_CONFIG["aggregation"]
    recent = [
        h.total_points for h in sort_history(history) if h.minutes >= cfg.band_min_minutes
    ][:cfg.band_lookback]
    std = sample_std(recent) if len(recent) >= cfg.band_min_samples else None
    if std is None:
        std = cfg.band_default_std
    factor = clamp(std / cfg.band_std_divisor, cfg.band_min, cfg.band_max)
    return base * (1 - factor), base * (1 + factor)


def _weighted_sum(fixtures: Sequence[PlayerFixtureProjection]) -> float:
    return sum(f.expected_points * f.weight for f in fixtures)


def project_player(
    player: PlayerSeasonStats,
    snapshot: ProjectionSnapshot,
    horizon: int = None,
) -> PlayerProjection:
    """
    Per-fixture expected points over the horizon plus the aggregates,
    band, confidence and value built on them. Pure: reads only the snapshot.
    """
    horizon = resolve_horizon(horizon)
    history = sort_history(snapshot.history_for(player.id))
    upcoming = snapshot.upcoming_for_team(player.team, horizon)
    advanced = snapshot.advanced_players.get(player.id)
    position = player.position

    minutes = calculate_expected_minutes(history, player.chance_of_playing_next_round)
    baseline = calculate_season_baseline(player.id, history)
    trend = calculate_form_trend(history, minutes.is_returning_from_absence)
    ict90 = ict_per_90(player.ict_index, player.minutes)

    fixtures: List[PlayerFixtureProjection] = []
    for index, fixture in enumerate(upcoming):
        is_home = fixture.is_home_for(player.team)
        opponent_id = fixture.opponent_of(player.team)
        difficulty = fixture.difficulty_for(player.team)
        opponent = snapshot.strength.get(opponent_id)

        attacking = attacking_model.calculate(
            player,
            expected_minutes=minutes.expected_minutes,
            opponent_defence_index=opponent.defence_index if opponent else 1.0,
            difficulty=difficulty,
            is_home=is_home,
            advanced=advanced,
            h2h_boost=calculate_h2h_boost(history, opponent_id, baseline.points_per_90),
            form_multiplier=baseline.form_multiplier,
        )
        fixture_projection = project_fixture(fixture, snapshot)
        cs_prob = fixture_projection.clean_sheet_prob_for(player.team)

        breakdown = points_mapper.map(
            position,
            expected_minutes=minutes.expected_minutes,
            expected_goals=attacking.expected_goals,
            expected_assists=attacking.expected_assists,
            clean_sheet_prob=cs_prob,
            ict_index_per_90=ict90,
            season_ppg=baseline.points_per_game,
        )

        fixtures.append(PlayerFixtureProjection(
            fixture_id=fixture.fixture_id,
            gameweek=fixture.gameweek,
            opponent_id=opponent_id,
            is_home=is_home,
            difficulty=difficulty,
            expected_points=breakdown.total,
            breakdown=breakdown,
            expected_goals=attacking.expected_goals,
            expected_assists=attacking.expected_assists,
            expected_goal_involvements=attacking.expected_goal_involvements,
            xgi_per_90=attacking.xgi_per_90,
            clean_sheet_prob=cs_prob,
            weight=fixture_weight(index),
            is_estimated=attacking.is_estimated or fixture_projection.estimated,
            shots=advanced.shots if advanced else None,
            big_chances=advanced.big_chances if advanced else None,
        ))

    # ==================== AGGREGATES ====================
    next_fixture = fixtures[0].expected_points if fixtures else 0.0
    next3 = _weighted_sum(fixtures[:3])
    next5 = _weighted_sum(fixtures[:5])
    horizon_points = _weighted_sum(fixtures)
    low, high = calculate_points_band(history, next5 or horizon_points)

    if fixtures:
        breakdown = fixtures[0].breakdown
        first = fixtures[0]
        advanced_summary = {
            "xg": first.expected_goals,
            "xa": first.expected_assists,
            "xgi": first.expected_goal_involvements,
            "xgi_per_90": first.xgi_per_90,
            "shots": first.shots,
            "big_chances": first.big_chances,
        }
    else:
        breakdown = points_mapper.map(position, minutes.expected_minutes, 0.0, 0.0, 0.0, 0.0)
        advanced_summary = {"xg": 0.0, "xa": 0.0, "xgi": 0.0, "xgi_per_90": 0.0, "shots": None, "big_chances": None}

    momentum = snapshot.momentum_for(player.team)
    confidence = confidence_scorer.score(
        history,
        availability=player.chance_of_playing_next_round,
        form_trend=trend,
        is_returning=minutes.is_returning_from_absence,
        team_momentum=momentum,
        season_points=player.total_points,
        news=player.news,
    )

    cost = player.now_cost
    value_score = horizon_points / (cost / 10) if cost > 0 else 0.0
    avg_difficulty = mean([f.difficulty for f in fixtures], 3.0)

    if not history:
        logger.debug(f"Player {player.id} has no match history; projection is estimated")

    return PlayerProjection(
        player_id=player.id,
        position=position,
        team_id=player.team,
        cost=cost,
        expected_points_next_fixture=round(next_fixture, 3),
        expected_points_next3=round(next3, 3),
        expected_points_next5=round(next5, 3),
        horizon_points=round(horizon_points, 3),
        low=round(low, 3),
        high=round(high, 3),
        breakdown=breakdown,
        fixtures=fixtures,
        advanced=advanced_summary,
        is_estimated=not history or any(f.is_estimated for f in fixtures),
        baseline=baseline,
        minutes=minutes,
        confidence=confidence,
        form_trend=trend,
        average_difficulty=round(avg_difficulty, 2),
        team_momentum=momentum,
        ownership=safe_float(player.selected_by_percent),
        value_score=round(value_score, 3),
    )


def project_team(team_id: int, snapshot: ProjectionSnapshot, horizon: int = None) -> TeamOutlook:
    """Clean sheet chance and implied goals for a team's upcoming fixtures."""
    horizon = resolve_horizon(horizon)
    strength = snapshot.strength.get(team_id)

    outlook = []
    for fixture in snapshot.upcoming_for_team(team_id, horizon):
        projection = project_fixture(fixture, snapshot)
        outlook.append(TeamFixtureOutlook(
            fixture_id=fixture.fixture_id,
            gameweek=fixture.gameweek,
            opponent_id=fixture.opponent_of(team_id),
            is_home=fixture.is_home_for(team_id),
            clean_sheet_prob=projection.clean_sheet_prob_for(team_id),
            implied_goals=projection.xg_for(team_id),
            estimated=projection.estimated,
        ))

    return TeamOutlook(
        team_id=team_id,
        attack_index=strength.attack_index if strength else 1.0,
        defence_index=strength.defence_index if strength else 1.0,
        upcoming_clean_sheet_prob=outlook[0].clean_sheet_prob if outlook else 0.0,
        implied_goals_next=outlook[0].implied_goals if outlook else snapshot.league_avg_goals,
        fixtures=outlook,
        estimated=any(o.estimated for o in outlook),
    )
