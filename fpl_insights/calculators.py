"""
FPL Insights - Calculators Module

Team strength indices, fixture implied goals and clean sheet probability,
the attacking output model with its ordered data sources, and the expected
points mapper.
"""

import logging
import math
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from fpl_insights.config import (
    MODEL_CONFIG, StrengthConfig, ImpliedGoalsConfig, AttackingConfig, XptsConfig,
)
from fpl_insights.constants import clamp, safe_float, safe_divide, ict_per_90, mean
from fpl_insights.models import (
    AdvancedPlayerRecord, AdvancedTeamStats, AttackingOutput, FixtureProjection,
    OddsImpliedGoals, PlayerSeasonStats, PointsBreakdown, Position, SourceRates,
    StrengthSource, TeamSeasonStats, TeamStrengthProfile,
)

logger = logging.getLogger("fpl_insights")

__all__ = [
    # Calculator classes
    "TeamStrengthModel",
    "ImpliedGoalsModel",
    "AttackingSource",
    "AdvancedStatsSource",
    "NativeExpectedSource",
    "IndexFallbackSource",
    "AttackingModel",
    "ExpectedPointsMapper",
    # Global instances
    "strength_model",
    "implied_goals_model",
    "attacking_model",
    "points_mapper",
    # Functions
    "build_team_strength",
    "poisson_clean_sheet_probability",
]


# =============================================================================
# TEAM STRENGTH
# =============================================================================

class TeamStrengthModel:
    """
    Relative attack/defence indices for every team.

    Rates per game come from the first available of: advanced xG/xGA,
    season goals (only once a team has played), a flat default. The indices
    are ratios against the league mean, bounded so one freak sample can't
    dominate a fixture.
    """

    def __init__(self, config: StrengthConfig = None):
        self.config = config or MODEL_CONFIG["strength"]

    def _team_rates(
        self,
        team_id: int,
        team_stats: Mapping[int, TeamSeasonStats],
        advanced_teams: Mapping[int, AdvancedTeamStats],
    ) -> Tuple[float, float, StrengthSource]:
        default = self.config.default_rate_per_game
        advanced = advanced_teams.get(team_id)
        if advanced is not None and advanced.xg_per_game is not None:
            return (
                safe_float(advanced.xg_per_game, default),
                safe_float(advanced.xga_per_game, default),
                StrengthSource.ADVANCED,
            )

        stats = team_stats.get(team_id)
        if stats is not None and stats.played > 0:
            return (
                safe_float(stats.goals_per_game, default),
                safe_float(stats.conceded_per_game, default),
                StrengthSource.FALLBACK,
            )

        return default, default, StrengthSource.FALLBACK

    def build(
        self,
        team_ids: Iterable[int],
        team_stats: Mapping[int, TeamSeasonStats] = None,
        advanced_teams: Mapping[int, AdvancedTeamStats] = None,
    ) -> Tuple[Dict[int, TeamStrengthProfile], float]:
        """Return (team_id -> profile, league average goals per game). Never raises."""
        team_stats = team_stats or {}
        advanced_teams = advanced_teams or {}

        rates = {tid: self._team_rates(tid, team_stats, advanced_teams) for tid in team_ids}
        if not rates:
            return {}, self.config.default_league_avg_goals

        avg_xg = mean([r[0] for r in rates.values()])
        avg_xga = mean([r[1] for r in rates.values()])

        profiles = {}
        for team_id, (xg, xga, source) in rates.items():
            attack = clamp(safe_divide(xg, avg_xg, 1.0), self.config.index_min, self.config.index_max)
            if xga <= 0:
                defence = self.config.index_max
            else:
                defence = clamp(safe_divide(avg_xga, xga, 1.0), self.config.index_min, self.config.index_max)
            profiles[team_id] = TeamStrengthProfile(
                team_id=team_id,
                attack_index=round(attack, 4),
                defence_index=round(defence, 4),
                xg_per_game=round(xg, 4),
                xga_per_game=round(xga, 4),
                source=source,
            )

        league_avg = avg_xg if avg_xg > 0 else self.config.default_league_avg_goals
        advanced_count = sum(1 for p in profiles.values() if p.source == StrengthSource.ADVANCED)
        logger.debug(f"Team strength built for {len(profiles)} teams ({advanced_count} from advanced data)")
        return profiles, league_avg


# =============================================================================
# FIXTURE IMPLIED GOALS & CLEAN SHEETS
# =============================================================================

def poisson_clean_sheet_probability(opponent_xg: float, config: ImpliedGoalsConfig = None) -> float:
    """P(opponent scores 0) under a Poisson model, bounded."""
    config = config or MODEL_CONFIG["implied_goals"]
    xg = safe_float(opponent_xg, MODEL_CONFIG["strength"].default_league_avg_goals)
    return clamp(math.exp(-max(xg, 0.0)), config.cs_prob_min, config.cs_prob_max)


class ImpliedGoalsModel:
    """
    Implied goals for both sides of a fixture.

    A usable odds override wins outright. Otherwise:
        home_xg = avg * home_attack / away_defence * home_advantage
        away_xg = avg * away_attack / home_defence * away_penalty
    """

    def __init__(self, config: ImpliedGoalsConfig = None):
        self.config = config or MODEL_CONFIG["implied_goals"]

    def _bound(self, xg: float) -> float:
        return clamp(xg, self.config.xg_min, self.config.xg_max)

    @staticmethod
    def _usable_odds(odds: Optional[OddsImpliedGoals]) -> bool:
        if odds is None:
            return False
        for value in (odds.home_xg, odds.away_xg):
            if not value or not math.isfinite(value):
                return False
        return True

    def implied_goals(
        self,
        home_team_id: int,
        away_team_id: int,
        strength: Mapping[int, TeamStrengthProfile],
        league_avg_goals: float,
        odds: Optional[OddsImpliedGoals] = None,
    ) -> Tuple[float, float, bool]:
        """Return (home_xg, away_xg, estimated)."""
        if self._usable_odds(odds):
            return self._bound(odds.home_xg), self._bound(odds.away_xg), odds.is_estimated

        base = safe_float(league_avg_goals, 0.0) or MODEL_CONFIG["strength"].default_league_avg_goals
        home = strength.get(home_team_id)
        away = strength.get(away_team_id)
        home_attack = home.attack_index if home else 1.0
        home_defence = home.defence_index if home else 1.0
        away_attack = away.attack_index if away else 1.0
        away_defence = away.defence_index if away else 1.0

        home_xg = self._bound(base * home_attack / away_defence * self.config.home_advantage)
        away_xg = self._bound(base * away_attack / home_defence * self.config.away_penalty)
        return home_xg, away_xg, True

    def project(
        self,
        fixture_id: int,
        home_team_id: int,
        away_team_id: int,
        strength: Mapping[int, TeamStrengthProfile],
        league_avg_goals: float,
        odds: Optional[OddsImpliedGoals] = None,
    ) -> FixtureProjection:
        home_xg, away_xg, estimated = self.implied_goals(
            home_team_id, away_team_id, strength, league_avg_goals, odds
        )
        return FixtureProjection(
            fixture_id=fixture_id,
            home_team_id=home_team_id,
            away_team_id=away_team_id,
            home_xg=round(home_xg, 4),
            away_xg=round(away_xg, 4),
            home_clean_sheet_prob=round(poisson_clean_sheet_probability(away_xg, self.config), 4),
            away_clean_sheet_prob=round(poisson_clean_sheet_probability(home_xg, self.config), 4),
            estimated=estimated,
        )


# =============================================================================
# ATTACKING OUTPUT SOURCES
# =============================================================================

class AttackingSource:
    """One way of getting a player's season xG / xA rates. First applicable wins."""

    name = "base"

    def estimate(
        self, player: PlayerSeasonStats, advanced: Optional[AdvancedPlayerRecord]
    ) -> Optional[SourceRates]:
        raise NotImplementedError


class AdvancedStatsSource(AttackingSource):
    """Third-party xG / xA with its own minutes. Measured, not estimated."""

    name = "advanced"

    def estimate(self, player, advanced):
        if advanced is None or safe_float(advanced.minutes) <= 0:
            return None
        xg = safe_float(advanced.xg)
        xa = safe_float(advanced.xa)
        return SourceRates(
            xg=xg,
            xa=xa,
            xgi_per_90=(xg + xa) / advanced.minutes * 90,
            is_estimated=False,
            source=self.name,
        )


class NativeExpectedSource(AttackingSource):
    """The game's own expected goals / assists."""

    name = "native"

    def estimate(self, player, advanced):
        minutes = safe_float(player.minutes)
        if safe_float(player.expected_goal_involvements) <= 0 or minutes <= 0:
            return None
        xg = safe_float(player.expected_goals)
        xa = safe_float(player.expected_assists)
        return SourceRates(
            xg=xg,
            xa=xa,
            xgi_per_90=(xg + xa) / minutes * 90,
            is_estimated=True,
            source=self.name,
        )


class IndexFallbackSource(AttackingSource):
    """ICT + form heuristic. Always applicable."""

    name = "index"

    def __init__(self, config: AttackingConfig = None):
        self.config = config or MODEL_CONFIG["attacking"]

    def estimate(self, player, advanced):
        ict = ict_per_90(player.ict_index, player.minutes)
        form = safe_float(player.form)
        base = clamp(
            (ict + form * 2) / self.config.index_divisor,
            self.config.index_min_xgi90,
            self.config.index_max_xgi90,
        )
        return SourceRates(xg=0.0, xa=0.0, xgi_per_90=base, is_estimated=True, source=self.name)


class AttackingModel:
    """
    Expected goals / assists for one player in one fixture.

    xGI = xgi90 * (minutes / 90) * opponent * difficulty * venue * h2h * form
    """

    def __init__(self, config: AttackingConfig = None, sources: List[AttackingSource] = None):
        self.config = config or MODEL_CONFIG["attacking"]
        self.sources = sources or [
            AdvancedStatsSource(),
            NativeExpectedSource(),
            IndexFallbackSource(self.config),
        ]

    def season_rates(
        self, player: PlayerSeasonStats, advanced: Optional[AdvancedPlayerRecord] = None
    ) -> SourceRates:
        for source in self.sources:
            rates = source.estimate(player, advanced)
            if rates is not None:
                return rates
        logger.debug(f"No attacking source applied for player {player.id}")
        return SourceRates(xg=0.0, xa=0.0, xgi_per_90=0.0, is_estimated=True, source="none")

    def opponent_adjustment(self, opponent_defence_index: float) -> float:
        index = safe_float(opponent_defence_index, 1.0) or 1.0
        return clamp(1 / index, self.config.opponent_adj_min, self.config.opponent_adj_max)

    def difficulty_multiplier(self, difficulty: float, position: Position) -> float:
        """Fixture difficulty effect, scaled by how much the position feels it."""
        fdr = safe_float(difficulty, 3.0)
        raw = clamp(
            self.config.difficulty_base - (fdr - 1) * self.config.difficulty_step,
            self.config.difficulty_min,
            self.config.difficulty_max,
        )
        sensitivity = self.config.position_sensitivity.get(position.element_type, 1.0)
        return 1 + (raw - 1) * sensitivity

    def venue_modifier(self, is_home: bool) -> float:
        return self.config.home_modifier if is_home else self.config.away_modifier

    def calculate(
        self,
        player: PlayerSeasonStats,
        expected_minutes: float,
        opponent_defence_index: float,
        difficulty: float,
        is_home: bool,
        advanced: Optional[AdvancedPlayerRecord] = None,
        h2h_boost: float = 1.0,
        form_multiplier: float = 1.0,
    ) -> AttackingOutput:
        rates = self.season_rates(player, advanced)
        minutes_factor = clamp(safe_float(expected_minutes), 0, 90) / 90

        xgi = (
            rates.xgi_per_90
            * minutes_factor
            * self.opponent_adjustment(opponent_defence_index)
            * self.difficulty_multiplier(difficulty, player.position)
            * self.venue_modifier(is_home)
            * safe_float(h2h_boost, 1.0)
            * safe_float(form_multiplier, 1.0)
        )
        total = rates.xg + rates.xa
        xg_share = rates.xg / total if total > 0 else self.config.default_xg_share

        return AttackingOutput(
            expected_goals=round(xgi * xg_share, 4),
            expected_assists=round(xgi * (1 - xg_share), 4),
            expected_goal_involvements=round(xgi, 4),
            xgi_per_90=round(rates.xgi_per_90, 4),
            xg=round(rates.xg, 4),
            xa=round(rates.xa, 4),
            source=rates.source,
            is_estimated=rates.is_estimated,
        )


# =============================================================================
# EXPECTED POINTS MAPPING
# =============================================================================

class ExpectedPointsMapper:
    """
    Turn fixture expectations into fantasy points.

    Regular starters (> anchor_min_minutes) are blended 70/30 with their
    season points-per-game and bounded to [floor, position cap]. The blend
    weights and caps are tuning constants; override via XptsConfig.
    """

    def __init__(self, config: XptsConfig = None):
        self.config = config or MODEL_CONFIG["xpts"]

    def map(
        self,
        position: Position,
        expected_minutes: float,
        expected_goals: float,
        expected_assists: float,
        clean_sheet_prob: float,
        ict_index_per_90: float,
        season_ppg: float = 0.0,
    ) -> PointsBreakdown:
        cfg = self.config
        pos = position.element_type
        minutes = clamp(safe_float(expected_minutes), 0, 90)
        playing_share = clamp(minutes / cfg.full_appearance_minutes, 0, 1)

        appearance = 0.0 if minutes <= 0 else 1 + playing_share
        goals = safe_float(expected_goals) * cfg.goal_points.get(pos, 5)
        assists = safe_float(expected_assists) * cfg.assist_points
        clean_sheet = safe_float(clean_sheet_prob) * cfg.cs_points.get(pos, 0) * playing_share
        bonus = (
            clamp(safe_float(ict_index_per_90) / cfg.bonus_ict_divisor, 0, 1)
            * cfg.bonus_discount
            * minutes / 90
        )

        raw = appearance + goals + assists + clean_sheet + bonus
        cap = cfg.position_ceiling.get(pos, 12.0)
        if minutes > cfg.anchor_min_minutes:
            anchored = raw * cfg.fixture_weight + safe_float(season_ppg) * cfg.baseline_weight
            total = clamp(anchored, cfg.points_floor, cap)
        else:
            total = clamp(raw, 0.0, cap)

        return PointsBreakdown(
            appearance=round(appearance, 3),
            goals=round(goals, 3),
            assists=round(assists, 3),
            clean_sheet=round(clean_sheet, 3),
            bonus=round(bonus, 3),
            total=round(total, 3),
        )


def build_team_strength(
    team_ids: Iterable[int],
    team_stats: Mapping[int, TeamSeasonStats] = None,
    advanced_teams: Mapping[int, AdvancedTeamStats] = None,
) -> Tuple[Dict[int, TeamStrengthProfile], float]:
    return strength_model.build(team_ids, team_stats, advanced_teams)


# Global instances
strength_model = TeamStrengthModel()
implied_goals_model = ImpliedGoalsModel()
attacking_model = AttackingModel()
points_mapper = ExpectedPointsMapper()
