"""
FPL Insights - Snapshot Module

One rebuild produces an immutable ProjectionSnapshot that every projection
call reads from. Also derives team stats and momentum from finished results
and loads the JSON files the snapshot is built from.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import ValidationError

from fpl_insights.cache import snapshot_store, SnapshotStore
from fpl_insights.calculators import build_team_strength
from fpl_insights.config import MODEL_CONFIG, get_data_dir
from fpl_insights.constants import (
    ADVANCED_SNAPSHOT_FILES, ODDS_SNAPSHOT_FILES, SEASON_SNAPSHOT_FILE,
    DEFAULT_LEAGUE_AVG_GOALS, safe_float,
)
from fpl_insights.models import (
    AdvancedPlayerRecord, AdvancedTeamStats, FinishedFixture, MatchHistoryEntry,
    OddsImpliedGoals, PlayerSeasonStats, SeasonData, TeamInfo, TeamSeasonStats,
    TeamStrengthProfile, UpcomingFixture,
)

logger = logging.getLogger("fpl_insights")

MAX_RESULTS = 200
STATS_WINDOW = 10
MOMENTUM_WINDOW = 5
MOMENTUM_MAX = 45  # 3 pts * (5 + 4 + 3 + 2 + 1)
DEFAULT_MOMENTUM = 0.5


class SnapshotLoadError(RuntimeError):
    """The season file could not be read, so no snapshot can be built."""


# =============================================================================
# SNAPSHOT
# =============================================================================

def _frozen(mapping: Optional[Mapping]) -> Mapping:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class ProjectionSnapshot:
    """Read-only view of everything a projection needs. Never mutated after build."""
    strength: Mapping[int, TeamStrengthProfile]
    league_avg_goals: float
    team_stats: Mapping[int, TeamSeasonStats] = field(default_factory=lambda: MappingProxyType({}))
    team_momentum: Mapping[int, float] = field(default_factory=lambda: MappingProxyType({}))
    teams: Mapping[int, TeamInfo] = field(default_factory=lambda: MappingProxyType({}))
    players: Mapping[int, PlayerSeasonStats] = field(default_factory=lambda: MappingProxyType({}))
    histories: Mapping[int, Tuple[MatchHistoryEntry, ...]] = field(default_factory=lambda: MappingProxyType({}))
    fixtures: Tuple[UpcomingFixture, ...] = ()
    advanced_players: Mapping[int, AdvancedPlayerRecord] = field(default_factory=lambda: MappingProxyType({}))
    odds: Mapping[int, OddsImpliedGoals] = field(default_factory=lambda: MappingProxyType({}))
    built_at: datetime = field(default_factory=datetime.now)

    def history_for(self, player_id: int) -> Tuple[MatchHistoryEntry, ...]:
        return self.histories.get(player_id, ())

    def momentum_for(self, team_id: int) -> float:
        return self.team_momentum.get(team_id, DEFAULT_MOMENTUM)

    def fixture(self, fixture_id: int) -> Optional[UpcomingFixture]:
        for fixture in self.fixtures:
            if fixture.fixture_id == fixture_id:
                return fixture
        return None

    def upcoming_for_team(self, team_id: int, horizon: int = None) -> List[UpcomingFixture]:
        """Upcoming fixtures for a team in gameweek order, optionally cut to horizon."""
        upcoming = [f for f in self.fixtures if f.involves(team_id)]
        upcoming.sort(key=lambda f: (f.gameweek if f.gameweek is not None else 999, f.fixture_id))
        return upcoming[:horizon] if horizon is not None else upcoming


def rebuild_snapshot(
    teams: Iterable[TeamInfo] = (),
    team_stats: Mapping[int, TeamSeasonStats] = None,
    advanced_teams: Iterable[AdvancedTeamStats] = (),
    advanced_players: Iterable[AdvancedPlayerRecord] = (),
    odds: Iterable[OddsImpliedGoals] = (),
    players: Iterable[PlayerSeasonStats] = (),
    histories: Mapping[int, Iterable[MatchHistoryEntry]] = None,
    fixtures: Iterable[UpcomingFixture] = (),
    team_momentum: Mapping[int, float] = None,
) -> ProjectionSnapshot:
    """Build a fresh snapshot from parsed inputs. Inputs are copied, never retained."""
    team_stats = dict(team_stats or {})
    advanced_team_map = {t.team_id: t for t in advanced_teams}
    teams_by_id = {t.id: t for t in teams}

    team_ids = list(teams_by_id) or sorted(set(team_stats) | set(advanced_team_map))
    strength, league_avg = build_team_strength(team_ids, team_stats, advanced_team_map)

    # History rows sorted most recent first
    sorted_histories = {
        pid: tuple(sorted(rows, key=lambda h: h.round, reverse=True))
        for pid, rows in (histories or {}).items()
    }

    snapshot = ProjectionSnapshot(
        strength=_frozen(strength),
        league_avg_goals=league_avg if league_avg > 0 else DEFAULT_LEAGUE_AVG_GOALS,
        team_stats=_frozen(team_stats),
        team_momentum=_frozen(team_momentum),
        teams=_frozen(teams_by_id),
        players=_frozen({p.id: p for p in players}),
        histories=_frozen(sorted_histories),
        fixtures=tuple(fixtures),
        advanced_players=_frozen({p.player_id: p for p in advanced_players}),
        odds=_frozen({o.fixture_id: o for o in odds}),
    )
    logger.info(
        f"Snapshot rebuilt: {len(snapshot.strength)} teams, {len(snapshot.players)} players, "
        f"{len(snapshot.fixtures)} fixtures, league avg {snapshot.league_avg_goals:.2f} goals"
    )
    return snapshot


# =============================================================================
# TEAM RESULTS DERIVATION
# =============================================================================

def _recent_results(results: Iterable[FinishedFixture]) -> Dict[int, List[Dict[str, Any]]]:
    """Per-team results, most recent first, from at most MAX_RESULTS finished fixtures."""
    ordered = sorted(
        results,
        key=lambda f: (f.gameweek or 0, f.kickoff_time or ""),
        reverse=True,
    )[:MAX_RESULTS]

    team_results: Dict[int, List[Dict[str, Any]]] = {}
    for f in ordered:
        if f.home_score > f.away_score:
            home_pts, away_pts = 3, 0
        elif f.home_score < f.away_score:
            home_pts, away_pts = 0, 3
        else:
            home_pts = away_pts = 1

        team_results.setdefault(f.home_team_id, []).append({
            "points": home_pts, "scored": f.home_score, "conceded": f.away_score, "is_home": True,
        })
        team_results.setdefault(f.away_team_id, []).append({
            "points": away_pts, "scored": f.away_score, "conceded": f.home_score, "is_home": False,
        })
    return team_results


def calculate_team_momentum(results: Iterable[FinishedFixture], team_ids: Iterable[int] = None) -> Dict[int, float]:
    """
    Recency-weighted league points over the last 5 results, scaled to 0-1.

    momentum = sum(points_i * (5 - i)) / 45, i = 0 for the latest game.
    Teams with no results sit at 0.5.
    """
    team_results = _recent_results(results)
    ids = set(team_ids) if team_ids is not None else set(team_results)
    momentum = {}
    for team_id in ids:
        last5 = team_results.get(team_id, [])[:MOMENTUM_WINDOW]
        if not last5:
            momentum[team_id] = DEFAULT_MOMENTUM
            continue
        weighted = sum(r["points"] * (MOMENTUM_WINDOW - i) for i, r in enumerate(last5))
        momentum[team_id] = round(weighted / MOMENTUM_MAX, 4)
    return momentum


def _per_game(rows: List[Dict[str, Any]], key: str) -> float:
    return sum(r[key] for r in rows) / len(rows) if rows else 0.0


def _cs_rate(rows: List[Dict[str, Any]]) -> float:
    return sum(1 for r in rows if r["conceded"] == 0) / len(rows) if rows else 0.0


def build_team_season_stats(
    results: Iterable[FinishedFixture], team_ids: Iterable[int] = None
) -> Dict[int, TeamSeasonStats]:
    """Per-game scoring, conceding and clean sheet rates from each team's last 10 results."""
    team_results = _recent_results(results)
    ids = set(team_ids) if team_ids is not None else set(team_results)
    stats = {}
    for team_id in ids:
        rows = team_results.get(team_id, [])
        last10 = rows[:STATS_WINDOW]
        last5 = rows[:MOMENTUM_WINDOW]
        home = [r for r in last10 if r["is_home"]]
        away = [r for r in last10 if not r["is_home"]]
        stats[team_id] = TeamSeasonStats(
            team_id=team_id,
            played=len(last10),
            goals_per_game=_per_game(last10, "scored"),
            conceded_per_game=_per_game(last10, "conceded"),
            home_goals_per_game=_per_game(home, "scored"),
            away_goals_per_game=_per_game(away, "scored"),
            home_conceded_per_game=_per_game(home, "conceded"),
            away_conceded_per_game=_per_game(away, "conceded"),
            clean_sheet_rate=_cs_rate(last10),
            home_clean_sheet_rate=_cs_rate(home),
            away_clean_sheet_rate=_cs_rate(away),
            form=sum(r["points"] for r in last5),
            last5_results="".join({3: "W", 1: "D", 0: "L"}[r["points"]] for r in last5),
        )
    return stats


# =============================================================================
# JSON LOADING
# =============================================================================

def _read_json(path: str, max_bytes: int = None) -> Optional[Any]:
    """Read a JSON file, or None (logged) when missing, oversized or unreadable."""
    max_bytes = max_bytes or MODEL_CONFIG["cache"].max_snapshot_bytes
    if not os.path.exists(path):
        return None
    try:
        size = os.path.getsize(path)
        if size > max_bytes:
            logger.warning(f"Skipping {path}: {size} bytes exceeds {max_bytes} byte limit")
            return None
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Skipping unreadable snapshot {path}: {e}")
        return None


def parse_advanced_snapshot(payload: Any) -> Tuple[List[AdvancedTeamStats], List[AdvancedPlayerRecord]]:
    """
    Parse an advanced-stats export:
        {"teams": [{"teamId"|"fplId", "xG", "xGA", "matches"|"games"}],
         "players": [{"fplId"|"id", "xG", "xA", "minutes", "shots", "bigChances"}]}
    Rows without an FPL id are dropped, malformed rows are skipped with a warning.
    """
    if not isinstance(payload, dict):
        return [], []

    teams = []
    for row in payload.get("teams") or []:
        try:
            team_id = row.get("teamId") or row.get("fplId")
            if not team_id:
                continue
            matches = row.get("matches", row.get("games", 1))
            teams.append(AdvancedTeamStats(
                team_id=team_id,
                xg=safe_float(row.get("xG")),
                xga=safe_float(row.get("xGA")),
                matches=int(safe_float(matches, 1)),
            ))
        except (ValidationError, AttributeError, TypeError) as e:
            logger.warning(f"Skipping malformed advanced team row {row!r}: {e}")

    players = []
    for row in payload.get("players") or []:
        try:
            player_id = row.get("fplId") or row.get("id")
            if not player_id:
                continue
            players.append(AdvancedPlayerRecord(
                player_id=player_id,
                xg=safe_float(row.get("xG")),
                xa=safe_float(row.get("xA")),
                minutes=int(safe_float(row.get("minutes"))),
                shots=row.get("shots"),
                big_chances=row.get("bigChances"),
            ))
        except (ValidationError, AttributeError, TypeError) as e:
            logger.warning(f"Skipping malformed advanced player row {row!r}: {e}")
    return teams, players


def parse_odds_snapshot(payload: Any) -> List[OddsImpliedGoals]:
    """Parse {"fixtures": [{"fixtureId", "homeXG", "awayXG", "isEstimated"}]}."""
    if not isinstance(payload, dict):
        return []
    odds = []
    for row in payload.get("fixtures") or []:
        try:
            fixture_id = row.get("fixtureId")
            if not fixture_id:
                continue
            odds.append(OddsImpliedGoals(
                fixture_id=fixture_id,
                home_xg=row.get("homeXG"),
                away_xg=row.get("awayXG"),
                is_estimated=bool(row.get("isEstimated", False)),
            ))
        except (ValidationError, AttributeError, TypeError) as e:
            logger.warning(f"Skipping malformed odds row {row!r}: {e}")
    return odds


def load_season_data(data_dir: str = None) -> SeasonData:
    """
    Load season.json plus the optional advanced-stats and odds side files.

    season.json holds {"teams", "players", "histories", "fixtures", "results"}
    with histories keyed by player id. Raises SnapshotLoadError when it is
    missing or unreadable; side files are skipped with a warning.
    """
    data_dir = data_dir or get_data_dir()
    season_path = os.path.join(data_dir, SEASON_SNAPSHOT_FILE)
    payload = _read_json(season_path)
    if not isinstance(payload, dict):
        raise SnapshotLoadError(f"No usable {SEASON_SNAPSHOT_FILE} in {data_dir}")

    try:
        data = SeasonData(**payload)
    except ValidationError as e:
        raise SnapshotLoadError(f"Malformed {SEASON_SNAPSHOT_FILE} in {data_dir}: {e}") from e

    for name in ADVANCED_SNAPSHOT_FILES:
        advanced = _read_json(os.path.join(data_dir, name))
        if advanced is not None:
            data.advanced_teams, data.advanced_players = parse_advanced_snapshot(advanced)
            logger.info(
                f"Loaded advanced stats from {name}: {len(data.advanced_teams)} teams, "
                f"{len(data.advanced_players)} players"
            )
            break

    for name in ODDS_SNAPSHOT_FILES:
        odds = _read_json(os.path.join(data_dir, name))
        if odds is not None:
            data.odds = parse_odds_snapshot(odds)
            logger.info(f"Loaded odds from {name} for {len(data.odds)} fixtures")
            break

    return data


def build_snapshot_from_data(data: SeasonData) -> ProjectionSnapshot:
    """Derive team stats and momentum from results, then rebuild."""
    team_ids = [t.id for t in data.teams] or None
    return rebuild_snapshot(
        teams=data.teams,
        team_stats=build_team_season_stats(data.results, team_ids),
        advanced_teams=data.advanced_teams,
        advanced_players=data.advanced_players,
        odds=data.odds,
        players=data.players,
        histories=data.histories,
        fixtures=data.fixtures,
        team_momentum=calculate_team_momentum(data.results, team_ids),
    )


def refresh_snapshot(data_dir: str = None, store: SnapshotStore = None) -> ProjectionSnapshot:
    """Load from disk, rebuild, and install into the store."""
    store = store or snapshot_store
    try:
        snapshot = build_snapshot_from_data(load_season_data(data_dir))
    except SnapshotLoadError as e:
        logger.error(f"Snapshot refresh failed: {e}")
        raise
    store.swap(snapshot)
    return snapshot
