"""Shared fixtures for FPL Insights test suite."""
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from main import (
    MatchHistoryEntry,
    PlayerSeasonStats,
    TeamInfo,
    TeamSeasonStats,
    UpcomingFixture,
    rebuild_snapshot,
)


@pytest.fixture
def make_player():
    """Factory for PlayerSeasonStats matching the FPL bootstrap element shape."""
    def _make(**overrides):
        base = {
            "id": 1,
            "web_name": "TestPlayer",
            "team": 1,
            "element_type": 3,  # MID
            "now_cost": 70,  # £7.0m
            "total_points": 80,
            "minutes": 1800,  # 20 full games
            "goals_scored": 5,
            "assists": 4,
            "clean_sheets": 6,
            "bonus": 12,
            "chance_of_playing_next_round": None,
            "ict_index": "120.0",
            "form": "5.0",
            "expected_goals": "4.50",
            "expected_assists": "3.80",
            "expected_goal_involvements": "8.30",
            "selected_by_percent": "12.5",
            "status": "a",
            "news": "",
        }
        base.update(overrides)
        return PlayerSeasonStats(**base)
    return _make


@pytest.fixture
def make_player_history():
    """Factory for per-gameweek history; rounds numbered 1..n in list order."""
    def _make(entries=None):
        if entries is None:
            entries = []
        default_entry = {
            "round": 1,
            "minutes": 90,
            "total_points": 5,
            "opponent_team": 20,
            "was_home": True,
            "goals_scored": 0,
            "assists": 0,
            "clean_sheets": 0,
            "bonus": 0,
            "expected_goals": "0.25",
            "expected_assists": "0.20",
        }
        result = []
        for i, entry in enumerate(entries):
            row = dict(default_entry)
            row["round"] = i + 1
            row.update(entry)
            result.append(MatchHistoryEntry(**row))
        return result
    return _make


@pytest.fixture
def make_fixture():
    """Factory for upcoming fixtures."""
    def _make(**overrides):
        base = {
            "fixture_id": 1,
            "gameweek": 24,
            "home_team_id": 1,
            "away_team_id": 2,
            "home_difficulty": 3,
            "away_difficulty": 3,
        }
        base.update(overrides)
        return UpcomingFixture(**base)
    return _make


@pytest.fixture
def make_team_stats():
    def _make(team_id, goals=1.3, conceded=1.3, played=10, **overrides):
        base = {
            "team_id": team_id,
            "played": played,
            "goals_per_game": goals,
            "conceded_per_game": conceded,
        }
        base.update(overrides)
        return TeamSeasonStats(**base)
    return _make


@pytest.fixture
def make_snapshot():
    """Build a snapshot from a team id list plus keyword inputs for rebuild_snapshot."""
    def _make(team_ids=(1, 2, 3), **kwargs):
        teams = [TeamInfo(id=tid, name=f"Team {tid}", short_name=f"T{tid}") for tid in team_ids]
        return rebuild_snapshot(teams=teams, **kwargs)
    return _make
