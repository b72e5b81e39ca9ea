"""Tests for the transfer planner: candidate pools, comparisons and strategies."""
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from main import (
    ConfidenceScore,
    FormTrend,
    MinutesModel,
    PlayerProjection,
    PointsBreakdown,
    Position,
    PositionTargets,
    RecommendationRequest,
    SeasonBaseline,
    SquadEntry,
    Strategy,
    TransferConfig,
    build_candidate_pool,
    generate_recommendations,
    get_confidence_label,
    recommend_transfers,
    sort_by_strategy,
)

import pytest


def _projection(
    player_id,
    team_id=1,
    horizon_points=4.0,
    cost=60,
    position=Position.MID,
    difficulty=3.0,
    expected_minutes=80.0,
    momentum=0.5,
    confidence=70,
    ownership=10.0,
    form_trend=FormTrend.STABLE,
):
    return PlayerProjection(
        player_id=player_id,
        position=position,
        team_id=team_id,
        cost=cost,
        expected_points_next_fixture=horizon_points / 5,
        expected_points_next3=horizon_points * 0.6,
        expected_points_next5=horizon_points,
        horizon_points=horizon_points,
        low=horizon_points * 0.75,
        high=horizon_points * 1.25,
        breakdown=PointsBreakdown(),
        fixtures=[],
        advanced={},
        is_estimated=False,
        baseline=SeasonBaseline(player_id=player_id),
        minutes=MinutesModel(expected_minutes=expected_minutes, role_factor=1.0, average_minutes=expected_minutes),
        confidence=ConfidenceScore(score=confidence, label=get_confidence_label(confidence)),
        form_trend=form_trend,
        average_difficulty=difficulty,
        team_momentum=momentum,
        ownership=ownership,
        value_score=round(horizon_points / (cost / 10), 3),
    )


def _recommend(squad_projections, targets, bank=10, strategy=Strategy.MAX_POINTS):
    squad = [SquadEntry(player_id=p.player_id, cost=p.cost) for p in squad_projections]
    by_position = {}
    for target in targets:
        by_position.setdefault(target.position, []).append(target)
    return recommend_transfers(
        squad,
        {p.player_id: p for p in squad_projections},
        [PositionTargets(position=pos, targets=t) for pos, t in by_position.items()],
        bank=bank,
        horizon=5,
        strategy=strategy,
    )


# =============================================================================
# recommend_transfers
# =============================================================================

class TestRecommendTransfers:
    def test_simple_upgrade(self):
        out = _projection(1, horizon_points=4.0, cost=60)
        target = _projection(2, horizon_points=7.0, cost=65)
        result = _recommend([out], [target], bank=10)

        best = result.best_transfer
        assert best is not None
        assert best.player_out.player_id == 1
        assert best.player_in.player_id == 2
        assert best.net_gain == pytest.approx(3.0)
        assert best.cost_change == -5
        assert best.budget_after == 5
        assert best.new_squad_total == pytest.approx(7.0)
        texts = [r.text for r in best.reasons]
        assert texts[0] == "+3.0 projected points over 5 GWs"
        assert any(t.startswith("Better value") for t in texts)

    def test_unaffordable_target_skipped(self):
        out = _projection(1, horizon_points=4.0, cost=60)
        target = _projection(2, horizon_points=9.0, cost=75)
        result = _recommend([out], [target], bank=10)
        assert result.best_transfer is None
        assert result.top_transfers == []

    def test_exact_budget_allowed(self):
        out = _projection(1, horizon_points=4.0, cost=60)
        target = _projection(2, horizon_points=9.0, cost=70)
        result = _recommend([out], [target], bank=10)
        assert result.best_transfer.budget_after == 0

    def test_other_position_not_compared(self):
        out = _projection(1, position=Position.DEF, horizon_points=2.0, cost=45)
        target = _projection(2, position=Position.MID, horizon_points=9.0, cost=45)
        assert _recommend([out], [target]).top_transfers == []

    def test_already_owned_target_skipped(self):
        weak = _projection(1, horizon_points=3.0)
        strong = _projection(2, horizon_points=8.0)
        result = _recommend([weak, strong], [strong])
        assert result.top_transfers == []

    def test_three_per_team_limit(self):
        out = _projection(1, team_id=1, horizon_points=4.0)
        def_a = _projection(11, team_id=5, position=Position.DEF, cost=45)
        def_b = _projection(12, team_id=5, position=Position.DEF, cost=45)
        same_team_mid = _projection(13, team_id=5, horizon_points=3.0)
        target = _projection(2, team_id=5, horizon_points=7.0, cost=60)

        result = _recommend([out, def_a, def_b, same_team_mid], [target])
        # Only swapping out the team-5 midfielder keeps the club count at three
        assert [t.player_out.player_id for t in result.top_transfers] == [13]

    def test_no_gain_surfaced_with_enough_reasons(self):
        out = _projection(1, horizon_points=4.0, difficulty=3.5, expected_minutes=54.0, momentum=0.3)
        target = _projection(2, horizon_points=4.0, difficulty=2.5, expected_minutes=90.0, momentum=0.8)
        result = _recommend([out], [target])

        best = result.best_transfer
        assert best.net_gain == 0
        texts = [r.text for r in best.reasons]
        assert "Easier fixtures (FDR 2.5 vs 3.5)" in texts
        assert "Better minutes security (100% vs 60%)" in texts
        assert "Team in better form (80% momentum)" in texts

    def test_no_gain_two_reasons_not_surfaced(self):
        out = _projection(1, horizon_points=4.0, difficulty=3.5, expected_minutes=54.0)
        target = _projection(2, horizon_points=4.0, difficulty=2.5, expected_minutes=90.0)
        assert _recommend([out], [target]).best_transfer is None

    def test_rising_form_and_reliability_reasons(self):
        out = _projection(1, horizon_points=4.0, confidence=50)
        target = _projection(2, horizon_points=5.0, confidence=80, form_trend=FormTrend.RISING)
        texts = [r.text for r in _recommend([out], [target]).best_transfer.reasons]
        assert "Form improving" in texts
        assert "More reliable (80% confidence)" in texts

    def test_squad_baseline(self):
        squad = [_projection(1, horizon_points=4.0, confidence=60), _projection(2, horizon_points=6.5, confidence=80)]
        baseline = _recommend(squad, []).squad_baseline
        assert baseline.total_projected_points == pytest.approx(10.5)
        assert baseline.average_confidence == 70


# =============================================================================
# Strategy ordering
# =============================================================================

class TestStrategyOrdering:
    @pytest.fixture
    def candidates(self):
        return [
            _projection(1, horizon_points=9.0, cost=120, confidence=60, ownership=45.0),
            _projection(2, horizon_points=6.0, cost=50, confidence=75, ownership=3.0),
            _projection(3, horizon_points=7.0, cost=80, confidence=90, ownership=20.0),
        ]

    @pytest.mark.parametrize("strategy,order", [
        (Strategy.MAX_POINTS, [1, 3, 2]),
        (Strategy.VALUE, [2, 3, 1]),
        (Strategy.SAFETY, [3, 2, 1]),
        (Strategy.DIFFERENTIAL, [2, 3, 1]),
    ])
    def test_sort_by_strategy(self, candidates, strategy, order):
        assert [p.player_id for p in sort_by_strategy(candidates, strategy)] == order

    def test_transfers_follow_strategy(self, candidates):
        out = _projection(10, horizon_points=1.0, cost=60)
        result = _recommend([out], candidates, bank=100, strategy=Strategy.SAFETY)
        assert [t.player_in.player_id for t in result.top_transfers] == [3, 2, 1]


# =============================================================================
# Candidate pools and end-to-end
# =============================================================================

class TestCandidatePool:
    def test_unavailable_players_excluded(self, make_player, make_snapshot):
        players = [
            make_player(id=1, status="a"),
            make_player(id=2, status="i"),
            make_player(id=3, status="d"),
            make_player(id=4, status="s"),
            make_player(id=5, element_type=2),
        ]
        snapshot = make_snapshot(players=players)
        ids = {p.player_id for p in build_candidate_pool(snapshot, Position.MID, 5)}
        assert ids == {1, 3}

        with_injured = build_candidate_pool(snapshot, Position.MID, 5, include_injured=True)
        assert {p.player_id for p in with_injured} == {1, 2, 3, 4}

    def test_pool_limited_by_season_points(self, make_player, make_snapshot):
        players = [make_player(id=i, total_points=10 * i) for i in range(1, 6)]
        snapshot = make_snapshot(players=players)
        config = TransferConfig(pool_size=2, targets_per_position=5)
        ids = {p.player_id for p in build_candidate_pool(snapshot, Position.MID, 5, config=config)}
        assert ids == {4, 5}


class TestGenerateRecommendations:
    def test_end_to_end(self, make_player, make_snapshot, make_fixture):
        players = [
            make_player(id=1, now_cost=50, total_points=30, expected_goals="0.5",
                        expected_assists="0.5", expected_goal_involvements="1.0"),
            make_player(id=2, now_cost=60, total_points=120),
            make_player(id=3, element_type=2, now_cost=45, team=2),
        ]
        fixtures = [make_fixture(fixture_id=i, gameweek=24 + i) for i in range(3)]
        snapshot = make_snapshot(players=players, fixtures=fixtures)
        request = RecommendationRequest(
            squad=[SquadEntry(player_id=1, cost=50), SquadEntry(player_id=999, cost=50)],
            bank=20,
            horizon=3,
        )
        result = generate_recommendations(request, snapshot)

        assert result.horizon == 3
        assert result.strategy == Strategy.MAX_POINTS
        assert [t.position for t in result.top_targets_by_position] == list(Position)
        assert result.best_transfer.player_out.player_id == 1
        assert result.best_transfer.player_in.player_id == 2
        assert result.best_transfer.net_gain > 0
        assert len(result.best_transfer.player_in.fixtures) == 3

    def test_horizon_clamped(self, make_player, make_snapshot):
        snapshot = make_snapshot(players=[make_player(id=1)])
        request = RecommendationRequest(squad=[SquadEntry(player_id=1, cost=70)], horizon=40)
        assert generate_recommendations(request, snapshot).horizon == 10
