"""Tests for the attacking output sources/model and the expected points mapper."""
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from main import (
    AdvancedPlayerRecord,
    AttackingModel,
    ExpectedPointsMapper,
    IndexFallbackSource,
    Position,
    XptsConfig,
    attacking_model,
    ict_per_90,
    points_mapper,
)

import pytest


# =============================================================================
# Attacking sources
# =============================================================================

class TestAttackingSources:
    def test_advanced_record_wins(self, make_player):
        player = make_player(minutes=1800)
        advanced = AdvancedPlayerRecord(player_id=1, xg=9.0, xa=3.0, minutes=1800)
        rates = attacking_model.season_rates(player, advanced)
        assert rates.source == "advanced"
        assert rates.is_estimated is False
        assert rates.xgi_per_90 == pytest.approx(0.6)

    def test_advanced_without_minutes_falls_back_to_native(self, make_player):
        player = make_player(minutes=1800, expected_goals="4.5", expected_assists="3.8")
        advanced = AdvancedPlayerRecord(player_id=1, xg=9.0, xa=3.0, minutes=0)
        rates = attacking_model.season_rates(player, advanced)
        assert rates.source == "native"
        assert rates.is_estimated is True
        assert rates.xgi_per_90 == pytest.approx(8.3 / 1800 * 90)

    def test_index_fallback(self, make_player):
        player = make_player(
            minutes=1800, ict_index="120.0", form="5.0",
            expected_goals="0", expected_assists="0", expected_goal_involvements="0",
        )
        rates = attacking_model.season_rates(player)
        assert rates.source == "index"
        assert rates.is_estimated is True
        # ICT per 90 = 6.0; (6 + 5 * 2) / 15
        assert rates.xgi_per_90 == pytest.approx(16 / 15)

    def test_index_fallback_floor(self, make_player):
        player = make_player(minutes=0, ict_index="0", form="0", expected_goal_involvements="0")
        assert attacking_model.season_rates(player).xgi_per_90 == pytest.approx(0.1)

    def test_index_fallback_ceiling(self, make_player):
        player = make_player(minutes=0, ict_index="40", form="9", expected_goal_involvements="0")
        assert attacking_model.season_rates(player).xgi_per_90 == pytest.approx(1.2)

    def test_raw_ict_below_one_game(self):
        assert ict_per_90("3.0", 45) == pytest.approx(3.0)
        assert ict_per_90("30.0", 180) == pytest.approx(15.0)

    def test_custom_source_order(self, make_player):
        model = AttackingModel(sources=[IndexFallbackSource()])
        advanced = AdvancedPlayerRecord(player_id=1, xg=9.0, xa=3.0, minutes=1800)
        assert model.season_rates(make_player(), advanced).source == "index"


# =============================================================================
# AttackingModel multipliers
# =============================================================================

class TestAttackingMultipliers:
    @pytest.mark.parametrize("defence,expected", [
        (2.0, 0.75),   # 0.5 raised to the floor
        (1.0, 1.0),
        (0.5, 1.35),   # 2.0 capped
        (0.0, 1.0),    # guarded
    ])
    def test_opponent_adjustment(self, defence, expected):
        assert attacking_model.opponent_adjustment(defence) == pytest.approx(expected)

    @pytest.mark.parametrize("fdr,position,expected", [
        (1, Position.FWD, 1.15),
        (5, Position.FWD, 0.83),
        (1, Position.MID, 1 + 0.15 * 0.9),
        (5, Position.GKP, 1 - 0.17 * 0.6),
        (3, Position.DEF, 1 + (0.99 - 1) * 0.7),
        (10, Position.FWD, 0.8),
    ])
    def test_difficulty_multiplier(self, fdr, position, expected):
        assert attacking_model.difficulty_multiplier(fdr, position) == pytest.approx(expected)

    def test_full_formula(self, make_player):
        player = make_player(element_type=4)
        advanced = AdvancedPlayerRecord(player_id=1, xg=9.0, xa=3.0, minutes=1800)
        output = attacking_model.calculate(
            player, expected_minutes=90, opponent_defence_index=1.0,
            difficulty=3, is_home=True, advanced=advanced,
        )
        xgi = 0.6 * 0.99 * 1.08
        assert output.expected_goal_involvements == pytest.approx(xgi, abs=1e-4)
        assert output.expected_goals == pytest.approx(xgi * 0.75, abs=1e-4)
        assert output.expected_assists == pytest.approx(xgi * 0.25, abs=1e-4)

    def test_default_goal_share(self, make_player):
        player = make_player(expected_goal_involvements="0")
        output = attacking_model.calculate(
            player, expected_minutes=90, opponent_defence_index=1.0, difficulty=3, is_home=True,
        )
        assert output.expected_goals == pytest.approx(output.expected_goal_involvements * 0.6, abs=1e-4)

    def test_h2h_and_form_scale_output(self, make_player):
        player = make_player()
        base = attacking_model.calculate(player, 90, 1.0, 3, True)
        boosted = attacking_model.calculate(player, 90, 1.0, 3, True, h2h_boost=1.1, form_multiplier=1.2)
        assert boosted.expected_goal_involvements == pytest.approx(
            base.expected_goal_involvements * 1.1 * 1.2, abs=1e-3
        )

    def test_zero_minutes_no_output(self, make_player):
        output = attacking_model.calculate(make_player(), 0, 1.0, 3, True)
        assert output.expected_goal_involvements == 0

    def test_away_lower_than_home(self, make_player):
        player = make_player()
        home = attacking_model.calculate(player, 90, 1.0, 3, True)
        away = attacking_model.calculate(player, 90, 1.0, 3, False)
        assert away.expected_goal_involvements < home.expected_goal_involvements


# =============================================================================
# ExpectedPointsMapper
# =============================================================================

class TestExpectedPointsMapper:
    def test_no_minutes(self):
        result = points_mapper.map(Position.MID, 0, 0, 0, 0.4, 10.0, season_ppg=5.0)
        assert result.appearance == 0
        assert result.clean_sheet == 0
        assert result.bonus == 0
        assert result.total == 0

    def test_appearance_ramp(self):
        assert points_mapper.map(Position.MID, 30, 0, 0, 0, 0).appearance == pytest.approx(1.5)
        assert points_mapper.map(Position.MID, 90, 0, 0, 0, 0).appearance == pytest.approx(2.0)

    def test_anchored_blend(self):
        """raw 5.0 (2 app + 2 goals + 0.6 assists + 0.4 bonus) -> 0.7 * 5 + 0.3 * 5."""
        result = points_mapper.map(Position.FWD, 90, 0.5, 0.2, 0.3, 10.0, season_ppg=5.0)
        assert result.goals == pytest.approx(2.0)
        assert result.assists == pytest.approx(0.6)
        assert result.clean_sheet == 0  # forwards get nothing for clean sheets
        assert result.bonus == pytest.approx(0.4)
        assert result.total == pytest.approx(5.0)

    def test_anchored_floor(self):
        result = points_mapper.map(Position.DEF, 90, 0, 0, 0, 0, season_ppg=-5.0)
        assert result.total == pytest.approx(1.0)

    @pytest.mark.parametrize("position,cap", [
        (Position.GKP, 8.0), (Position.DEF, 10.0), (Position.MID, 12.0), (Position.FWD, 11.0),
    ])
    def test_position_caps(self, position, cap):
        result = points_mapper.map(position, 90, 5.0, 3.0, 0.65, 40.0, season_ppg=15.0)
        assert result.total == pytest.approx(cap)

    def test_cameo_not_anchored(self):
        """At 45 minutes or less the raw total is used, without the 1 point floor."""
        result = points_mapper.map(Position.MID, 30, 0, 0, 0, 0, season_ppg=10.0)
        assert result.total == pytest.approx(1.5)

    def test_clean_sheet_scaled_by_minutes(self):
        full = points_mapper.map(Position.DEF, 90, 0, 0, 0.5, 0)
        partial = points_mapper.map(Position.DEF, 30, 0, 0, 0.5, 0)
        assert full.clean_sheet == pytest.approx(2.0)
        assert partial.clean_sheet == pytest.approx(1.0)

    def test_bonus_capped(self):
        result = points_mapper.map(Position.MID, 90, 0, 0, 0, 100.0)
        assert result.bonus == pytest.approx(0.8)

    def test_overridable_constants(self):
        mapper = ExpectedPointsMapper(XptsConfig(fixture_weight=1.0, baseline_weight=0.0))
        result = mapper.map(Position.FWD, 90, 0.5, 0.2, 0.3, 10.0, season_ppg=9.0)
        assert result.total == pytest.approx(5.0)

    def test_non_finite_inputs(self):
        result = points_mapper.map(Position.MID, float("nan"), float("inf"), None, float("nan"), None)
        assert result.total == 0
