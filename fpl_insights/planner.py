"""
FPL Insights - Transfer Planner Module

Candidate pools per position, one-for-one transfer comparison with
explanation tags, and strategy-specific ordering.
"""

import logging
from collections import defaultdict
from typing import Dict, Iterable, List

from fpl_insights.config import MODEL_CONFIG, TransferConfig
from fpl_insights.constants import mean
from fpl_insights.models import (
    PlayerProjection, PlayerSeasonStats, Position, PositionTargets,
    RecommendationRequest, RecommendationResult, SquadBaseline, SquadEntry,
    Strategy, TransferReason, TransferRecommendation, FormTrend,
)
from fpl_insights.services import project_player, resolve_horizon
from fpl_insights.snapshot import ProjectionSnapshot

logger = logging.getLogger("fpl_insights")


# ============ ORDERING ============

def sort_by_strategy(projections: Iterable[PlayerProjection], strategy: Strategy) -> List[PlayerProjection]:
    """Order candidates the way the strategy values them."""
    projections = list(projections)
    if strategy == Strategy.VALUE:
        return sorted(projections, key=lambda p: p.value_score, reverse=True)
    if strategy == Strategy.SAFETY:
        return sorted(projections, key=lambda p: p.confidence.score, reverse=True)
    if strategy == Strategy.DIFFERENTIAL:
        return sorted(projections, key=lambda p: p.ownership)
    return sorted(projections, key=lambda p: p.horizon_points, reverse=True)


def sort_transfers(transfers: List[TransferRecommendation], strategy: Strategy) -> List[TransferRecommendation]:
    if strategy == Strategy.VALUE:
        return sorted(transfers, key=lambda t: t.player_in.value_score, reverse=True)
    if strategy == Strategy.SAFETY:
        return sorted(transfers, key=lambda t: t.player_in.confidence.score, reverse=True)
    if strategy == Strategy.DIFFERENTIAL:
        return sorted(transfers, key=lambda t: (t.player_in.ownership, -t.net_gain))
    return sorted(transfers, key=lambda t: t.net_gain, reverse=True)


# ============ CANDIDATE POOLS ============

def is_selectable(player: PlayerSeasonStats, include_injured: bool = False, config: TransferConfig = None) -> bool:
    config = config or MODEL_CONFIG["transfers"]
    return include_injured or player.status not in config.excluded_statuses


def build_candidate_pool(
    snapshot: ProjectionSnapshot,
    position: Position,
    horizon: int,
    strategy: Strategy = Strategy.MAX_POINTS,
    include_injured: bool = False,
    config: TransferConfig = None,
) -> List[PlayerProjection]:
    """
    Project the strongest season performers at a position and keep the
    best targets_per_position by strategy.
    """
    config = config or MODEL_CONFIG["transfers"]
    players = [
        p for p in snapshot.players.values()
        if p.position == position and is_selectable(p, include_injured, config)
    ]
    players.sort(key=lambda p: p.total_points, reverse=True)
    projections = [project_player(p, snapshot, horizon) for p in players[:config.pool_size]]
    return sort_by_strategy(projections, strategy)[:config.targets_per_position]


# ============ TRANSFER COMPARISON ============

def transfer_reasons(
    player_out: PlayerProjection,
    player_in: PlayerProjection,
    net_gain: float,
    horizon: int,
    config: TransferConfig = None,
) -> List[TransferReason]:
    """Positive explanation tags for swapping player_out for player_in."""
    config = config or MODEL_CONFIG["transfers"]
    reasons = []
    if net_gain > 0:
        reasons.append(TransferReason(f"+{net_gain:.1f} projected points over {horizon} GWs"))
    if player_in.average_difficulty < player_out.average_difficulty - config.fixture_ease_delta:
        reasons.append(TransferReason(
            f"Easier fixtures (FDR {player_in.average_difficulty:.1f} vs {player_out.average_difficulty:.1f})"
        ))
    if player_in.minutes_pct > player_out.minutes_pct + config.minutes_delta:
        reasons.append(TransferReason(
            f"Better minutes security ({player_in.minutes_pct:.0f}% vs {player_out.minutes_pct:.0f}%)"
        ))
    if player_in.momentum_pct > player_out.momentum_pct + config.momentum_delta:
        reasons.append(TransferReason(f"Team in better form ({player_in.momentum_pct:.0f}% momentum)"))
    if player_in.value_score > player_out.value_score + config.value_delta:
        reasons.append(TransferReason(
            f"Better value ({player_in.value_score:.2f} vs {player_out.value_score:.2f} pts/£m)"
        ))
    if player_in.form_trend == FormTrend.RISING and player_out.form_trend != FormTrend.RISING:
        reasons.append(TransferReason("Form improving"))
    if player_in.confidence.score > player_out.confidence.score + config.confidence_delta:
        reasons.append(TransferReason(f"More reliable ({player_in.confidence.score}% confidence)"))
    return reasons


def recommend_transfers(
    squad: List[SquadEntry],
    squad_projections: Dict[int, PlayerProjection],
    targets_by_position: List[PositionTargets],
    bank: int,
    horizon: int,
    strategy: Strategy = Strategy.MAX_POINTS,
    config: TransferConfig = None,
) -> RecommendationResult:
    """
    Compare every squad member with the affordable, eligible targets at
    their position. A transfer is surfaced when it gains points or has
    enough other reasons going for it.
    """
    config = config or MODEL_CONFIG["transfers"]
    squad_ids = {entry.player_id for entry in squad}
    targets = {t.position: t.targets for t in targets_by_position}

    team_counts: Dict[int, int] = defaultdict(int)
    for entry in squad:
        projection = squad_projections.get(entry.player_id)
        if projection is not None:
            team_counts[projection.team_id] += 1

    total_squad_points = sum(
        squad_projections[e.player_id].horizon_points for e in squad if e.player_id in squad_projections
    )

    transfers: List[TransferRecommendation] = []
    for entry in squad:
        current = squad_projections.get(entry.player_id)
        if current is None:
            continue

        available = bank + entry.cost
        position = entry.position or current.position

        for candidate in targets.get(position, []):
            if candidate.player_id in squad_ids:
                continue
            if candidate.cost > available:
                continue
            if candidate.team_id != current.team_id and team_counts[candidate.team_id] >= config.max_per_team:
                continue

            net_gain = candidate.horizon_points - current.horizon_points
            reasons = transfer_reasons(current, candidate, net_gain, horizon, config)

            if net_gain > 0 or len(reasons) >= config.min_reasons_without_gain:
                transfers.append(TransferRecommendation(
                    player_out=current,
                    player_in=candidate,
                    net_gain=round(net_gain, 1),
                    cost_change=entry.cost - candidate.cost,
                    budget_after=bank + entry.cost - candidate.cost,
                    reasons=reasons,
                    new_squad_total=round(total_squad_points - current.horizon_points + candidate.horizon_points, 1),
                ))

    transfers = sort_transfers(transfers, strategy)
    confidences = [p.confidence.score for p in squad_projections.values()]

    return RecommendationResult(
        best_transfer=transfers[0] if transfers else None,
        top_transfers=transfers[:config.top_transfers],
        top_targets_by_position=targets_by_position,
        horizon=horizon,
        strategy=strategy,
        squad_baseline=SquadBaseline(
            total_projected_points=round(total_squad_points, 1),
            average_confidence=int(round(mean(confidences))),
        ),
    )


def generate_recommendations(
    request: RecommendationRequest,
    snapshot: ProjectionSnapshot,
    config: TransferConfig = None,
) -> RecommendationResult:
    """Project the squad and every position's candidate pool, then compare."""
    config = config or MODEL_CONFIG["transfers"]
    horizon = resolve_horizon(request.horizon)

    squad_projections: Dict[int, PlayerProjection] = {}
    for entry in request.squad:
        player = snapshot.players.get(entry.player_id)
        if player is None:
            logger.warning(f"Squad player {entry.player_id} not in snapshot, skipping")
            continue
        squad_projections[entry.player_id] = project_player(player, snapshot, horizon)

    targets_by_position = [
        PositionTargets(
            position=position,
            targets=build_candidate_pool(
                snapshot, position, horizon, request.strategy, request.include_injured, config
            ),
        )
        for position in Position
    ]

    result = recommend_transfers(
        request.squad,
        squad_projections,
        targets_by_position,
        bank=request.bank,
        horizon=horizon,
        strategy=request.strategy,
        config=config,
    )
    logger.info(
        f"Recommendations ({request.strategy.value}, {horizon} GWs): "
        f"{len(result.top_transfers)} transfers for {len(squad_projections)} squad players"
    )
    return result
