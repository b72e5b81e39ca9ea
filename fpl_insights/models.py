from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any
from enum import Enum
from pydantic import BaseModel


# ============ ENUMS ============

class Position(str, Enum):
    GKP = "GKP"
    DEF = "DEF"
    MID = "MID"
    FWD = "FWD"

    @classmethod
    def from_element_type(cls, element_type: int) -> "Position":
        return {1: cls.GKP, 2: cls.DEF, 3: cls.MID, 4: cls.FWD}.get(element_type, cls.MID)

    @property
    def element_type(self) -> int:
        return {"GKP": 1, "DEF": 2, "MID": 3, "FWD": 4}[self.value]


class Strategy(str, Enum):
    MAX_POINTS = "max_points"
    VALUE = "value"
    SAFETY = "safety"
    DIFFERENTIAL = "differential"


class Severity(str, Enum):
    POSITIVE = "positive"
    INFO = "info"
    WARNING = "warning"
    DANGER = "danger"


class FormTrend(str, Enum):
    RISING = "rising"
    STABLE = "stable"
    FALLING = "falling"


class StrengthSource(str, Enum):
    ADVANCED = "advanced"
    FALLBACK = "fallback"


# ============ INPUT SCHEMAS ============
# FPL ships most numbers as strings ("4.5"); pydantic's lax mode coerces them.

class TeamSeasonStats(BaseModel):
    """Per-game team numbers derived from finished results."""
    team_id: int
    played: int = 0
    goals_per_game: Optional[float] = None
    conceded_per_game: Optional[float] = None
    home_goals_per_game: Optional[float] = None
    away_goals_per_game: Optional[float] = None
    home_conceded_per_game: Optional[float] = None
    away_conceded_per_game: Optional[float] = None
    clean_sheet_rate: Optional[float] = None
    home_clean_sheet_rate: Optional[float] = None
    away_clean_sheet_rate: Optional[float] = None
    form: int = 0               # League points from the last 5, out of 15
    last5_results: str = ""     # e.g. "WWDLW", most recent first


class AdvancedTeamStats(BaseModel):
    """Third-party expected-goals totals for a team."""
    team_id: int
    xg: float = 0.0
    xga: float = 0.0
    matches: int = 0

    @property
    def xg_per_game(self) -> Optional[float]:
        return self.xg / self.matches if self.matches > 0 else None

    @property
    def xga_per_game(self) -> Optional[float]:
        return self.xga / self.matches if self.matches > 0 else None


class PlayerSeasonStats(BaseModel):
    """Official fantasy-game season record for one player."""
    id: int
    team: int
    element_type: int = 3
    web_name: str = ""
    now_cost: int = 0
    total_points: int = 0
    minutes: int = 0
    goals_scored: int = 0
    assists: int = 0
    clean_sheets: int = 0
    bonus: int = 0
    chance_of_playing_next_round: Optional[float] = None
    ict_index: float = 0.0
    form: float = 0.0
    expected_goals: float = 0.0
    expected_assists: float = 0.0
    expected_goal_involvements: float = 0.0
    selected_by_percent: float = 0.0
    status: str = "a"
    news: str = ""

    class Config:
        extra = "allow"  # Allow the rest of the bootstrap element payload

    @property
    def position(self) -> Position:
        return Position.from_element_type(self.element_type)


class AdvancedPlayerRecord(BaseModel):
    player_id: int
    xg: float = 0.0
    xa: float = 0.0
    minutes: int = 0
    shots: Optional[int] = None
    big_chances: Optional[int] = None


class MatchHistoryEntry(BaseModel):
    """One row of a player's per-gameweek history."""
    round: int
    minutes: int = 0
    total_points: int = 0
    opponent_team: Optional[int] = None
    was_home: Optional[bool] = None
    goals_scored: int = 0
    assists: int = 0
    clean_sheets: int = 0
    bonus: int = 0
    expected_goals: float = 0.0
    expected_assists: float = 0.0


class UpcomingFixture(BaseModel):
    fixture_id: int
    gameweek: Optional[int] = None
    home_team_id: int
    away_team_id: int
    home_difficulty: int = 3
    away_difficulty: int = 3

    def is_home_for(self, team_id: int) -> bool:
        return self.home_team_id == team_id

    def opponent_of(self, team_id: int) -> int:
        return self.away_team_id if self.home_team_id == team_id else self.home_team_id

    def difficulty_for(self, team_id: int) -> int:
        return self.home_difficulty if self.home_team_id == team_id else self.away_difficulty

    def involves(self, team_id: int) -> bool:
        return team_id in (self.home_team_id, self.away_team_id)


class OddsImpliedGoals(BaseModel):
    fixture_id: int
    home_xg: Optional[float] = None
    away_xg: Optional[float] = None
    is_estimated: bool = False


class FinishedFixture(BaseModel):
    fixture_id: int
    gameweek: Optional[int] = None
    home_team_id: int
    away_team_id: int
    home_score: int
    away_score: int
    kickoff_time: Optional[str] = None


class TeamInfo(BaseModel):
    id: int
    name: str = ""
    short_name: str = ""


class SquadEntry(BaseModel):
    player_id: int
    cost: int
    position: Optional[Position] = None


class RecommendationRequest(BaseModel):
    squad: List[SquadEntry]
    bank: int = 0
    horizon: int = 5
    strategy: Strategy = Strategy.MAX_POINTS
    include_injured: bool = False


class SeasonData(BaseModel):
    """Everything loaded from season.json (and optional side files)."""
    teams: List[TeamInfo] = []
    players: List[PlayerSeasonStats] = []
    histories: Dict[int, List[MatchHistoryEntry]] = {}
    fixtures: List[UpcomingFixture] = []
    results: List[FinishedFixture] = []
    advanced_teams: List[AdvancedTeamStats] = []
    advanced_players: List[AdvancedPlayerRecord] = []
    odds: List[OddsImpliedGoals] = []


# =============================================================================
# MODEL DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class TeamStrengthProfile:
    """Attack/defence indices relative to the league average (1.0 = average)."""
    team_id: int
    attack_index: float
    defence_index: float
    xg_per_game: float
    xga_per_game: float
    source: StrengthSource = StrengthSource.FALLBACK


@dataclass
class FixtureProjection:
    """Implied goals and clean sheet chances for one fixture."""
    fixture_id: int
    home_team_id: int
    away_team_id: int
    home_xg: float
    away_xg: float
    home_clean_sheet_prob: float
    away_clean_sheet_prob: float
    estimated: bool = True

    def xg_for(self, team_id: int) -> float:
        return self.home_xg if team_id == self.home_team_id else self.away_xg

    def clean_sheet_prob_for(self, team_id: int) -> float:
        return self.home_clean_sheet_prob if team_id == self.home_team_id else self.away_clean_sheet_prob


@dataclass
class SeasonBaseline:
    player_id: int
    points_per_90: float = 0.0
    points_per_game: float = 0.0
    recent_points_per_90: float = 0.0
    form_multiplier: float = 1.0
    games_played: int = 0
    total_minutes: int = 0
    total_points: int = 0


@dataclass
class MinutesModel:
    expected_minutes: float
    role_factor: float
    average_minutes: float
    is_returning_from_absence: bool = False


@dataclass
class SourceRates:
    """What one attacking data source says about a player's season rates."""
    xg: float
    xa: float
    xgi_per_90: float
    is_estimated: bool
    source: str


@dataclass
class AttackingOutput:
    """Per-fixture attacking returns, plus the season rates they came from."""
    expected_goals: float
    expected_assists: float
    expected_goal_involvements: float
    xgi_per_90: float
    xg: float
    xa: float
    source: str
    is_estimated: bool


@dataclass
class PointsBreakdown:
    appearance: float = 0.0
    goals: float = 0.0
    assists: float = 0.0
    clean_sheet: float = 0.0
    bonus: float = 0.0
    total: float = 0.0

    @property
    def raw_total(self) -> float:
        return self.appearance + self.goals + self.assists + self.clean_sheet + self.bonus


@dataclass
class PlayerFixtureProjection:
    fixture_id: int
    gameweek: Optional[int]
    opponent_id: int
    is_home: bool
    difficulty: int
    expected_points: float
    breakdown: PointsBreakdown
    expected_goals: float
    expected_assists: float
    expected_goal_involvements: float
    xgi_per_90: float
    clean_sheet_prob: float
    weight: float
    is_estimated: bool
    shots: Optional[int] = None
    big_chances: Optional[int] = None


@dataclass
class ConfidenceFactor:
    text: str
    severity: Severity


@dataclass
class ConfidenceScore:
    score: int
    label: str
    factors: List[ConfidenceFactor] = field(default_factory=list)


@dataclass
class PlayerProjection:
    player_id: int
    position: Position
    team_id: int
    cost: int
    expected_points_next_fixture: float
    expected_points_next3: float
    expected_points_next5: float
    horizon_points: float
    low: float
    high: float
    breakdown: PointsBreakdown
    fixtures: List[PlayerFixtureProjection]
    advanced: Dict[str, Any]
    is_estimated: bool
    baseline: SeasonBaseline
    minutes: MinutesModel
    confidence: ConfidenceScore
    form_trend: FormTrend
    average_difficulty: float
    team_momentum: float
    ownership: float
    value_score: float

    @property
    def minutes_pct(self) -> float:
        return round(self.minutes.expected_minutes / 90 * 100, 1)

    @property
    def momentum_pct(self) -> float:
        return round(self.team_momentum * 100, 1)


@dataclass
class TransferReason:
    text: str
    severity: Severity = Severity.POSITIVE


@dataclass
class TransferRecommendation:
    player_out: PlayerProjection
    player_in: PlayerProjection
    net_gain: float
    cost_change: int
    budget_after: int
    reasons: List[TransferReason]
    new_squad_total: float


@dataclass
class PositionTargets:
    position: Position
    targets: List[PlayerProjection]


@dataclass
class SquadBaseline:
    total_projected_points: float
    average_confidence: int


@dataclass
class RecommendationResult:
    best_transfer: Optional[TransferRecommendation]
    top_transfers: List[TransferRecommendation]
    top_targets_by_position: List[PositionTargets]
    horizon: int
    strategy: Strategy
    squad_baseline: SquadBaseline


@dataclass
class TeamFixtureOutlook:
    fixture_id: int
    gameweek: Optional[int]
    opponent_id: int
    is_home: bool
    clean_sheet_prob: float
    implied_goals: float
    estimated: bool


@dataclass
class TeamOutlook:
    team_id: int
    attack_index: float
    defence_index: float
    upcoming_clean_sheet_prob: float
    implied_goals_next: float
    fixtures: List[TeamFixtureOutlook]
    estimated: bool
