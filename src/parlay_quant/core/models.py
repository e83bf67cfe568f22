"""
Data model for parlay and portfolio evaluation.

Everything here is plain, immutable structured data. Inputs (legs, assets)
are supplied by the caller per evaluation; outputs are built once per call
and returned by value.
"""

import numbers
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from ..betting.odds_utils import american_to_decimal, format_american, implied_probability
from ..utils.logging_config import InputError


class RiskType(str, Enum):
    INJURY = 'INJURY'
    CORRELATION = 'CORRELATION'
    MARKET_SIGNAL = 'MARKET_SIGNAL'
    VALUE = 'VALUE'
    DATA_STALE = 'DATA_STALE'
    INPUT = 'INPUT'


class Severity(str, Enum):
    """Risk severity and recommendation priority, ordered LOW < CRITICAL"""
    LOW = 'LOW'
    MEDIUM = 'MEDIUM'
    HIGH = 'HIGH'
    CRITICAL = 'CRITICAL'

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.LOW: 1, Severity.MEDIUM: 2, Severity.HIGH: 3, Severity.CRITICAL: 4}


class OverallRisk(str, Enum):
    LOW = 'LOW'
    MEDIUM = 'MEDIUM'
    HIGH = 'HIGH'
    REJECTED = 'REJECTED'


class Verdict(str, Enum):
    POSITIVE_EV = 'POSITIVE_EV'
    NEGATIVE_EV = 'NEGATIVE_EV'
    REJECTED = 'REJECTED'
    ERROR = 'ERROR'


class Confidence(str, Enum):
    LOW = 'LOW'
    MEDIUM = 'MEDIUM'
    HIGH = 'HIGH'


class Objective(str, Enum):
    """Portfolio selection objectives"""
    MAX_SHARPE = 'max_sharpe'
    MIN_VARIANCE = 'min_variance'
    MAX_RETURN = 'max_return'
    RISK_PARITY = 'risk_parity'


class PipelineStage(str, Enum):
    VALIDATE_INPUT = 'VALIDATE_INPUT'
    COMPUTE_COMBINED_METRICS = 'COMPUTE_COMBINED_METRICS'
    ASSESS_RISK = 'ASSESS_RISK'
    RECOMMEND = 'RECOMMEND'
    SUMMARIZE = 'SUMMARIZE'
    DONE = 'DONE'
    ERROR = 'ERROR'


class RecommendationType(str, Enum):
    REJECTION = 'REJECTION'
    EV = 'EV'
    STAKE = 'STAKE'
    RISK = 'RISK'
    ACTION = 'ACTION'


class CorrelationTag(str, Enum):
    """
    Closed set of leg correlation classifications.

    Upstream free text must be mapped to one of these values before it
    reaches the core; only the exact aliases below are accepted.
    """
    NONE = 'none'
    POSITIVE_HIGH = 'positive_high'
    NEGATIVE = 'negative'

    @classmethod
    def coerce(cls, value: Union['CorrelationTag', str, None]) -> 'CorrelationTag':
        if value is None:
            return cls.NONE
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise InputError(f"Correlation tag must be a string, got {type(value).__name__}",
                             field='correlation_notes')

        normalized = value.strip().lower()
        if normalized in _CORRELATION_ALIASES:
            return _CORRELATION_ALIASES[normalized]
        try:
            return cls(normalized)
        except ValueError:
            raise InputError(
                f"Unknown correlation tag '{value}'; expected one of "
                f"{[tag.value for tag in cls]}",
                field='correlation_notes'
            ) from None


_CORRELATION_ALIASES = {
    '': CorrelationTag.NONE,
    'high positive': CorrelationTag.POSITIVE_HIGH,
}


@dataclass(frozen=True)
class MarketSignals:
    reverse_line_movement: Optional[str] = None


@dataclass(frozen=True)
class Leg:
    """One parlay leg priced in American odds"""
    market_type: str
    selection: str
    price: int
    model_probability: float
    correlation_notes: CorrelationTag = CorrelationTag.NONE
    injury_gates: Tuple[str, ...] = ()
    market_signals: MarketSignals = field(default_factory=MarketSignals)
    timestamp: Optional[Union[str, datetime]] = None
    correlation_score: Optional[float] = None
    leg_id: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.injury_gates, list):
            object.__setattr__(self, 'injury_gates', tuple(self.injury_gates))

    @property
    def label(self) -> str:
        return self.leg_id or f"{self.market_type}: {self.selection}"

    @property
    def correlation_tag(self) -> CorrelationTag:
        return CorrelationTag.coerce(self.correlation_notes)

    @property
    def decimal_odds(self) -> float:
        return american_to_decimal(self.price)

    @property
    def implied_probability(self) -> float:
        return implied_probability(self.decimal_odds)


@dataclass(frozen=True)
class Asset:
    """
    One investable unit.

    ``correlations`` maps other asset ids to a correlation in [-1, 1];
    ``returns`` is an optional historical return series; ``beta`` feeds the
    capital-asset-pricing estimate; ``market_weight`` is the equilibrium
    weight used for the Black-Litterman prior; ``liquidity`` caps the share of
    capital the asset can absorb.
    """
    asset_id: str
    expected_return: Optional[float]
    volatility: float
    correlations: Mapping[str, float] = field(default_factory=dict)
    returns: Optional[Tuple[float, ...]] = None
    beta: Optional[float] = None
    market_weight: Optional[float] = None
    liquidity: Optional[float] = None

    def __post_init__(self):
        if self.returns is not None and not isinstance(self.returns, tuple):
            object.__setattr__(self, 'returns', tuple(self.returns))


@dataclass(frozen=True)
class PortfolioConstraints:
    """
    Box constraints and optional risk limits for one portfolio evaluation.

    ``min_weight`` / ``max_weight`` are a scalar applied to every asset or one
    value per asset. Limits left as None fall back to the configured
    defaults.
    """
    min_weight: Union[float, Sequence[float]] = 0.0
    max_weight: Union[float, Sequence[float]] = 1.0
    max_value_at_risk: Optional[float] = None
    max_drawdown: Optional[float] = None
    max_concentration: Optional[float] = None

    def bounds(self, n_assets: int) -> Tuple[List[float], List[float]]:
        lower = _expand_bound(self.min_weight, n_assets, 'min_weight')
        upper = _expand_bound(self.max_weight, n_assets, 'max_weight')

        for i, (lo, hi) in enumerate(zip(lower, upper)):
            if not 0 <= lo <= hi <= 1:
                raise InputError(f"Weight bounds for asset {i} must satisfy 0 <= min <= max <= 1, "
                                 f"got [{lo}, {hi}]", field='constraints')
        return lower, upper


def _expand_bound(value, n_assets: int, name: str) -> List[float]:
    if isinstance(value, numbers.Real) and not isinstance(value, bool):
        return [float(value)] * n_assets
    try:
        values = [float(v) for v in value]
    except (TypeError, ValueError):
        raise InputError(f"{name} must be a number or one number per asset, got {value!r}",
                         field='constraints') from None
    if len(values) != n_assets:
        raise InputError(f"{name} has {len(values)} entries for {n_assets} assets", field='constraints')
    return values


@dataclass(frozen=True)
class PortfolioMetrics:
    """
    Metrics of one weight vector.

    ``weights`` are the committed asset weights; together with
    ``uncommitted_weight`` (capital parked in the zero-volatility
    placeholder by the risk overlay) they sum to 1.
    """
    asset_ids: Tuple[str, ...]
    weights: Tuple[float, ...]
    expected_return: float
    variance: float
    volatility: float
    sharpe_ratio: float
    value_at_risk: float
    conditional_value_at_risk: float
    max_drawdown_estimate: float
    diversification_ratio: float
    uncommitted_weight: float = 0.0
    objective: Optional[Objective] = None
    notes: Tuple[str, ...] = ()

    @property
    def weight_map(self) -> Dict[str, float]:
        return dict(zip(self.asset_ids, self.weights))

    def to_dict(self) -> Dict[str, Any]:
        return to_plain(self)


@dataclass(frozen=True)
class KellyStake:
    full_kelly_fraction: float
    half_kelly_fraction: float
    quarter_kelly_fraction: float
    recommended_fraction: float
    bankroll_allocation_percent: float


@dataclass(frozen=True)
class ParlayMetrics:
    """Combined metrics of a parlay, shaped like PortfolioMetrics for a unit stake"""
    combined_decimal_odds: float
    combined_american_odds: Optional[int]
    raw_probability: float
    correlation_adjustment: float
    combined_probability: float
    parlay_ev_percent: float
    kelly_stake: KellyStake
    correlation_score: Optional[float]
    expected_return: float
    variance: float
    volatility: float
    sharpe_ratio: float
    value_at_risk: Optional[float] = None
    conditional_value_at_risk: Optional[float] = None
    simulated_probability: Optional[float] = None
    overall_risk: Optional[OverallRisk] = None
    rejection_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = to_plain(self)
        data['combined_american_odds'] = format_american(self.combined_american_odds)
        return data


@dataclass(frozen=True)
class Risk:
    type: RiskType
    severity: Severity
    message: str
    impact: str = ''


@dataclass(frozen=True)
class RiskAssessment:
    risks: Tuple[Risk, ...]
    overall_risk: OverallRisk

    @property
    def risk_factors(self) -> List[RiskType]:
        return [risk.type for risk in self.risks]

    def with_severity(self, severity: Severity) -> List[Risk]:
        return [risk for risk in self.risks if risk.severity == severity]

    def first(self, risk_type: RiskType) -> Optional[Risk]:
        return next((risk for risk in self.risks if risk.type == risk_type), None)


@dataclass(frozen=True)
class Recommendation:
    priority: Severity
    type: RecommendationType
    message: str
    action: Optional[str] = None


@dataclass(frozen=True)
class RecommendationSet:
    recommendations: Tuple[Recommendation, ...]
    primary_action: str

    def __iter__(self) -> Iterator[Recommendation]:
        return iter(self.recommendations)

    def __len__(self) -> int:
        return len(self.recommendations)


@dataclass(frozen=True)
class Summary:
    verdict: Verdict
    confidence: Confidence
    key_metric: str
    risk_level: Optional[str]
    primary_action: str


@dataclass(frozen=True)
class LegSensitivity:
    """Break-even model probability of one leg with the other legs held fixed"""
    label: str
    model_probability: float
    break_even_probability: float
    margin: float
    achievable: bool


@dataclass(frozen=True)
class SensitivityReport:
    legs: Tuple[LegSensitivity, ...]
    most_vulnerable: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return to_plain(self)


@dataclass(frozen=True)
class EvaluationResult:
    legs: Tuple[Leg, ...]
    combined_metrics: Optional[ParlayMetrics]
    risk_assessment: Optional[RiskAssessment]
    recommendations: Optional[RecommendationSet]
    summary: Summary
    stages: Tuple[PipelineStage, ...]
    error: Optional[str] = None
    failed_stage: Optional[PipelineStage] = None

    @property
    def verdict(self) -> Verdict:
        return self.summary.verdict

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        data = to_plain(self)
        if self.combined_metrics is not None:
            data['combined_metrics'] = self.combined_metrics.to_dict()
        return data


def to_plain(value: Any) -> Any:
    """Recursively convert dataclasses, enums, tuples and datetimes to plain data"""
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_plain(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Mapping):
        return {key: to_plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(item) for item in value]
    if isinstance(value, datetime):
        return value.isoformat()
    return value
