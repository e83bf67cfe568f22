"""
Leg and Asset Validation

Converts raw caller input (mappings or partially typed objects) into the
immutable Leg and Asset types, failing fast with InputError on malformed or
missing values. No value is silently replaced by a default.
"""

import logging
import math
import numbers
from dataclasses import fields, is_dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple, Union

from ...betting.odds_utils import american_to_decimal
from ...core.models import Asset, CorrelationTag, Leg, MarketSignals
from ..logging_config import InputError

logger = logging.getLogger(__name__)

LegInput = Union[Leg, Mapping[str, Any]]
AssetInput = Union[Asset, Mapping[str, Any]]


class LegValidator:
    """
    Validates parlay legs and portfolio assets at the core boundary

    Handles:
    - American price checks (integer, nonzero, finite)
    - Probability range checks (strictly inside (0, 1))
    - Closed correlation tag mapping
    - Asset volatility, correlation and history checks
    """

    MIN_LEGS = 2

    def __init__(self, min_legs: int = MIN_LEGS):
        self.min_legs = min_legs

    def validate_legs(self, legs: Optional[Sequence[LegInput]]) -> Tuple[Leg, ...]:
        """
        Validate a parlay leg list

        Raises:
            InputError: Fewer than min_legs legs or any malformed leg
        """
        if legs is None or isinstance(legs, (str, bytes, Mapping)):
            raise InputError("Legs must be a list of legs", field='legs')

        legs = list(legs)
        if len(legs) < self.min_legs:
            raise InputError(f"A parlay needs at least {self.min_legs} legs, got {len(legs)}",
                             field='legs')

        return tuple(self.validate_leg(leg, index) for index, leg in enumerate(legs))

    def validate_leg(self, leg: LegInput, index: int = 0) -> Leg:
        data = _as_mapping(leg, f"leg {index}")
        where = f"leg {index}"

        selection = data.get('selection')
        if not isinstance(selection, str) or not selection.strip():
            raise InputError(f"{where}: selection must be a non-empty string", field='selection')

        market_type = data.get('market_type', '')
        if market_type is None:
            market_type = ''
        if not isinstance(market_type, str):
            raise InputError(f"{where}: market_type must be a string", field='market_type')

        price = self._validate_price(data.get('price'), where)
        probability = self._validate_probability(data.get('model_probability'), where)

        correlation_score = data.get('correlation_score')
        if correlation_score is not None:
            correlation_score = _finite_number(correlation_score, f"{where}: correlation_score",
                                               'correlation_score')

        timestamp = data.get('timestamp')
        if timestamp is not None and not isinstance(timestamp, (str, datetime)):
            raise InputError(f"{where}: timestamp must be an ISO string or datetime", field='timestamp')

        return Leg(
            market_type=market_type,
            selection=selection,
            price=price,
            model_probability=probability,
            correlation_notes=CorrelationTag.coerce(data.get('correlation_notes')),
            injury_gates=self._validate_injury_gates(data.get('injury_gates'), where),
            market_signals=self._validate_market_signals(data.get('market_signals'), where),
            timestamp=timestamp,
            correlation_score=correlation_score,
            leg_id=data.get('leg_id')
        )

    def _validate_price(self, price: Any, where: str) -> int:
        if price is None:
            raise InputError(f"{where}: price is required", field='price')

        if isinstance(price, str):
            try:
                price = int(price.strip().replace(',', ''))
            except ValueError:
                raise InputError(f"{where}: price is not an integer: {price!r}", field='price') from None

        if isinstance(price, bool) or not isinstance(price, numbers.Real):
            raise InputError(f"{where}: price must be a number, got {type(price).__name__}", field='price')
        if not math.isfinite(price) or price != int(price):
            raise InputError(f"{where}: price must be a finite integer, got {price}", field='price')

        try:
            american_to_decimal(int(price))
        except ValueError as e:
            raise InputError(f"{where}: {e}", field='price') from e
        return int(price)

    def _validate_probability(self, probability: Any, where: str) -> float:
        if probability is None:
            raise InputError(f"{where}: model_probability is required", field='model_probability')

        value = _finite_number(probability, f"{where}: model_probability", 'model_probability')
        if not 0 < value < 1:
            raise InputError(f"{where}: model_probability must be in (0, 1), got {value}",
                             field='model_probability')
        return value

    def _validate_injury_gates(self, gates: Any, where: str) -> Tuple[str, ...]:
        if gates is None:
            return ()
        if isinstance(gates, str):
            return (gates,)
        gates = tuple(gates)
        if not all(isinstance(gate, str) for gate in gates):
            raise InputError(f"{where}: injury_gates must be strings", field='injury_gates')
        return gates

    def _validate_market_signals(self, signals: Any, where: str) -> MarketSignals:
        if signals is None:
            return MarketSignals()
        if isinstance(signals, MarketSignals):
            return signals
        if not isinstance(signals, Mapping):
            raise InputError(f"{where}: market_signals must be a mapping", field='market_signals')

        movement = signals.get('reverse_line_movement')
        if movement is not None and not isinstance(movement, str):
            raise InputError(f"{where}: reverse_line_movement must be a string", field='market_signals')
        return MarketSignals(reverse_line_movement=movement)

    def validate_assets(self, assets: Optional[Iterable[AssetInput]]) -> Tuple[Asset, ...]:
        """
        Validate portfolio assets

        The asset count is not checked here; the optimizer rejects fewer than two.
        """
        if assets is None or isinstance(assets, (str, bytes, Mapping)):
            raise InputError("Assets must be a list of assets", field='assets')

        validated = tuple(self.validate_asset(asset, index) for index, asset in enumerate(assets))

        seen = set()
        for asset in validated:
            if asset.asset_id in seen:
                raise InputError(f"Duplicate asset id: {asset.asset_id}", field='asset_id')
            seen.add(asset.asset_id)

        return validated

    def validate_asset(self, asset: AssetInput, index: int = 0) -> Asset:
        data = _as_mapping(asset, f"asset {index}")

        asset_id = data.get('asset_id', data.get('id'))
        if not isinstance(asset_id, str) or not asset_id:
            raise InputError(f"asset {index}: asset_id must be a non-empty string", field='asset_id')
        where = f"asset {asset_id}"

        volatility = data.get('volatility')
        if volatility is None:
            raise InputError(f"{where}: volatility is required", field='volatility')
        volatility = _finite_number(volatility, f"{where}: volatility", 'volatility')
        if volatility < 0:
            raise InputError(f"{where}: volatility must be >= 0, got {volatility}", field='volatility')

        correlations = data.get('correlations') or {}
        if not isinstance(correlations, Mapping):
            raise InputError(f"{where}: correlations must be a mapping", field='correlations')
        correlations = {
            str(other): _finite_number(rho, f"{where}: correlation with {other}", 'correlations')
            for other, rho in correlations.items()
        }

        returns = data.get('returns')
        if returns is not None:
            returns = tuple(_finite_number(r, f"{where}: returns", 'returns') for r in returns)

        liquidity = _optional_number(data.get('liquidity'), f"{where}: liquidity", 'liquidity')
        if liquidity is not None and not 0 <= liquidity <= 1:
            raise InputError(f"{where}: liquidity must be in [0, 1], got {liquidity}", field='liquidity')

        market_weight = _optional_number(data.get('market_weight'), f"{where}: market_weight", 'market_weight')
        if market_weight is not None and market_weight < 0:
            raise InputError(f"{where}: market_weight must be >= 0", field='market_weight')

        return Asset(
            asset_id=asset_id,
            expected_return=_optional_number(data.get('expected_return'), f"{where}: expected_return",
                                             'expected_return'),
            volatility=volatility,
            correlations=correlations,
            returns=returns,
            beta=_optional_number(data.get('beta'), f"{where}: beta", 'beta'),
            market_weight=market_weight,
            liquidity=liquidity
        )


def _as_mapping(value: Any, where: str) -> Dict[str, Any]:
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: getattr(value, f.name) for f in fields(value)}
    if isinstance(value, Mapping):
        return dict(value)
    raise InputError(f"{where}: expected a mapping, got {type(value).__name__}")


def _finite_number(value: Any, where: str, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise InputError(f"{where} must be a number, got {type(value).__name__}", field=field)
    if not math.isfinite(value):
        raise InputError(f"{where} must be finite, got {value}", field=field)
    return float(value)


def _optional_number(value: Any, where: str, field: str) -> Optional[float]:
    if value is None:
        return None
    return _finite_number(value, where, field)


def validate_legs(legs: Sequence[LegInput]) -> Tuple[Leg, ...]:
    """Quick validation for a leg list"""
    return LegValidator().validate_legs(legs)


def validate_assets(assets: Iterable[AssetInput]) -> Tuple[Asset, ...]:
    """Quick validation for an asset list"""
    return LegValidator().validate_assets(assets)


def parse_leg(data: Mapping[str, Any]) -> Leg:
    """Build one Leg from a raw mapping"""
    return LegValidator().validate_leg(data)
