"""
Unit Tests for Leg and Asset Validation
"""

import pytest

from parlay_quant.core.models import Asset, CorrelationTag, Leg, MarketSignals
from parlay_quant.utils.logging_config import InputError
from parlay_quant.utils.validation import LegValidator, parse_leg, validate_assets, validate_legs


def raw_leg(**overrides):
    leg = {'market_type': 'Moneyline', 'selection': 'Team A', 'price': -110, 'model_probability': 0.55}
    leg.update(overrides)
    return leg


class TestLegValidation:
    """Test leg validation"""

    def setup_method(self):
        self.validator = LegValidator()

    def test_valid_legs(self):
        legs = validate_legs([raw_leg(), raw_leg(selection='Team B', price='+150', model_probability=0.42)])

        assert len(legs) == 2
        assert all(isinstance(leg, Leg) for leg in legs)
        assert legs[1].price == 150
        assert legs[1].decimal_odds == pytest.approx(2.5)

    def test_typed_legs_accepted(self):
        leg = Leg('Moneyline', 'Team A', -110, 0.55)
        assert self.validator.validate_leg(leg) == leg

    def test_fewer_than_two_legs(self):
        with pytest.raises(InputError, match="at least 2 legs") as exc_info:
            validate_legs([raw_leg()])
        assert exc_info.value.field == 'legs'
        assert exc_info.value.error_code == 'INPUT_ERROR'

    @pytest.mark.parametrize("legs", [None, 'legs', {'selection': 'x'}])
    def test_non_list_legs(self, legs):
        with pytest.raises(InputError, match="list of legs"):
            validate_legs(legs)

    @pytest.mark.parametrize("price", [0, None, 'abc', 1.5, float('nan'), True])
    def test_invalid_price(self, price):
        with pytest.raises(InputError) as exc_info:
            parse_leg(raw_leg(price=price))
        assert exc_info.value.field == 'price'

    @pytest.mark.parametrize("probability", [0, 1, 1.2, -0.1, None, 'high', float('inf')])
    def test_invalid_probability(self, probability):
        with pytest.raises(InputError) as exc_info:
            parse_leg(raw_leg(model_probability=probability))
        assert exc_info.value.field == 'model_probability'

    def test_missing_selection(self):
        with pytest.raises(InputError, match="selection"):
            parse_leg(raw_leg(selection='  '))

    @pytest.mark.parametrize("notes,tag", [
        (None, CorrelationTag.NONE),
        ('', CorrelationTag.NONE),
        ('high positive', CorrelationTag.POSITIVE_HIGH),
        ('POSITIVE_HIGH', CorrelationTag.POSITIVE_HIGH),
        ('negative', CorrelationTag.NEGATIVE),
    ])
    def test_correlation_tags(self, notes, tag):
        assert parse_leg(raw_leg(correlation_notes=notes)).correlation_tag == tag

    def test_free_text_correlation_rejected(self):
        with pytest.raises(InputError, match="Unknown correlation tag"):
            parse_leg(raw_leg(correlation_notes='probably correlated with leg 2'))

    def test_optional_fields(self):
        leg = parse_leg(raw_leg(
            injury_gates='Star (Out)',
            market_signals={'reverse_line_movement': 'against model'},
            correlation_score=0.2,
            timestamp='2024-11-16T17:59:00Z',
            leg_id='leg-1'
        ))

        assert leg.injury_gates == ('Star (Out)',)
        assert leg.market_signals == MarketSignals('against model')
        assert leg.correlation_score == 0.2
        assert leg.label == 'leg-1'

    def test_invalid_market_signals(self):
        with pytest.raises(InputError):
            parse_leg(raw_leg(market_signals='against model'))

    def test_error_names_leg_index(self):
        with pytest.raises(InputError, match="leg 1"):
            validate_legs([raw_leg(), raw_leg(price=0)])


class TestAssetValidation:
    """Test asset validation"""

    def test_valid_assets(self):
        assets = validate_assets([
            {'id': 'a', 'expected_return': 0.05, 'volatility': 0.1, 'correlations': {'b': 0.3}},
            Asset('b', None, 0.2, returns=[0.01, 0.02]),
        ])

        assert assets[0].asset_id == 'a'
        assert assets[0].correlations == {'b': 0.3}
        assert assets[1].returns == (0.01, 0.02)

    def test_duplicate_ids(self):
        with pytest.raises(InputError, match="Duplicate asset id"):
            validate_assets([{'asset_id': 'a', 'volatility': 0.1}, {'asset_id': 'a', 'volatility': 0.2}])

    @pytest.mark.parametrize("overrides,field", [
        ({'volatility': None}, 'volatility'),
        ({'volatility': -0.1}, 'volatility'),
        ({'liquidity': 1.5}, 'liquidity'),
        ({'market_weight': -1}, 'market_weight'),
        ({'correlations': [0.2]}, 'correlations'),
        ({'returns': [0.1, float('nan')]}, 'returns'),
        ({'asset_id': ''}, 'asset_id'),
    ])
    def test_invalid_assets(self, overrides, field):
        asset = {'asset_id': 'a', 'volatility': 0.1}
        asset.update(overrides)
        with pytest.raises(InputError) as exc_info:
            validate_assets([asset])
        assert exc_info.value.field == field
