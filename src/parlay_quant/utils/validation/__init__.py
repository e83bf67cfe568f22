"""
Input validation at the core boundary.
"""

from .leg_validator import LegValidator, parse_leg, validate_assets, validate_legs

__all__ = [
    'LegValidator',
    'parse_leg',
    'validate_assets',
    'validate_legs'
]
