"""
Unified Configuration System for Parlay Quant
=============================================

Consolidates every tunable threshold of the evaluation core in one place.

Features:
- One dataclass section per component
- Environment-specific profiles (development/testing/production)
- YAML or JSON configuration files
- Validation with a list of issues

Usage:
    from parlay_quant.utils.unified_config import UnifiedConfig

    config = UnifiedConfig.from_environment()
    config.staking.kelly_cap = 0.2
    pipeline = EvaluationPipeline(config)

There is no module-level configuration instance; each pipeline receives its
own config object.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .logging_config import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_FILE_ENV = 'PARLAY_QUANT_CONFIG'
ENVIRONMENT_ENV = 'PARLAY_QUANT_ENV'


class Environment(Enum):
    """Application environments"""
    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"


@dataclass
class OddsConfig:
    """Probability clamp applied by the odds helpers"""
    probability_floor: float = 0.01
    probability_ceiling: float = 0.99


@dataclass
class StakingConfig:
    """Capped Kelly staking"""
    kelly_cap: float = 0.25          # Quarter Kelly
    max_stake_fraction: float = 0.10  # Absolute ceiling, 10% of bankroll
    high_stake_threshold: float = 0.02
    min_stake_threshold: float = 0.005


@dataclass
class CorrelationConfig:
    """Leg and asset correlation settings"""
    default_asset_correlation: float = 0.2
    high_positive_pair_correlation: float = 0.35
    high_positive_leg_penalty: float = 0.02
    shrinkage_sample_size: int = 60
    shrinkage_intensity: Optional[float] = None
    covariance_method: str = 'parametric'  # 'parametric', 'historical' or 'auto'
    psd_tolerance: float = 1e-10


@dataclass
class RiskAssessmentConfig:
    """Parlay risk taxonomy thresholds"""
    stale_after_minutes: float = 15.0
    min_combined_ev_percent: float = 1.0
    min_leg_ev_percent: float = 0.5
    correlation_score_threshold: float = 0.3
    high_positive_leg_threshold: int = 2
    injury_markers: List[str] = field(default_factory=lambda: ['Questionable', 'Doubtful', 'Out'])
    line_movement_conflicts: List[str] = field(default_factory=lambda: ['against model', 'conflicts with edge'])


@dataclass
class RecommendationConfig:
    """EV tiers and list size for recommendations"""
    strong_ev_percent: float = 15.0
    moderate_ev_percent: float = 5.0
    marginal_ev_percent: float = 0.0
    max_recommendations: int = 5


@dataclass
class ExpectedReturnConfig:
    """Parameters of the four expected-return estimators"""
    methods: List[str] = field(default_factory=lambda: ['historical', 'capm', 'black_litterman', 'trend'])
    market_return: float = 0.08
    capm_sample_size: int = 60
    risk_aversion: float = 2.5
    tau: float = 0.05
    view_confidence: float = 0.5
    min_history: int = 2
    min_trend_history: int = 3


@dataclass
class OptimizerConfig:
    """Monte Carlo frontier search and simulation"""
    n_portfolios: int = 2000
    max_retries: int = 100
    risk_free_rate: float = 0.02
    confidence_level: float = 0.95
    n_simulations: int = 2000
    n_workers: int = 1
    random_seed: Optional[int] = None
    drawdown_horizon: int = 52
    parlay_simulations: int = 2000


@dataclass
class RiskLimitsConfig:
    """Post-optimization risk overlay limits (None disables a limit)"""
    max_value_at_risk: Optional[float] = None
    max_drawdown: Optional[float] = None
    max_concentration: Optional[float] = None
    enforce_liquidity: bool = True
    uncommitted_return: float = 0.0


@dataclass
class LoggingConfig:
    """Logging configuration"""
    default_level: str = 'INFO'
    log_file: Optional[str] = None
    log_file_max_size: int = 10 * 1024 * 1024  # 10MB
    log_file_backup_count: int = 5


class UnifiedConfig:
    """Main configuration class that consolidates all settings"""

    SECTIONS = ('odds', 'staking', 'correlation', 'risk', 'recommendations',
                'expected_returns', 'optimizer', 'risk_limits', 'logging')

    def __init__(self, environment: Environment = Environment.DEVELOPMENT):
        self.environment = environment
        self._config_file: Optional[Path] = None

        self.odds = OddsConfig()
        self.staking = StakingConfig()
        self.correlation = CorrelationConfig()
        self.risk = RiskAssessmentConfig()
        self.recommendations = RecommendationConfig()
        self.expected_returns = ExpectedReturnConfig()
        self.optimizer = OptimizerConfig()
        self.risk_limits = RiskLimitsConfig()
        self.logging = LoggingConfig()

        self._load_environment_config()

    @classmethod
    def from_environment(cls) -> 'UnifiedConfig':
        """Build a config from PARLAY_QUANT_ENV and PARLAY_QUANT_CONFIG"""
        env_name = os.getenv(ENVIRONMENT_ENV, Environment.DEVELOPMENT.value)
        try:
            environment = Environment(env_name)
        except ValueError:
            logger.warning(f"Invalid environment '{env_name}', using development")
            environment = Environment.DEVELOPMENT

        config = cls(environment)

        config_file = os.getenv(CONFIG_FILE_ENV)
        if config_file:
            config.load_from_file(config_file)

        return config

    def set_environment(self, environment: Union[Environment, str]):
        """Set the application environment"""
        if isinstance(environment, str):
            environment = Environment(environment)

        self.environment = environment
        self._load_environment_config()
        logger.info(f"Environment set to: {environment.value}")

    def _load_environment_config(self):
        if self.environment == Environment.DEVELOPMENT:
            self._configure_development()
        elif self.environment == Environment.TESTING:
            self._configure_testing()
        elif self.environment == Environment.PRODUCTION:
            self._configure_production()

    def _configure_development(self):
        self.logging.default_level = 'DEBUG'

    def _configure_testing(self):
        self.logging.default_level = 'WARNING'
        self.optimizer.n_portfolios = 500
        self.optimizer.n_simulations = 1000
        self.optimizer.parlay_simulations = 1000
        self.optimizer.random_seed = 42

    def _configure_production(self):
        self.logging.default_level = 'INFO'
        self.optimizer.n_portfolios = 5000
        self.optimizer.n_simulations = 5000
        self.staking.kelly_cap = 0.20  # More conservative

    def load_from_file(self, config_file: Union[str, Path]):
        """Load configuration overrides from a YAML or JSON file"""
        config_path = Path(config_file)
        self._config_file = config_path

        if not config_path.exists():
            logger.warning(f"Configuration file not found: {config_path}")
            return

        try:
            with open(config_path, 'r') as f:
                if config_path.suffix.lower() in ('.yaml', '.yml'):
                    config_data = yaml.safe_load(f) or {}
                else:
                    config_data = json.load(f)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(
                f"Failed to parse configuration file {config_path}: {e}",
                config_file=str(config_path)
            ) from e

        if not isinstance(config_data, dict):
            raise ConfigurationError(
                f"Configuration file {config_path} must contain a mapping",
                config_file=str(config_path)
            )

        if 'environment' in config_data:
            self.set_environment(config_data.pop('environment'))

        self._apply_config_data(config_data)
        logger.info(f"Configuration loaded from: {config_path}")

    def save_to_file(self, config_file: Union[str, Path], format: str = 'yaml'):
        """Save current configuration to file"""
        config_path = Path(config_file)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, 'w') as f:
            if format.lower() in ('yaml', 'yml'):
                yaml.safe_dump(self.to_dict(), f, default_flow_style=False, indent=2)
            else:
                json.dump(self.to_dict(), f, indent=2, default=str)

        logger.info(f"Configuration saved to: {config_path}")

    def _apply_config_data(self, config_data: Dict[str, Any]):
        for section_name, section_data in config_data.items():
            if section_name not in self.SECTIONS or not isinstance(section_data, dict):
                logger.warning(f"Ignoring unknown configuration section: {section_name}")
                continue

            section_obj = getattr(self, section_name)
            for key, value in section_data.items():
                if hasattr(section_obj, key):
                    setattr(section_obj, key, value)
                else:
                    logger.warning(f"Ignoring unknown configuration key: {section_name}.{key}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary"""
        data = {'environment': self.environment.value}
        for section_name in self.SECTIONS:
            data[section_name] = asdict(getattr(self, section_name))
        return data

    def validate(self) -> List[str]:
        """Validate configuration settings and return list of issues"""
        issues = []

        if not (0 < self.odds.probability_floor < self.odds.probability_ceiling < 1):
            issues.append("Probability clamp must satisfy 0 < floor < ceiling < 1")

        if not (0 < self.staking.kelly_cap <= 1):
            issues.append("Kelly cap must be between 0 and 1")

        if not (0 < self.staking.max_stake_fraction <= 1):
            issues.append("Maximum stake fraction must be between 0 and 1")

        if not (-1 <= self.correlation.default_asset_correlation <= 1):
            issues.append("Default asset correlation must be between -1 and 1")

        intensity = self.correlation.shrinkage_intensity
        if intensity is not None and not (0 <= intensity <= 1):
            issues.append("Shrinkage intensity must be between 0 and 1")

        if self.correlation.covariance_method not in ('parametric', 'historical', 'auto'):
            issues.append("Covariance method must be 'parametric', 'historical' or 'auto'")

        if not (0.5 < self.optimizer.confidence_level < 1):
            issues.append("VaR confidence level must be between 0.5 and 1")

        if self.optimizer.n_portfolios < 1 or self.optimizer.n_simulations < 1:
            issues.append("Portfolio and simulation counts must be positive")

        if self.optimizer.max_retries < 1:
            issues.append("Retry budget must be positive")

        if self.optimizer.n_workers < 1:
            issues.append("Worker count must be positive")

        if self.recommendations.max_recommendations < 1:
            issues.append("At least one recommendation must be allowed")

        unknown = set(self.expected_returns.methods) - {'historical', 'capm', 'black_litterman', 'trend'}
        if unknown:
            issues.append(f"Unknown expected-return methods: {sorted(unknown)}")

        return issues

    def raise_if_invalid(self):
        issues = self.validate()
        if issues:
            raise ConfigurationError(
                "Invalid configuration: " + "; ".join(issues),
                config_file=str(self._config_file) if self._config_file else None
            )
