"""
Logging and Error Handling Framework
====================================

Centralized logging configuration and the typed error taxonomy for the
parlay quant core. Every module logs through ``logging.getLogger(__name__)``;
applications call ``setup_logging`` once at start-up. Importing the library
never touches the root logger.

Usage:
    from parlay_quant.utils.logging_config import setup_logging, get_logger, InputError

    setup_logging(level='INFO', log_file='logs/parlay_quant.log')
    logger = get_logger(__name__)
    logger.info("Evaluating parlay", extra={'stage': 'VALIDATE_INPUT'})
"""

import logging
import logging.handlers
import sys
import time
import traceback
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional


class ParlayQuantError(Exception):
    """Base exception for parlay quant specific errors"""

    def __init__(self, message: str, error_code: str = None, context: Dict[str, Any] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or 'PARLAY_QUANT_ERROR'
        self.context = context or {}
        self.timestamp = datetime.now().isoformat()


class InputError(ParlayQuantError):
    """Raised when legs or assets are malformed or insufficient"""

    def __init__(self, message: str, field: str = None, **kwargs):
        super().__init__(message, error_code='INPUT_ERROR', **kwargs)
        self.field = field


class CovarianceError(ParlayQuantError):
    """Raised when a covariance matrix is not positive semi-definite"""

    def __init__(self, message: str, min_eigenvalue: float = None, **kwargs):
        super().__init__(message, error_code='COVARIANCE_ERROR', **kwargs)
        self.min_eigenvalue = min_eigenvalue


class InsufficientDataError(ParlayQuantError):
    """Raised when no expected-return method can produce an estimate"""

    def __init__(self, message: str, asset_id: str = None, **kwargs):
        super().__init__(message, error_code='INSUFFICIENT_DATA', **kwargs)
        self.asset_id = asset_id


class OptimizationError(ParlayQuantError):
    """Raised when no feasible weight vector can be found"""

    def __init__(self, message: str, objective: str = None, **kwargs):
        super().__init__(message, error_code='OPTIMIZATION_ERROR', **kwargs)
        self.objective = objective


class ConfigurationError(ParlayQuantError):
    """Raised when configuration values or files are invalid"""

    def __init__(self, message: str, config_file: str = None, **kwargs):
        super().__init__(message, error_code='CONFIG_ERROR', **kwargs)
        self.config_file = config_file


class ContextualFormatter(logging.Formatter):
    """Formatter that appends contextual attributes passed through ``extra``"""

    CONTEXT_ATTRIBUTES = ('stage', 'objective', 'asset_id', 'leg', 'operation')

    def format(self, record):
        if not hasattr(record, 'timestamp'):
            record.timestamp = datetime.now().isoformat()

        context_info = []
        for attr in self.CONTEXT_ATTRIBUTES:
            if hasattr(record, attr):
                context_info.append(f"{attr}={getattr(record, attr)}")

        record.context = f"[{', '.join(context_info)}]" if context_info else ""

        return super().format(record)


class PerformanceLogger:
    """Logger for timing the Monte Carlo stages"""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def log_duration(self, operation: str, duration: float, log_level: str = 'debug') -> float:
        log_method = getattr(self.logger, log_level.lower())
        log_method(f"Completed operation: {operation} in {duration:.3f}s",
                   extra={'operation': operation, 'duration': duration})
        return duration

    @contextmanager
    def timed_operation(self, operation: str, log_level: str = 'debug'):
        """Context manager for timing operations; the start time is local to each call"""
        self.logger.debug(f"Started operation: {operation}")
        start = time.perf_counter()
        try:
            yield
        finally:
            self.log_duration(operation, time.perf_counter() - start, log_level)


def setup_logging(
    level: str = 'INFO',
    log_file: Optional[str] = None,
    max_file_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
    console_output: bool = True,
    structured_format: bool = False
) -> logging.Logger:
    """
    Setup centralized logging configuration

    Args:
        level: Logging level ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')
        log_file: Path to log file (None for no file logging)
        max_file_size: Maximum size of log files before rotation
        backup_count: Number of backup log files to keep
        console_output: Whether to output logs to console
        structured_format: Use the ISO timestamp attribute instead of asctime

    Returns:
        Configured root logger
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(log_level)

    if structured_format:
        console_format = '%(timestamp)s | %(levelname)-8s | %(name)s | %(context)s %(message)s'
        file_format = '%(timestamp)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(context)s %(message)s'
    else:
        console_format = '%(asctime)s | %(levelname)-8s | %(name)s | %(context)s %(message)s'
        file_format = '%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(context)s %(message)s'

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(ContextualFormatter(console_format))
        root_logger.addHandler(console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_file_size,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(ContextualFormatter(file_format))
        root_logger.addHandler(file_handler)

    logging.getLogger(__name__).info("Logging system initialized", extra={
        'operation': 'setup_logging',
        'level': level,
        'log_file': log_file,
    })

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger that inherits the root configuration"""
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.propagate = True
    return logger


def log_exception(logger: logging.Logger, exception: Exception, context: Dict[str, Any] = None):
    """
    Log an exception with its context and traceback

    Args:
        logger: Logger instance
        exception: Exception to log
        context: Additional context information
    """
    context = dict(context or {})

    error_info = {
        'exception_type': type(exception).__name__,
        'exception_message': str(exception),
        'traceback': traceback.format_exc(),
        **context
    }

    if isinstance(exception, ParlayQuantError):
        error_info.update({
            'error_code': exception.error_code,
            'error_context': exception.context,
            'error_timestamp': exception.timestamp
        })

    logger.error(f"{type(exception).__name__}: {exception}", extra=error_info)


def create_performance_logger(name: str) -> PerformanceLogger:
    """Create a performance logger for timing operations"""
    return PerformanceLogger(get_logger(name))


def configure_for_development():
    """Configure logging for development environment"""
    setup_logging(
        level='DEBUG',
        log_file='logs/parlay_quant_dev.log',
        console_output=True,
        structured_format=False
    )


def configure_for_production():
    """Configure logging for production environment"""
    setup_logging(
        level='INFO',
        log_file='logs/parlay_quant_prod.log',
        console_output=False,
        structured_format=True
    )


def configure_for_testing():
    """Configure logging for testing environment"""
    setup_logging(
        level='WARNING',
        log_file=None,
        console_output=False,
        structured_format=False
    )


def configure_from_config(logging_config) -> logging.Logger:
    """Configure logging from a UnifiedConfig logging section"""
    return setup_logging(
        level=logging_config.default_level,
        log_file=logging_config.log_file,
        max_file_size=logging_config.log_file_max_size,
        backup_count=logging_config.log_file_backup_count,
        console_output=True,
        structured_format=False
    )
