"""Daily leverage rebalancer for a single OKX perpetual swap."""

from .config import RelevConfig, load_config
from .errors import CalculationError, ConfigError, ErrorKind, ExchangeError, RelevError
from .result import Err, Ok, Result

__all__ = [
    "CalculationError",
    "ConfigError",
    "Err",
    "ErrorKind",
    "ExchangeError",
    "Ok",
    "RelevConfig",
    "RelevError",
    "Result",
    "load_config",
]
