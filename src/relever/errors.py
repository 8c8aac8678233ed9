"""Error taxonomy shared by every relever component."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    CONFIG = "config"
    EXCHANGE = "exchange"
    CALCULATION = "calculation"


class RelevError(Exception):
    """Base class for all errors raised by relever."""

    kind: ErrorKind = ErrorKind.EXCHANGE


class ConfigError(RelevError):
    """Missing or invalid startup configuration. Fatal."""

    kind = ErrorKind.CONFIG


class ExchangeError(RelevError):
    """Non-success API response or transport failure."""

    kind = ErrorKind.EXCHANGE

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.code = code


class CalculationError(RelevError):
    """Inputs the position calculator cannot work with (e.g. non-positive price)."""

    kind = ErrorKind.CALCULATION


__all__ = [
    "CalculationError",
    "ConfigError",
    "ErrorKind",
    "ExchangeError",
    "RelevError",
]
