"""
Startup configuration for relever.

Values are resolved in this order (later wins):

1. Built-in defaults
2. An optional YAML/JSON file (keys are the environment names in lower case,
   ``${VAR}`` references are expanded)
3. Environment variables, after loading a ``.env`` file if present

Anything missing or invalid raises ``ConfigError``; the process must not start.
"""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import load_dotenv

from .errors import ConfigError
from .exchange.okx import DEFAULT_BASE_URL, DEFAULT_TIMEOUT_SECONDS, OKXCredentials
from .scheduler import parse_schedule

DEFAULT_SYMBOL = "ETH"
DEFAULT_LEVERAGE = 3.0
DEFAULT_MIN_ADJUSTMENT = 0.01
DEFAULT_CRON_SCHEDULE = "5 0 * * *"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}
_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z0-9_]+)")


@dataclass(frozen=True)
class TradingConfig:
    symbol: str = DEFAULT_SYMBOL
    leverage: float = DEFAULT_LEVERAGE
    min_adjustment: float = DEFAULT_MIN_ADJUSTMENT
    dry_run: bool = True

    @property
    def instrument(self) -> str:
        return f"{self.symbol}-USDT-SWAP"


@dataclass(frozen=True)
class ScheduleConfig:
    cron: str = DEFAULT_CRON_SCHEDULE
    hour: int = 0
    minute: int = 5


@dataclass(frozen=True)
class TelegramConfig:
    enabled: bool = False
    bot_token: str = ""
    chat_id: str = ""


@dataclass(frozen=True)
class RelevConfig:
    """Top-level, immutable configuration loaded once at startup."""

    credentials: OKXCredentials
    trading: TradingConfig = field(default_factory=TradingConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    log_level: str = "INFO"
    log_dir: str = "logs"
    base_url: str = DEFAULT_BASE_URL
    http_timeout: float = DEFAULT_TIMEOUT_SECONDS


def _expand_env(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _expand_env(val) for key, val in value.items()}
    if isinstance(value, list):
        return [_expand_env(item) for item in value]
    if isinstance(value, str):
        return _ENV_PATTERN.sub(_replace_env_token, value)
    return value


def _replace_env_token(match: re.Match[str]) -> str:
    key = match.group(1) or match.group(2)
    if not key:
        return match.group(0)
    env_val = os.getenv(key)
    if env_val is None:
        return match.group(0)
    return env_val


def _load_mapping(path: Path) -> Dict[str, Any]:
    text = path.read_text()
    suffix = path.suffix.lower()
    try:
        if suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(text) or {}
        else:
            data = json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Config file '{path}' could not be parsed: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file '{path}' must contain a mapping at the top level.")
    return {str(key).lower(): value for key, value in _expand_env(data).items()}


class _Source:
    """Environment first, then the optional file layer."""

    def __init__(self, environ: Mapping[str, str], file_values: Mapping[str, Any]) -> None:
        self.environ = environ
        self.file_values = file_values

    def get(self, key: str, default: Any = None) -> Any:
        value = self.environ.get(key)
        if value is not None and value != "":
            return value
        value = self.file_values.get(key.lower())
        if value is not None and value != "":
            return value
        return default

    def required(self, key: str) -> str:
        value = self.get(key)
        if value is None:
            raise ConfigError(f"Environment variable {key} is required but not set")
        return str(value)

    def number(self, key: str, default: float) -> float:
        value = self.get(key, default)
        try:
            return float(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"{key} must be a number, got {value!r}") from exc

    def flag(self, key: str, default: bool) -> bool:
        value = self.get(key)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE_VALUES:
            return True
        if text in _FALSE_VALUES:
            return False
        raise ConfigError(f"{key} must be true or false, got {value!r}")


def load_env_file(path: Optional[str] = None) -> bool:
    """Load ``.env`` (or ``path``) into ``os.environ`` without overriding existing values."""
    if path is not None and not Path(path).expanduser().exists():
        raise ConfigError(f"Env file '{path}' not found.")
    return load_dotenv(path, override=False)


def load_config(
    path: Optional[str] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> RelevConfig:
    """
    Build and validate the configuration.

    Args:
        path: Optional YAML/JSON file with defaults.
        environ: Mapping used instead of ``os.environ`` (tests).

    Raises:
        ConfigError: on missing credentials or any invalid value.
    """
    file_values: Dict[str, Any] = {}
    if path is not None:
        cfg_path = Path(path)
        if not cfg_path.exists():
            raise ConfigError(f"Config file '{path}' not found.")
        file_values = _load_mapping(cfg_path)

    source = _Source(os.environ if environ is None else environ, file_values)

    credentials = OKXCredentials(
        api_key=source.required("OKX_API_KEY"),
        secret_key=source.required("OKX_SECRET_KEY"),
        passphrase=source.required("OKX_PASSPHRASE"),
    )

    symbol = str(source.get("TRADING_SYMBOL", DEFAULT_SYMBOL)).strip().upper()
    if not symbol:
        raise ConfigError("TRADING_SYMBOL cannot be empty")

    trading = TradingConfig(
        symbol=symbol,
        leverage=source.number("LEVERAGE_MULTIPLIER", DEFAULT_LEVERAGE),
        min_adjustment=source.number("MIN_ADJUSTMENT_SIZE", DEFAULT_MIN_ADJUSTMENT),
        dry_run=source.flag("DRY_RUN", True),
    )

    cron = str(source.get("CRON_SCHEDULE", DEFAULT_CRON_SCHEDULE))
    hour, minute = parse_schedule(cron)
    schedule = ScheduleConfig(cron=cron, hour=hour, minute=minute)

    telegram = TelegramConfig(
        enabled=source.flag("TELEGRAM_ENABLED", False),
        bot_token=str(source.get("TELEGRAM_BOT_TOKEN", "")),
        chat_id=str(source.get("TELEGRAM_CHAT_ID", "")),
    )

    config = RelevConfig(
        credentials=credentials,
        trading=trading,
        schedule=schedule,
        telegram=telegram,
        log_level=str(source.get("LOG_LEVEL", "info")).upper(),
        log_dir=str(source.get("LOG_DIR", "logs")),
        base_url=str(source.get("OKX_BASE_URL", DEFAULT_BASE_URL)),
        http_timeout=source.number("HTTP_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
    )
    validate_config(config)
    return config


def validate_config(config: RelevConfig) -> None:
    """
    Validate configuration parameters.

    Raises:
        ConfigError: If configuration is invalid
    """
    trading = config.trading
    if not trading.leverage > 0:
        raise ConfigError(f"LEVERAGE_MULTIPLIER must be positive, got {trading.leverage}")

    if not trading.min_adjustment >= 0:
        raise ConfigError(f"MIN_ADJUSTMENT_SIZE must be >= 0, got {trading.min_adjustment}")

    if not config.http_timeout > 0:
        raise ConfigError(f"HTTP_TIMEOUT_SECONDS must be positive, got {config.http_timeout}")

    if config.log_level not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
        raise ConfigError(f"LOG_LEVEL must be a standard logging level, got {config.log_level!r}")

    if config.telegram.enabled and not (config.telegram.bot_token and config.telegram.chat_id):
        raise ConfigError(
            "TELEGRAM_ENABLED is true but TELEGRAM_BOT_TOKEN or TELEGRAM_CHAT_ID is missing"
        )


__all__ = [
    "RelevConfig",
    "ScheduleConfig",
    "TelegramConfig",
    "TradingConfig",
    "load_config",
    "load_env_file",
    "validate_config",
]
