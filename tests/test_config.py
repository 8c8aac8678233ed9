import os

import pytest

from relever.config import load_config, load_env_file
from relever.errors import ConfigError, ErrorKind

BASE_ENV = {
    "OKX_API_KEY": "key",
    "OKX_SECRET_KEY": "secret",
    "OKX_PASSPHRASE": "phrase",
}


def _env(**overrides):
    return {**BASE_ENV, **overrides}


def test_defaults():
    config = load_config(environ=_env())

    assert config.credentials.api_key == "key"
    assert config.trading.symbol == "ETH"
    assert config.trading.instrument == "ETH-USDT-SWAP"
    assert config.trading.leverage == 3.0
    assert config.trading.min_adjustment == 0.01
    assert config.trading.dry_run is True
    assert (config.schedule.hour, config.schedule.minute) == (0, 5)
    assert config.log_level == "INFO"
    assert config.log_dir == "logs"
    assert config.telegram.enabled is False


def test_environment_overrides():
    config = load_config(
        environ=_env(
            TRADING_SYMBOL="btc",
            LEVERAGE_MULTIPLIER="2.5",
            MIN_ADJUSTMENT_SIZE="0.001",
            CRON_SCHEDULE="30 14 * * *",
            DRY_RUN="false",
            LOG_LEVEL="debug",
        )
    )

    assert config.trading.instrument == "BTC-USDT-SWAP"
    assert config.trading.leverage == 2.5
    assert config.trading.min_adjustment == 0.001
    assert config.trading.dry_run is False
    assert (config.schedule.hour, config.schedule.minute) == (14, 30)
    assert config.log_level == "DEBUG"


@pytest.mark.parametrize("missing", ["OKX_API_KEY", "OKX_SECRET_KEY", "OKX_PASSPHRASE"])
def test_missing_credentials_fail(missing):
    env = _env()
    del env[missing]
    with pytest.raises(ConfigError, match=missing) as excinfo:
        load_config(environ=env)
    assert excinfo.value.kind is ErrorKind.CONFIG


@pytest.mark.parametrize(
    "key, value",
    [
        ("LEVERAGE_MULTIPLIER", "0"),
        ("LEVERAGE_MULTIPLIER", "three"),
        ("MIN_ADJUSTMENT_SIZE", "-0.1"),
        ("DRY_RUN", "maybe"),
        ("CRON_SCHEDULE", "*/5 * * * *"),
        ("LOG_LEVEL", "verbose"),
        ("HTTP_TIMEOUT_SECONDS", "0"),
    ],
)
def test_invalid_values_fail(key, value):
    with pytest.raises(ConfigError):
        load_config(environ=_env(**{key: value}))


def test_telegram_requires_token_and_chat():
    with pytest.raises(ConfigError, match="TELEGRAM"):
        load_config(environ=_env(TELEGRAM_ENABLED="true", TELEGRAM_BOT_TOKEN="token"))

    config = load_config(
        environ=_env(TELEGRAM_ENABLED="true", TELEGRAM_BOT_TOKEN="token", TELEGRAM_CHAT_ID="42")
    )
    assert config.telegram.enabled
    assert config.telegram.chat_id == "42"


def test_yaml_file_layer_with_env_precedence(tmp_path, monkeypatch):
    monkeypatch.setenv("RELEVER_TEST_PASSPHRASE", "from-env-ref")
    config_path = tmp_path / "relever.yaml"
    config_path.write_text(
        "\n".join(
            [
                "okx_passphrase: ${RELEVER_TEST_PASSPHRASE}",
                "trading_symbol: sol",
                "leverage_multiplier: 2",
                "dry_run: false",
            ]
        )
    )
    env = {"OKX_API_KEY": "key", "OKX_SECRET_KEY": "secret", "LEVERAGE_MULTIPLIER": "4"}

    config = load_config(str(config_path), environ=env)

    assert config.credentials.passphrase == "from-env-ref"
    assert config.trading.symbol == "SOL"
    assert config.trading.leverage == 4.0
    assert config.trading.dry_run is False


def test_config_file_must_be_mapping(tmp_path):
    config_path = tmp_path / "relever.json"
    config_path.write_text("[1, 2, 3]")
    with pytest.raises(ConfigError, match="mapping"):
        load_config(str(config_path), environ=_env())


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(str(tmp_path / "absent.yaml"), environ=_env())


def test_load_env_file_does_not_override(tmp_path, monkeypatch):
    env_path = tmp_path / ".env"
    env_path.write_text("RELEVER_TEST_A=from-file\nRELEVER_TEST_B=from-file\n")
    monkeypatch.setenv("RELEVER_TEST_A", "from-process")
    monkeypatch.setenv("RELEVER_TEST_B", "placeholder")
    monkeypatch.delenv("RELEVER_TEST_B")

    load_env_file(str(env_path))

    assert os.environ["RELEVER_TEST_A"] == "from-process"
    assert os.environ["RELEVER_TEST_B"] == "from-file"


def test_load_env_file_missing_path(tmp_path):
    with pytest.raises(ConfigError):
        load_env_file(str(tmp_path / "missing.env"))
