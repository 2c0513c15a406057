import json
import logging

import pytest
import yaml

from candle_replay.core.errors import ConfigurationError
from candle_replay.strategies import (
    STRATEGY_REGISTRY,
    create_strategy,
    get_strategy_class,
    register,
    strategy_defaults,
)
from candle_replay.strategies.ma_cross_strategy import MACrossStrategy
from candle_replay.utils.config import Config
from candle_replay.utils.logger import setup_logger, setup_logger_from_config


def _write_yaml(path, data):
    path.write_text(yaml.safe_dump(data, allow_unicode=True), encoding="utf-8")
    return path


# ─── 설정 ──────────────────────────────────────────────────────────────────

def test_config_from_yaml(tmp_path):
    path = _write_yaml(tmp_path / "config.yaml", {
        "strategy": {"name": "supertrend", "params": {"multiplier": 3.0}},
        "backtest": {"symbol": "ETHUSDT", "interval": "15m", "capital": 50_000, "risk_mode": "equity"},
        "paths": {"data_dir": "data"},
        "training": {"episodes": 3, "seed": 9},
        "log_level": "DEBUG",
    })
    config = Config.from_yaml(path)

    assert config.strategy.name == "supertrend"
    assert config.strategy.params == {"multiplier": 3.0}
    assert config.backtest.capital == 50_000
    assert config.backtest.risk_mode == "equity"
    assert config.paths.data_dir == "data"
    assert config.paths.model_dir == ".data/model"
    assert config.training.seed == 9
    assert config.strategy_params() == {"capital": 50_000, "risk_percentage": 5.0, "multiplier": 3.0}


def test_config_flat_strategy_section(tmp_path):
    path = _write_yaml(tmp_path / "config.yaml", {"strategy": {"name": "ma_cross", "ma_period": 50}})
    config = Config.from_yaml(path)
    assert config.strategy.params == {"ma_period": 50}


def test_config_from_json(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"backtest": {"warmup": 5, "fee_rate": 0.0}}), encoding="utf-8")
    config = Config.from_json(path)
    assert config.backtest.warmup == 5
    assert config.backtest.fee_rate == 0.0


@pytest.mark.parametrize("data", [
    {"backtest": {"capitol": 1}},
    {"backtest": {"capital": 0}},
    {"backtest": {"risk_percentage": 150}},
    {"backtest": {"risk_mode": "kelly"}},
    {"backtest": {"short_credit": "collateral"}},
    {"backtest": {"fee_rate": 1.0}},
    {"training": {"episodes": 0}},
    {"log_level": "LOUD"},
])
def test_config_rejects_invalid_values(tmp_path, data):
    path = _write_yaml(tmp_path / "config.yaml", data)
    with pytest.raises(ConfigurationError):
        Config.from_yaml(path)


def test_config_save_yaml_roundtrip(tmp_path):
    config = Config()
    config.strategy.params = {"ma_period": 30}
    path = tmp_path / "out" / "config.yaml"
    config.save_yaml(path)
    assert Config.from_yaml(path).to_dict() == config.to_dict()


# ─── 전략 레지스트리 ────────────────────────────────────────────────────────

def test_create_strategy_merges_defaults():
    strategy = create_strategy("ma_cross", {"ma_period": 30, "capital": 10_000})
    assert isinstance(strategy, MACrossStrategy)
    assert strategy.params["ma_period"] == 30
    assert strategy.params["stop_window"] == 10
    assert strategy.capital == 10_000
    assert strategy.risk_percentage == 5.0


def test_create_strategy_errors():
    with pytest.raises(ConfigurationError):
        create_strategy("does_not_exist")
    with pytest.raises(ConfigurationError):
        create_strategy("ma_cross", {"ma_perod": 30})
    with pytest.raises(ConfigurationError):
        create_strategy("ma_cross", {"capital": -1})
    with pytest.raises(ConfigurationError):
        create_strategy("ma_cross", {"risk_percentage": 0})
    with pytest.raises(ConfigurationError):
        create_strategy("signal_provider")
    with pytest.raises(ConfigurationError):
        create_strategy("compression_breakout", {"partial_fraction": 1.5})


def test_register_rejects_name_collision():
    with pytest.raises(ConfigurationError):
        register("ma_cross")(type("Other", (MACrossStrategy,), {}))
    assert STRATEGY_REGISTRY["ma_cross"] is MACrossStrategy


# ─── 로깅 ──────────────────────────────────────────────────────────────────

def test_setup_logger_writes_file(tmp_path):
    logger = setup_logger(name="candle_replay.test_logger", level="DEBUG", log_dir=str(tmp_path), console=False)
    assert logger.level == logging.DEBUG
    logger.debug("기록 확인")
    for handler in logger.handlers:
        handler.flush()

    files = list(tmp_path.glob("candle_replay.test_logger_*.log"))
    assert len(files) == 1
    assert "기록 확인" in files[0].read_text(encoding="utf-8")

    # 두 번째 호출은 핸들러를 중복 등록하지 않음
    assert setup_logger(name="candle_replay.test_logger", log_dir=str(tmp_path)) is logger
    assert len(logger.handlers) == 1


def test_setup_logger_rejects_unknown_level():
    with pytest.raises(ConfigurationError):
        setup_logger(name="candle_replay.test_bad_level", level="LOUD", log_dir=None)


def test_setup_logger_from_config_without_file(tmp_path):
    config = Config(log_level="WARNING", log_dir="")
    logger = setup_logger_from_config(config, console=False)
    assert logger.name == "candle_replay"
    assert logger.level == logging.WARNING
    assert not any(isinstance(h, logging.FileHandler) for h in logger.handlers)


def test_strategy_defaults_and_lookup():
    defaults = strategy_defaults("forty_twenty")
    assert defaults["buy_window"] == 40
    assert defaults["capital"] == 100_000
    assert get_strategy_class("ma_cross") is MACrossStrategy
    with pytest.raises(ConfigurationError):
        get_strategy_class("nope")
