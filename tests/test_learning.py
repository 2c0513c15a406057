import json
from datetime import datetime

import numpy as np
import pytest

from candle_replay.backtest.engine import BacktestEngine
from candle_replay.core.data_provider import Candle, Direction, Side
from candle_replay.core.errors import ConfigurationError, InsufficientHistoryError
from candle_replay.data.file_provider import DataFrameProvider
from candle_replay.data.ledger import Position
from candle_replay.data.quote_series import QuoteSeries
from candle_replay.data.sample import candles_from_closes, generate_sample_candles, generate_sample_data
from candle_replay.learning.q_function import BUY, HOLD, SELL, LinearQFunction
from candle_replay.learning.replay_buffer import ReplayBuffer
from candle_replay.learning.state_normalizer import StateNormalizer
from candle_replay.learning.trainer import RLTrainer
from candle_replay.strategies import create_strategy
from candle_replay.utils.config import Config, PathsConfig


def _series(periods=300, seed=17):
    return QuoteSeries(generate_sample_candles(periods, seed=seed), symbol="RL", interval="60")


# ─── Q 함수 ────────────────────────────────────────────────────────────────

def test_q_update_moves_bias_and_weight_by_expected_delta():
    q = LinearQFunction(["x", "y"], learning_rate=0.1, discount_factor=0.9, rng=np.random.default_rng(0))
    q.weights = {"x": 0.5, "y": -0.2}
    q.bias = 0.1

    # Q(s, BUY) = 0.1 + 0.5 * 2 = 1.1
    # max_a Q(s', a) = max(a * (0.1 + 0.5 * 1)) = 0.6
    # error = 1 + 0.9 * 0.6 - 1.1 = 0.44
    error = q.update({"x": 2.0}, BUY, reward=1.0, next_state={"x": 1.0})

    assert error == pytest.approx(0.44)
    assert q.bias == pytest.approx(0.1 + 0.1 * 0.44)
    assert q.weights["x"] == pytest.approx(0.5 + 0.1 * 0.44 * 2.0 * BUY)
    assert q.weights["y"] == -0.2


def test_q_hold_action_only_moves_bias():
    q = LinearQFunction(["x"], learning_rate=0.5, discount_factor=0.0, rng=np.random.default_rng(0))
    q.weights = {"x": 1.0}
    error = q.update({"x": 3.0}, HOLD, reward=2.0, next_state={"x": 0.0})
    assert error == pytest.approx(2.0)
    assert q.bias == pytest.approx(1.0)
    assert q.weights["x"] == 1.0


def test_q_best_action_and_persistence():
    q = LinearQFunction(["x"], rng=np.random.default_rng(1))
    q.weights = {"x": 1.0}
    assert q.best_action({"x": 2.0}) == BUY
    assert q.best_action({"x": -2.0}) == SELL
    assert q.best_action({"x": 0.0}) == SELL   # 동률이면 SELL, HOLD, BUY 순

    other = LinearQFunction(["x"], rng=np.random.default_rng(2))
    other.load(q.to_dict())
    assert other.to_dict() == q.to_dict()
    assert q.feature_importance(1) == [("x", 1.0)]


def test_q_initial_weights_are_seeded():
    a = LinearQFunction(["x", "y", "z"], rng=np.random.default_rng(5))
    b = LinearQFunction(["x", "y", "z"], rng=np.random.default_rng(5))
    assert a.weights == b.weights
    assert all(-0.1 <= w <= 0.1 for w in a.weights.values())
    assert a.bias == 0.0


# ─── 리플레이 버퍼 / 정규화 ─────────────────────────────────────────────────

def test_replay_buffer_ring_and_sampling():
    buffer = ReplayBuffer(capacity=3, rng=np.random.default_rng(0))
    assert buffer.sample(4) == []
    for i in range(5):
        buffer.push({"x": i}, BUY, float(i), {"x": i + 1})

    assert len(buffer) == buffer.size == 3
    batch = buffer.sample(10)
    assert len(batch) == 10                      # 버퍼보다 큰 배치도 복원 추출
    assert {e.reward for e in batch} <= {2.0, 3.0, 4.0}
    batch = buffer.sample(2)
    assert len(batch) == 2
    assert all(e.reward in (2.0, 3.0, 4.0) for e in batch)

    buffer.clear()
    assert len(buffer) == 0
    with pytest.raises(ValueError):
        ReplayBuffer(capacity=0)


def test_state_normalizer_welford():
    normalizer = StateNormalizer(bounded=("flag",), clip=5.0)
    assert normalizer.normalize({"x": 7.0}) == {"x": 7.0}   # 처음 보는 feature

    normalizer.update({"x": 1.0, "flag": 1})
    assert normalizer.normalize({"x": 3.0})["x"] == 0.0      # 표본 1개

    for value in (2.0, 3.0):
        normalizer.update({"x": value, "flag": -1})
    assert normalizer.mean["x"] == pytest.approx(2.0)
    assert normalizer.std("x") == pytest.approx(1.0)

    out = normalizer.normalize({"x": 4.0, "flag": -1})
    assert out["x"] == pytest.approx(2.0)
    assert out["flag"] == -1
    assert normalizer.normalize({"x": 100.0})["x"] == 5.0
    assert normalizer.normalize({"x": -100.0})["x"] == -5.0

    stats = normalizer.stats()["x"]
    assert (stats["min"], stats["max"]) == (1.0, 3.0)

    normalizer.reset()
    assert normalizer.count == 0


# ─── RL 전략 ────────────────────────────────────────────────────────────────

def test_rl_strategy_rejects_bad_params():
    with pytest.raises(ConfigurationError):
        create_strategy("reinforcement_learning", {"exploration_rate": 1.5})
    with pytest.raises(ConfigurationError):
        create_strategy("reinforcement_learning", {"batch_size": 0})
    with pytest.raises(ConfigurationError):
        create_strategy("reinforcement_learning", {"epsilon": 0.1})


def test_rl_strategy_replays_without_learning():
    strategy = create_strategy("reinforcement_learning", {"seed": 3})
    before = strategy.q_function.to_dict()
    report = BacktestEngine(strategy, _series()).execute()

    assert report.terminated_reason in ("completed", "capital_exhausted")
    assert len(strategy.replay_buffer) == 0
    assert strategy.q_function.to_dict() == before


def test_rl_strategy_is_reproducible_with_seed():
    runs = []
    for _ in range(2):
        strategy = create_strategy("reinforcement_learning", {"seed": 11, "exploration_rate": 0.5})
        report = BacktestEngine(strategy, _series()).execute()
        runs.append([tx.to_dict() for tx in report.transactions])
    assert runs[0] == runs[1]
    assert len(runs[0]) > 0


def _position(side, entry=100.0):
    return Position(side=side, entry_price=entry, quantity=10, risk_per_unit=1.0,
                    stop_loss=entry - side.sign, entry_time=datetime(2024, 1, 1))


def test_rl_reward_terms():
    strategy = create_strategy("reinforcement_learning", {"seed": 0, "max_consecutive_losses": 3})
    up = Candle(timestamp=datetime(2024, 1, 1, 1), open=100, high=103, low=99, close=102)

    # 직전 상태가 없으면 reward 0
    strategy.last_action = BUY
    assert strategy.calculate_reward(up, _position(Side.LONG)) == 0.0

    strategy.previous_state = {"price_change": 0.0}
    strategy.last_action = HOLD
    assert strategy.calculate_reward(up, None) == 0.0

    # 평가 수익률 * 100
    assert strategy.calculate_reward(up, _position(Side.LONG)) == pytest.approx(2.0)
    assert strategy.calculate_reward(up, _position(Side.SHORT)) == pytest.approx(-2.0)

    # 직전 행동 방향: 적중 +2, 실패 -1
    strategy.last_action = BUY
    assert strategy.calculate_reward(up, None) == 2
    strategy.last_action = SELL
    assert strategy.calculate_reward(up, None) == -1

    # 확인된 추세와 포지션 방향: 일치 +2, 불일치 -2
    strategy.last_action = HOLD
    strategy._trend = Direction.BUY
    assert strategy.calculate_reward(up, _position(Side.LONG)) == pytest.approx(2.0 + 2)
    assert strategy.calculate_reward(up, _position(Side.SHORT)) == pytest.approx(-2.0 - 2)
    assert strategy.calculate_reward(up, None) == 0.0

    # 연속 손실 한도 도달 -5
    strategy._trend = None
    strategy.consecutive_losses = 3
    assert strategy.calculate_reward(up, None) == -5

    # 네 항목 합산
    strategy.last_action = BUY
    strategy._trend = Direction.BUY
    assert strategy.calculate_reward(up, _position(Side.LONG)) == pytest.approx(2.0 + 2 + 2 - 5)


def test_rl_confirmed_trend_window():
    directions = [Direction.SELL, Direction.BUY, Direction.BUY, Direction.BUY, Direction.SELL, None]
    candles = [
        c.with_indicators({"supertrend_direction": d})
        for c, d in zip(candles_from_closes([100 + i for i in range(6)]), directions)
    ]
    three = create_strategy("reinforcement_learning", {"trend_confirmation": 3})
    one = create_strategy("reinforcement_learning", {"trend_confirmation": 1})

    series = QuoteSeries(candles, interval="60")
    series.advance()
    assert one.confirmed_trend(series) is Direction.SELL
    series.advance()
    with pytest.raises(InsufficientHistoryError):
        three.confirmed_trend(series)
    assert one.confirmed_trend(series) is Direction.BUY

    seen = []
    while series.has_next():
        series.advance()
        seen.append((three.confirmed_trend(series), one.confirmed_trend(series)))
    assert seen == [
        (None, Direction.BUY),            # SELL, BUY, BUY
        (Direction.BUY, Direction.BUY),   # BUY x3
        (None, Direction.SELL),
        (None, None),                     # 지표 없음
    ]


def test_rl_learn_waits_for_full_batch():
    strategy = create_strategy("reinforcement_learning", {"seed": 1, "batch_size": 4})
    assert strategy.learn() is None
    for i in range(4):
        strategy.replay_buffer.push({"price_change": 0.1}, BUY, 1.0, {"price_change": 0.2})
    assert strategy.learn() >= 0


def test_rl_reset_keeps_weights_but_learning_state_clears_buffer():
    strategy = create_strategy("reinforcement_learning", {"seed": 2})
    strategy.replay_buffer.push({"x": 1}, BUY, 1.0, {"x": 2})
    strategy.episode_reward = 5.0
    weights = dict(strategy.q_function.weights)

    strategy.reset()
    assert strategy.episode_reward == 0.0
    assert len(strategy.replay_buffer) == 1
    assert strategy.q_function.weights == weights

    strategy.reset_learning_state()
    assert len(strategy.replay_buffer) == 0
    assert strategy.normalizer.count == 0


# ─── 학습기 ─────────────────────────────────────────────────────────────────

def test_trainer_runs_episodes_and_learns(tmp_path):
    strategy = create_strategy("reinforcement_learning", {"seed": 4, "exploration_rate": 0.3})
    before = strategy.q_function.to_dict()
    trainer = RLTrainer(strategy, _series(), episodes=2, paths=PathsConfig(model_dir=str(tmp_path)))

    history = trainer.train()
    assert 1 <= len(history) <= 2
    assert [s.episode for s in history] == list(range(1, len(history) + 1))
    assert history[0].buffer_size > 0
    assert strategy.training_mode is False
    assert strategy.q_function.to_dict() != before

    path = trainer.save_model()
    assert path.parent == tmp_path
    saved = json.loads(path.read_text(encoding="utf-8"))
    assert set(saved["weights"]) == set(strategy.q_function.weights)
    assert saved["bias"] == pytest.approx(strategy.q_function.bias)
    assert "price_change" in saved["normalizer"]
    assert saved["params"]["seed"] == 4
    assert len(saved["training_stats"]) == len(history)


def test_trainer_from_config():
    provider = DataFrameProvider()
    provider.load_data("BTCUSDT", "60", generate_sample_data(periods=200, seed=8))
    config = Config()
    config.training.episodes = 1
    config.training.seed = 21
    config.backtest.risk_percentage = 1.0

    trainer = RLTrainer.from_config(config, provider)
    assert trainer.strategy.params["seed"] == 21
    assert trainer.episodes == 1
    assert len(trainer.train()) == 1


def test_trainer_requires_rl_strategy():
    with pytest.raises(ConfigurationError):
        RLTrainer(create_strategy("ma_cross"), _series(), episodes=1)
