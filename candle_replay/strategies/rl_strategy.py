"""
강화학습(Q-learning) 전략 구현.

[ 역할 ]
    core/trading_strategy.py::TradingStrategy의 구현체.
    선형 Q 함수 + ε-greedy로 SELL/HOLD/BUY 행동을 고르고, 체결은 다른 전략과 똑같이 PositionLedger가 처리.

[ 봉마다 흐름 (← backtest/engine.py) ]
    observe()
        ├── feature 계산 → StateNormalizer 갱신/정규화
        ├── (학습 모드) 직전 봉의 (state, action, reward) + 현재 state를 ReplayBuffer에 저장
        ├── 보유 중이면 손절(stop_loss_pct) / 익절(take_profit_pct) 체크 → 해당 봉은 행동/학습 없음
        └── ε-greedy 행동 선택
    evaluate_exit()  : 손절/익절 또는 보유 중 HOLD → 청산
    evaluate_entry() : 미보유 중 BUY/SELL → 진입 (단위 리스크 = 종가 * risk% * 0.8^연속손실 / 100)
    on_step_end()    : reward 계산, (학습 모드) learn()

[ 진입/청산 제한 ]
    |종가-시가|/시가 < min_price_change, (고가-저가)/저가 < min_volatility,
    연속 손실 >= max_consecutive_losses 이면 행동하지 않음

[ reward ]
    보유 중 평가 수익률 * 100
    + 직전 행동 방향 적중 +2 / 실패 -1
    + 보유 중 확인된 SuperTrend 방향과 일치 +2 / 불일치 -2
    - 연속 손실 한도 도달 시 5

[ 파라미터 ]
    DEFAULT_PARAMS 참고. seed로 가중치 초기화/탐험/샘플링 난수 고정.
"""

import logging
from typing import Any

import numpy as np

from candle_replay.core.data_provider import Direction, Side
from candle_replay.core.errors import ConfigurationError, InsufficientHistoryError
from candle_replay.core.trading_strategy import EntrySignal, ExitSignal, TradingStrategy
from candle_replay.indicators.atr import AverageTrueRange
from candle_replay.indicators.moving_average import MovingAverage
from candle_replay.indicators.supertrend import SuperTrend
from candle_replay.learning.q_function import ACTIONS, BUY, HOLD, SELL, LinearQFunction
from candle_replay.learning.replay_buffer import ReplayBuffer
from candle_replay.learning.state_normalizer import StateNormalizer
from candle_replay.strategies import register

logger = logging.getLogger("candle_replay.learning")

FEATURES = (
    "price_change", "price_volatility",
    "ma20_trend", "ma60_trend", "supertrend",
    "volume_change", "momentum",
    "in_position", "position_side", "unrealized_pnl",
)


@register("reinforcement_learning")
class RLStrategy(TradingStrategy):
    """선형 Q-learning 전략."""

    DEFAULT_PARAMS = {
        "risk_percentage": 1.0,
        "learning_rate": 0.001,
        "discount_factor": 0.95,
        "exploration_rate": 0.2,
        "batch_size": 32,
        "memory_size": 10_000,
        "stop_loss_pct": 1.5,
        "take_profit_pct": 3.0,
        "min_price_change": 0.002,
        "max_consecutive_losses": 3,
        "min_volatility": 0.001,
        "trend_confirmation": 2,
        "seed": None,
    }

    def __init__(self, params: dict[str, Any] | None = None):
        super().__init__(name="reinforcement_learning", params=params)
        self.rng = np.random.default_rng(self.params["seed"])
        self.q_function = LinearQFunction(
            FEATURES,
            learning_rate=float(self.params["learning_rate"]),
            discount_factor=float(self.params["discount_factor"]),
            rng=self.rng,
        )
        self.replay_buffer = ReplayBuffer(int(self.params["memory_size"]), rng=self.rng)
        self.normalizer = StateNormalizer()
        self.training_mode = False
        self.episode_reward = 0.0
        self.reset()

    def validate(self) -> None:
        p = self.params
        if not 0 <= float(p["exploration_rate"]) <= 1:
            raise ConfigurationError(f"exploration_rate 범위 오류 [0, 1]: {p['exploration_rate']}")
        if not 0 <= float(p["discount_factor"]) <= 1:
            raise ConfigurationError(f"discount_factor 범위 오류 [0, 1]: {p['discount_factor']}")
        if float(p["learning_rate"]) <= 0:
            raise ConfigurationError(f"learning_rate는 0보다 커야 합니다: {p['learning_rate']}")
        if int(p["batch_size"]) <= 0 or int(p["memory_size"]) <= 0:
            raise ConfigurationError("batch_size, memory_size는 1 이상이어야 합니다.")
        if int(p["trend_confirmation"]) <= 0:
            raise ConfigurationError(f"trend_confirmation은 1 이상이어야 합니다: {p['trend_confirmation']}")
        if float(p["stop_loss_pct"]) <= 0 or float(p["take_profit_pct"]) <= 0:
            raise ConfigurationError("stop_loss_pct, take_profit_pct는 0보다 커야 합니다.")

    def reset(self) -> None:
        """리플레이 한 번 분량의 상태 초기화. Q 가중치/버퍼/정규화 통계는 유지."""
        self.state: dict[str, float] | None = None
        self.previous_state: dict[str, float] | None = None
        self.last_action = HOLD
        self.consecutive_losses = 0
        self.episode_reward = 0.0
        self._action: int | None = None
        self._pending_exit: ExitSignal | None = None
        self._trend: Direction | None = None
        self._transition: tuple[dict[str, float], int, float] | None = None

    def reset_learning_state(self) -> None:
        """에피소드 시작 전: 버퍼, 정규화 통계, 에피소드 reward 초기화."""
        self.replay_buffer.clear()
        self.normalizer.reset()
        self.reset()

    def indicators(self):
        return [
            MovingAverage(20, "high"),
            MovingAverage(20, "low"),
            MovingAverage(60, "close"),
            AverageTrueRange(10),
            SuperTrend(multiplier=2, atr_period=10),
        ]

    # ─── 상태 ──────────────────────────────────────────────────────────────

    def confirmed_trend(self, series) -> Direction | None:
        """최근 trend_confirmation개 봉의 SuperTrend 방향이 모두 같으면 그 방향."""
        candles = series.window(int(self.params["trend_confirmation"]))
        direction = candles[-1].get("supertrend_direction")
        if direction is None or any(c.get("supertrend_direction") is not direction for c in candles):
            return None
        return direction

    def features(self, series, position) -> dict[str, float]:
        """정규화 전 feature. 과거 봉/지표가 부족하면 InsufficientHistoryError."""
        day_before, yesterday, today = series.window(3)
        ma20_high = today.get("ma20_high")
        ma20_low = today.get("ma20_low")
        ma60 = today.get("ma60_close")
        if ma20_high is None or ma20_low is None or ma60 is None or today.get("supertrend_direction") is None:
            raise InsufficientHistoryError(required=series.position + 2, available=series.position + 1)

        if today.close > ma20_high:
            ma20_trend = 1
        elif today.close < ma20_low:
            ma20_trend = -1
        else:
            ma20_trend = 0

        trend = self._trend
        return {
            "price_change": (today.close - yesterday.close) / yesterday.close,
            "price_volatility": (today.high - today.low) / today.low,
            "ma20_trend": ma20_trend,
            "ma60_trend": 1 if today.close > ma60 else -1,
            "supertrend": 0 if trend is None else (1 if trend is Direction.BUY else -1),
            "volume_change": (today.volume - yesterday.volume) / yesterday.volume if yesterday.volume > 0 else 0.0,
            "momentum": (today.close - day_before.close) / day_before.close,
            "in_position": 1 if position is not None else 0,
            "position_side": 0 if position is None else position.side.sign,
            "unrealized_pnl": 0.0 if position is None else position.unrealized_return(today.close),
        }

    def select_action(self, state: dict[str, float]) -> int:
        """ε-greedy."""
        if self.rng.random() < float(self.params["exploration_rate"]):
            return int(self.rng.choice(ACTIONS))
        return self.q_function.best_action(state)

    # ─── 엔진 훅 ───────────────────────────────────────────────────────────

    def observe(self, series, position) -> None:
        self._action = None
        self._pending_exit = None

        self._trend = self.confirmed_trend(series)
        raw = self.features(series, position)
        self.normalizer.update(raw)
        state = self.normalizer.normalize(raw)

        if self.training_mode and self._transition is not None:
            prev_state, action, reward = self._transition
            self.replay_buffer.push(prev_state, action, reward, state)
        self._transition = None
        self.previous_state, self.state = self.state, state

        if position is not None:
            self._pending_exit = self._check_stop_loss(series.current(), position) \
                or self._check_take_profit(series.current(), position)
            if self._pending_exit is not None:
                return
        self._action = self.select_action(state)

    def _check_stop_loss(self, today, position) -> ExitSignal | None:
        pct = float(self.params["stop_loss_pct"]) / 100
        if position.side is Side.LONG:
            price = position.entry_price * (1 - pct)
            hit = today.low <= price
        else:
            price = position.entry_price * (1 + pct)
            hit = today.high >= price
        if not hit:
            return None
        self.consecutive_losses += 1
        return ExitSignal(price, reason="손절")

    def _check_take_profit(self, today, position) -> ExitSignal | None:
        pct = float(self.params["take_profit_pct"]) / 100
        if position.side is Side.LONG:
            price = position.entry_price * (1 + pct)
            hit = today.high >= price
        else:
            price = position.entry_price * (1 - pct)
            hit = today.low <= price
        if not hit:
            return None
        self.consecutive_losses = 0
        return ExitSignal(price, reason="익절")

    def _can_act(self, today) -> bool:
        price_change = abs((today.close - today.open) / today.open)
        volatility = (today.high - today.low) / today.low
        return (
            price_change >= float(self.params["min_price_change"])
            and volatility >= float(self.params["min_volatility"])
            and self.consecutive_losses < int(self.params["max_consecutive_losses"])
        )

    def evaluate_exit(self, series, position):
        if self._pending_exit is not None:
            return self._pending_exit
        today = series.current()
        if self._action != HOLD or not self._can_act(today):
            return None
        if position.unrealized_return(today.close) < 0:
            self.consecutive_losses += 1
        else:
            self.consecutive_losses = 0
        self.last_action = HOLD
        return ExitSignal(today.close, reason="HOLD 행동 청산")

    def evaluate_entry(self, series):
        action = self._action
        today = series.current()
        if action not in (BUY, SELL) or not self._can_act(today):
            return None
        risk_pct = self.risk_percentage * 0.8 ** self.consecutive_losses
        risk_amount = today.close * risk_pct / 100
        self.last_action = action
        if action == BUY:
            return EntrySignal(Side.LONG, today.close, today.close - risk_amount, reason="Q 정책 BUY")
        return EntrySignal(Side.SHORT, today.close, today.close + risk_amount, reason="Q 정책 SELL")

    def on_step_end(self, series, position) -> None:
        if self._action is None:
            return
        reward = self.calculate_reward(series.current(), position)
        self.episode_reward += reward
        if self.training_mode:
            self._transition = (self.state, self._action, reward)
            self.learn()

    # ─── 학습 ──────────────────────────────────────────────────────────────

    def calculate_reward(self, today, position) -> float:
        if self.previous_state is None:
            return 0.0
        reward = 0.0
        if position is not None:
            reward += position.unrealized_return(today.close) * 100

        if self.last_action != HOLD:
            change = (today.close - today.open) / today.open
            correct = (self.last_action == BUY and change > 0) or (self.last_action == SELL and change < 0)
            reward += 2 if correct else -1

        if position is not None and self._trend is not None:
            aligned = (position.side is Side.LONG) == (self._trend is Direction.BUY)
            reward += 2 if aligned else -2

        if self.consecutive_losses >= int(self.params["max_consecutive_losses"]):
            reward -= 5
        return reward

    def learn(self) -> float | None:
        """버퍼가 batch_size 이상이면 미니배치 1회 갱신. 평균 |TD 오차| 반환."""
        batch_size = int(self.params["batch_size"])
        if len(self.replay_buffer) < batch_size:
            return None
        batch = self.replay_buffer.sample(batch_size)
        errors = [
            self.q_function.update(e.state, e.action, e.reward, e.next_state)
            for e in batch
        ]
        avg_error = float(np.mean(np.abs(errors)))
        logger.debug(f"학습: 평균 오차 {avg_error:.4f}, 버퍼 {len(self.replay_buffer)}")
        return avg_error
