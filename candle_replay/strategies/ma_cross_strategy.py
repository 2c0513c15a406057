"""
이동평균 교차(MA Cross) 전략 구현.

[ 역할 ]
    core/trading_strategy.py::TradingStrategy의 구현체. 롱 전용.
    "종가가 이동평균선을 위로 교차하면 매수, 아래로 교차하면 전량 매도"

[ 전략 흐름 ]
    봉마다 (← backtest/engine.py에서)
        ├── 보유 중이면 evaluate_exit()
        │     ├── 저가 <= 손절가 → 손절가에 청산
        │     └── 직전 종가 >= 직전 MA, 현재 종가 < 현재 MA → 종가에 청산
        └── 미보유면 evaluate_entry()
              └── 직전 종가 <= 직전 MA, 현재 종가 > 현재 MA → 종가에 매수
                  손절가 = 직전 stop_window개 봉의 최저가

[ 파라미터 (config.yaml의 strategy 섹션에서 로드) ]
    ma_period:   이동평균선 기간 (봉)
    source:      이동평균 가격 (close/high/low/open)
    stop_window: 손절가 계산 구간 (봉)
"""

from typing import Any

from candle_replay.core.data_provider import Side
from candle_replay.core.errors import ConfigurationError
from candle_replay.core.trading_strategy import EntrySignal, ExitSignal, TradingStrategy
from candle_replay.indicators.moving_average import MovingAverage
from candle_replay.strategies import register


@register("ma_cross")
class MACrossStrategy(TradingStrategy):
    """이동평균 교차 전략 구현체."""

    DEFAULT_PARAMS = {
        "ma_period": 20,
        "source": "close",
        "stop_window": 10,
    }

    def __init__(self, params: dict[str, Any] | None = None):
        super().__init__(name="ma_cross", params=params)

    def validate(self) -> None:
        if self.ma_period <= 0 or self.stop_window <= 0:
            raise ConfigurationError(f"ma_cross: 기간은 1 이상이어야 합니다 ({self.params})")

    @property
    def ma_period(self) -> int:
        return int(self.params["ma_period"])

    @property
    def stop_window(self) -> int:
        return int(self.params["stop_window"])

    @property
    def ma_field(self) -> str:
        return f"ma{self.ma_period}_{self.params['source']}"

    def indicators(self):
        return [MovingAverage(self.ma_period, self.params["source"])]

    def _cross(self, series) -> int:
        """+1: 상향 교차, -1: 하향 교차, 0: 없음."""
        yesterday, today = series.window(2)
        prev_ma = yesterday.get(self.ma_field)
        ma = today.get(self.ma_field)
        if prev_ma is None or ma is None:
            return 0
        if yesterday.close <= prev_ma and today.close > ma:
            return 1
        if yesterday.close >= prev_ma and today.close < ma:
            return -1
        return 0

    def evaluate_entry(self, series):
        if self._cross(series) != 1:
            return None
        today = series.current()
        lowest = series.window_low(self.stop_window)
        if lowest is None or lowest.low >= today.close:
            return None
        return EntrySignal(
            side=Side.LONG,
            price=today.close,
            stop_loss=lowest.low,
            reason=f"종가가 {self.ma_field} 상향 돌파 (종가: {today.close:,.2f}, MA: {today.get(self.ma_field):,.2f})",
        )

    def evaluate_exit(self, series, position):
        today = series.current()
        if today.low <= position.stop_loss:
            return ExitSignal(price=position.stop_loss, reason=f"손절 ({position.stop_loss:,.2f})")
        if self._cross(series) == -1:
            return ExitSignal(price=today.close, reason=f"종가가 {self.ma_field} 하향 돌파")
        return None
