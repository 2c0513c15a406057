"""
40/20 돌파 전략 (터틀 트레이딩 변형). 롱 전용.

[ 진입 ]
    현재 고가 > 직전 buy_window개 봉 최고가, 종가 > SMA(trend_period)
    → 직전 최고가(돌파 가격)에 매수, 손절가 = 직전 sell_window개 봉 최저가

[ 청산 ]
    현재 저가 <= 직전 sell_window개 봉 최저가 → 그 가격에 청산
"""

from typing import Any

from candle_replay.core.data_provider import Side
from candle_replay.core.errors import ConfigurationError
from candle_replay.core.trading_strategy import EntrySignal, ExitSignal, TradingStrategy
from candle_replay.strategies import register


@register("forty_twenty")
class FortyTwentyStrategy(TradingStrategy):

    DEFAULT_PARAMS = {
        "buy_window": 40,
        "sell_window": 20,
        "trend_period": 200,
    }

    def __init__(self, params: dict[str, Any] | None = None):
        super().__init__(name="forty_twenty", params=params)

    def validate(self) -> None:
        if min(int(self.params[k]) for k in self.DEFAULT_PARAMS) <= 0:
            raise ConfigurationError(f"forty_twenty: 구간은 1 이상이어야 합니다 ({self.params})")

    @property
    def buy_window(self) -> int:
        return int(self.params["buy_window"])

    @property
    def sell_window(self) -> int:
        return int(self.params["sell_window"])

    def indicators(self):
        # QuoteSeries의 구간 최고/최저, 단순이동평균만 사용
        return []

    def evaluate_entry(self, series):
        today = series.current()
        highest = series.window_high(self.buy_window)
        lowest = series.window_low(self.sell_window)
        average = series.simple_moving_average(int(self.params["trend_period"]))
        if highest is None or lowest is None or average is None:
            return None
        if today.high > highest.high and today.close > average:
            return EntrySignal(
                Side.LONG,
                price=highest.high,
                stop_loss=lowest.low,
                reason=f"{self.buy_window}봉 최고가 돌파 ({highest.high:,.2f})",
            )
        return None

    def evaluate_exit(self, series, position):
        today = series.current()
        lowest = series.window_low(self.sell_window)
        if lowest is not None and today.low <= lowest.low:
            return ExitSignal(lowest.low, reason=f"{self.sell_window}봉 최저가 이탈 ({lowest.low:,.2f})")
        return None
