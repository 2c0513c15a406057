"""
SuperTrend 방향 전환 전략.

[ 진입 ]
    롱: 현재 BUY, 직전 2봉 SELL (전환 확인), 종가 > ma60_close
        손절가 = 최근 3봉의 하단 밴드와 저가 중 최저
    숏: 대칭 (현재 SELL, 직전 2봉 BUY, 종가 < ma60_close), 손절가 = 최근 3봉 상단 밴드/고가 중 최고

[ 청산 ]
    반대 방향 전환 시 종가에 청산

[ 파라미터 ]
    atr_period, multiplier, trend_ma_period
"""

from typing import Any

from candle_replay.core.data_provider import Direction, Side
from candle_replay.core.trading_strategy import EntrySignal, ExitSignal, TradingStrategy
from candle_replay.indicators.atr import AverageTrueRange
from candle_replay.indicators.moving_average import MovingAverage
from candle_replay.indicators.supertrend import SuperTrend
from candle_replay.strategies import register


@register("supertrend")
class SuperTrendStrategy(TradingStrategy):

    DEFAULT_PARAMS = {
        "atr_period": 10,
        "multiplier": 2.0,
        "trend_ma_period": 60,
    }

    def __init__(self, params: dict[str, Any] | None = None):
        super().__init__(name="supertrend", params=params)
        self.trend_field = f"ma{int(self.params['trend_ma_period'])}_close"

    def indicators(self):
        atr_period = int(self.params["atr_period"])
        return [
            AverageTrueRange(atr_period),
            SuperTrend(float(self.params["multiplier"]), atr_period),
            MovingAverage(int(self.params["trend_ma_period"]), "close"),
        ]

    def evaluate_entry(self, series):
        candles = series.window(3)
        day_before, yesterday, today = candles
        directions = [c.get("supertrend_direction") for c in candles]
        trend = today.get(self.trend_field)
        if None in directions or trend is None:
            return None

        if directions == [Direction.SELL, Direction.SELL, Direction.BUY] and today.close > trend:
            stop = min(min(c.get("supertrend_lower"), c.low) for c in candles)
            if stop >= today.close:
                return None
            return EntrySignal(Side.LONG, today.close, stop, reason="SuperTrend BUY 전환 확인")

        if directions == [Direction.BUY, Direction.BUY, Direction.SELL] and today.close < trend:
            stop = max(max(c.get("supertrend_upper"), c.high) for c in candles)
            if stop <= today.close:
                return None
            return EntrySignal(Side.SHORT, today.close, stop, reason="SuperTrend SELL 전환 확인")
        return None

    def evaluate_exit(self, series, position):
        today = series.current()
        direction = today.get("supertrend_direction")
        if position.side is Side.LONG and direction is Direction.SELL:
            return ExitSignal(today.close, reason="SuperTrend SELL 전환")
        if position.side is Side.SHORT and direction is Direction.BUY:
            return ExitSignal(today.close, reason="SuperTrend BUY 전환")
        return None
