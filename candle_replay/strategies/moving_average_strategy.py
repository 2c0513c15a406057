"""
이동평균 채널 + SuperTrend 필터 전략.

[ 역할 ]
    ma20_high / ma20_low 채널 돌파와 SuperTrend 방향이 일치할 때 다음 봉 시가에 진입. 롱/숏 모두.

[ 진입 ]
    롱: 직전 봉 종가 > 직전 ma20_high, 직전 2봉 양봉, 직전 SuperTrend BUY
        → 현재 봉 시가 매수, 손절가 = 직전 ma20_low
    숏: 대칭 (ma20_low 하향, 음봉 2개, SELL) → 손절가 = 직전 ma20_high

[ 청산 (롱 기준, 숏은 대칭) ]
    1. 종가 < 손절가           → 손절가에 청산
    2. 음봉이 ma20_high 아래에서 시가/종가 형성 → 종가에 청산
    3. 직전/현재 종가 모두 ma20_high 아래 + 음봉 → 종가에 청산
    4. SuperTrend SELL 전환     → 종가에 청산
"""

from typing import Any

from candle_replay.core.data_provider import Direction, Side
from candle_replay.core.trading_strategy import EntrySignal, ExitSignal, TradingStrategy
from candle_replay.indicators.atr import AverageTrueRange
from candle_replay.indicators.moving_average import MovingAverage
from candle_replay.indicators.supertrend import SuperTrend
from candle_replay.strategies import register


@register("moving_average")
class MovingAverageStrategy(TradingStrategy):

    DEFAULT_PARAMS = {
        "channel_period": 20,
        "atr_period": 10,
        "supertrend_multiplier": 2.0,
    }

    def __init__(self, params: dict[str, Any] | None = None):
        super().__init__(name="moving_average", params=params)
        period = int(self.params["channel_period"])
        self.upper_field = f"ma{period}_high"
        self.lower_field = f"ma{period}_low"

    def indicators(self):
        period = int(self.params["channel_period"])
        atr_period = int(self.params["atr_period"])
        return [
            MovingAverage(period, "high"),
            MovingAverage(period, "low"),
            AverageTrueRange(atr_period),
            SuperTrend(float(self.params["supertrend_multiplier"]), atr_period),
        ]

    def evaluate_entry(self, series):
        day_before, yesterday, today = series.window(3)
        upper = yesterday.get(self.upper_field)
        lower = yesterday.get(self.lower_field)
        direction = yesterday.get("supertrend_direction")
        if upper is None or lower is None or direction is None:
            return None

        if (
            yesterday.close > upper
            and yesterday.body > 0
            and day_before.body > 0
            and direction is Direction.BUY
            and lower < today.open
        ):
            return EntrySignal(Side.LONG, today.open, lower, reason="ma 채널 상단 돌파 + SuperTrend BUY")

        if (
            yesterday.close < lower
            and yesterday.body < 0
            and day_before.body < 0
            and direction is Direction.SELL
            and upper > today.open
        ):
            return EntrySignal(Side.SHORT, today.open, upper, reason="ma 채널 하단 이탈 + SuperTrend SELL")
        return None

    def evaluate_exit(self, series, position):
        yesterday, today = series.window(2)
        upper = today.get(self.upper_field)
        lower = today.get(self.lower_field)
        direction = today.get("supertrend_direction")

        if position.side is Side.LONG:
            if today.close < position.stop_loss:
                return ExitSignal(position.stop_loss, reason="손절")
            if upper is not None and upper > today.close and upper > today.open and today.body < 0:
                return ExitSignal(today.close, reason="음봉이 채널 상단 아래")
            prev_upper = yesterday.get(self.upper_field)
            if prev_upper is not None and upper is not None and prev_upper > yesterday.close and upper > today.close and today.body < 0:
                return ExitSignal(today.close, reason="2봉 연속 채널 상단 아래")
            if direction is Direction.SELL:
                return ExitSignal(today.close, reason="SuperTrend SELL 전환")
            return None

        if today.close > position.stop_loss:
            return ExitSignal(position.stop_loss, reason="손절")
        if lower is not None and today.close > lower and today.open > lower and today.body > 0:
            return ExitSignal(today.close, reason="양봉이 채널 하단 위")
        prev_lower = yesterday.get(self.lower_field)
        if prev_lower is not None and lower is not None and yesterday.close > prev_lower and today.close > lower and today.body > 0:
            return ExitSignal(today.close, reason="2봉 연속 채널 하단 위")
        if direction is Direction.BUY:
            return ExitSignal(today.close, reason="SuperTrend BUY 전환")
        return None
