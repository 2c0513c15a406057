"""
ATR (Average True Range) 지표.

[ 점화식 ]
    tr_t  = max(high - low, |high - close_{t-1}|, |low - close_{t-1}|),  tr_0 = high - low
    atr_t = tr_t * k + atr_{t-1} * (1 - k),  k = 2/(n+1),  atr_0 = tr_0

[ 필드 ]
    tr, atr{n}

[ 호출하는 곳 ]
    - indicators/supertrend.py::SuperTrend가 같은 봉의 atr{n} 값을 읽음
"""

from typing import Any, Sequence

from candle_replay.core.data_provider import Candle
from candle_replay.core.errors import ConfigurationError
from candle_replay.indicators.base import Indicator


def true_range(candle: Candle, prev_close: float | None) -> float:
    if prev_close is None:
        return candle.high - candle.low
    return max(
        candle.high - candle.low,
        abs(candle.high - prev_close),
        abs(candle.low - prev_close),
    )


class AverageTrueRange(Indicator):

    def __init__(self, period: int = 10):
        if period <= 0:
            raise ConfigurationError(f"ATR 기간은 1 이상이어야 합니다: {period}")
        self.period = period
        self.name = f"atr{period}"
        self.k = 2 / (period + 1)
        self._prev_close: float | None = None
        self._prev_atr: float | None = None

    @property
    def fields(self) -> tuple[str, ...]:
        return ("tr", self.name)

    def reset(self) -> None:
        self._prev_close = None
        self._prev_atr = None

    def update(self, index: int, candle: Candle, history: Sequence[Candle]) -> dict[str, Any]:
        tr = true_range(candle, self._prev_close)
        if self._prev_atr is None:
            atr = tr
        else:
            atr = tr * self.k + self._prev_atr * (1 - self.k)
        self._prev_close = candle.close
        self._prev_atr = atr
        return {"tr": tr, self.name: atr}
