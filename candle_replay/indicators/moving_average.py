"""
이동평균 지표 (MA / EMA).

[ 점화식 ]
    MA(n):  ma_t  = ma_{t-1} * (n-1)/n + price_t / n,         ma_0 = price_0
    EMA(n): ema_t = (price_t - ema_{t-1}) * 2/(n+1) + ema_{t-1}, ema_0 = price_0

    MA는 단순 산술평균이 아니라 1/n 가중 지수 평활이다 (pandas ewm(alpha=1/n, adjust=False)와 동일).

[ 필드 ]
    ma{n}_{source}, ema{n}_{source}   (예: ma20_high, ema9_close)
"""

from typing import Any, Sequence

from candle_replay.core.data_provider import Candle
from candle_replay.core.errors import ConfigurationError
from candle_replay.indicators.base import Indicator

PRICE_SOURCES = ("open", "high", "low", "close")


def _check(period: int, source: str) -> None:
    if period <= 0:
        raise ConfigurationError(f"이동평균 기간은 1 이상이어야 합니다: {period}")
    if source not in PRICE_SOURCES:
        raise ConfigurationError(f"알 수 없는 가격 소스: '{source}' (가능: {PRICE_SOURCES})")


class MovingAverage(Indicator):
    """1/n 평활 이동평균."""

    def __init__(self, period: int, source: str = "close"):
        _check(period, source)
        self.period = period
        self.source = source
        self.name = f"ma{period}_{source}"
        self._prev: float | None = None

    @property
    def fields(self) -> tuple[str, ...]:
        return (self.name,)

    def reset(self) -> None:
        self._prev = None

    def update(self, index: int, candle: Candle, history: Sequence[Candle]) -> dict[str, Any]:
        price = getattr(candle, self.source)
        n = self.period
        if self._prev is None:
            value = price
        else:
            value = self._prev * (n - 1) / n + price / n
        self._prev = value
        return {self.name: value}


class ExponentialMovingAverage(Indicator):
    """k = 2/(n+1) 지수이동평균."""

    def __init__(self, period: int, source: str = "close"):
        _check(period, source)
        self.period = period
        self.source = source
        self.name = f"ema{period}_{source}"
        self.k = 2 / (period + 1)
        self._prev: float | None = None

    @property
    def fields(self) -> tuple[str, ...]:
        return (self.name,)

    def reset(self) -> None:
        self._prev = None

    def update(self, index: int, candle: Candle, history: Sequence[Candle]) -> dict[str, Any]:
        price = getattr(candle, self.source)
        if self._prev is None:
            value = price
        else:
            value = (price - self._prev) * self.k + self._prev
        self._prev = value
        return {self.name: value}
