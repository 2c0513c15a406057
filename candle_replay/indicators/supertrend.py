"""
SuperTrend 지표.

[ 계산 ]
    basis = (high + low) / 2
    raw_upper = basis + multiplier * atr,  raw_lower = basis - multiplier * atr

    밴드 고정(stickiness):
        lower_t = max(raw_lower_t, lower_{t-1})  단, close_{t-1} < lower_{t-1}이면 raw_lower_t
        upper_t = min(raw_upper_t, upper_{t-1})  단, close_{t-1} > upper_{t-1}이면 raw_upper_t
        → 추세 방향의 밴드는 추세 쪽으로만 움직이고 되돌아가지 않는다.

    방향 전환:
        첫 봉 BUY
        직전 추세선이 상단 밴드(SELL)였으면 close_t > upper_t 일 때만 BUY, 아니면 SELL 유지
        직전 추세선이 하단 밴드(BUY)였으면 close_t < lower_t 일 때만 SELL, 아니면 BUY 유지
    추세선 = BUY면 lower, SELL이면 upper

    ATR 값이 없으면 모든 필드 None (상태는 유지).

[ 필드 ]
    supertrend, supertrend_upper, supertrend_lower, supertrend_direction (Direction)

[ 의존성 ]
    - 같은 봉의 atr{atr_period} 값 (indicators/atr.py가 파이프라인에서 먼저 실행되어야 함)
"""

from typing import Any, Sequence

from candle_replay.core.data_provider import Candle, Direction
from candle_replay.core.errors import ConfigurationError
from candle_replay.indicators.base import Indicator

FIELDS = ("supertrend", "supertrend_upper", "supertrend_lower", "supertrend_direction")


class SuperTrend(Indicator):
    """ATR 기반 추세 추종 밴드."""

    name = "supertrend"

    def __init__(self, multiplier: float = 2.0, atr_period: int = 10):
        if multiplier <= 0:
            raise ConfigurationError(f"SuperTrend multiplier는 0보다 커야 합니다: {multiplier}")
        self.multiplier = multiplier
        self.atr_field = f"atr{atr_period}"
        self.requires = (self.atr_field,)
        self.reset()

    @property
    def fields(self) -> tuple[str, ...]:
        return FIELDS

    def reset(self) -> None:
        self._upper: float | None = None
        self._lower: float | None = None
        self._direction: Direction | None = None
        self._prev_close: float | None = None

    def update(self, index: int, candle: Candle, history: Sequence[Candle]) -> dict[str, Any]:
        atr = candle.get(self.atr_field)
        if atr is None:
            return dict.fromkeys(FIELDS)

        basis = (candle.high + candle.low) / 2
        upper = basis + self.multiplier * atr
        lower = basis - self.multiplier * atr

        if self._direction is None:
            direction = Direction.BUY
        else:
            prev_close = self._prev_close
            if prev_close >= self._lower:
                lower = max(lower, self._lower)
            if prev_close <= self._upper:
                upper = min(upper, self._upper)

            # 직전 추세선이 상단 밴드였는지는 직전 방향으로 판단 (ATR 0이면 두 밴드가 같아진다)
            if self._direction is Direction.SELL:
                direction = Direction.BUY if candle.close > upper else Direction.SELL
            else:
                direction = Direction.SELL if candle.close < lower else Direction.BUY

        self._upper = upper
        self._lower = lower
        self._direction = direction
        self._prev_close = candle.close

        return {
            "supertrend": lower if direction is Direction.BUY else upper,
            "supertrend_upper": upper,
            "supertrend_lower": lower,
            "supertrend_direction": direction,
        }
