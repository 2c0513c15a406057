"""
변동성 수축(Volatility Compression) 구간 지표.

[ 패턴 ]
    mother/child: 직전 봉(mother)의 고가/저가 안에 현재 봉(child)의 고가/저가가 완전히 들어오면
    mother의 범위로 수축 구간이 시작된다.
    이후 봉은 구간 안에 있거나 종가가 구간 안이면 계속 "구간 내부"로 태그된다.
    구간을 벗어난 봉에서 구간은 끝나고, 그 봉과 직전 봉으로 새 구간 시작 여부를 다시 본다.

[ 구간 값 ]
    CompressionRange (불변):
        origin_index   - mother 봉의 시리즈 인덱스 (객체 참조 대신 인덱스로 역참조)
        high, low      - mother 봉의 범위
        volume_change  - (child 거래량 - mother 거래량) / mother 거래량, mother 거래량 0이면 None
        is_opposite    - mother와 child 몸통 방향이 반대인지

[ 필드 ]
    compression_present (bool), compression (CompressionRange | None)

[ 호출하는 곳 ]
    - strategies/compression_breakout_strategy.py
"""

from dataclasses import asdict, dataclass
from typing import Any, Sequence

from candle_replay.core.data_provider import Candle
from candle_replay.indicators.base import Indicator


@dataclass(frozen=True)
class CompressionRange:
    origin_index: int
    high: float
    low: float
    volume_change: float | None
    is_opposite: bool

    def contains(self, candle: Candle) -> bool:
        """봉 전체가 범위 안이거나 종가가 범위 안."""
        inside = candle.high <= self.high and candle.low >= self.low
        return inside or self.low <= candle.close <= self.high

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def is_inside_bar(mother: Candle, child: Candle) -> bool:
    return mother.high > child.high and mother.low < child.low


class VolatilityCompression(Indicator):

    name = "compression"

    def __init__(self):
        self.reset()

    @property
    def fields(self) -> tuple[str, ...]:
        return ("compression_present", "compression")

    def reset(self) -> None:
        self._active: CompressionRange | None = None

    def update(self, index: int, candle: Candle, history: Sequence[Candle]) -> dict[str, Any]:
        if self._active is not None and self._active.contains(candle):
            return {"compression_present": True, "compression": self._active}

        self._active = None
        if history:
            mother = history[-1]
            if is_inside_bar(mother, candle):
                volume_change = None
                if mother.volume > 0:
                    volume_change = (candle.volume - mother.volume) / mother.volume
                self._active = CompressionRange(
                    origin_index=mother.index if mother.index >= 0 else index - 1,
                    high=mother.high,
                    low=mother.low,
                    volume_change=volume_change,
                    is_opposite=(mother.body > 0) != (candle.body > 0),
                )
                return {"compression_present": True, "compression": self._active}

        return {"compression_present": False, "compression": None}
