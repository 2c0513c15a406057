"""
지표 추상 클래스 정의.

[ 역할 ]
    봉 하나가 들어올 때마다 이전 상태(IndicatorState)를 이어받아 값을 계산하는 점화식 지표의 인터페이스.
    지표 값(t)은 봉 [0..t]만으로 결정되어야 한다 (미래 봉 참조 금지).

[ 구현체 ]
    - indicators/moving_average.py::MovingAverage, ExponentialMovingAverage
    - indicators/atr.py::AverageTrueRange
    - indicators/supertrend.py::SuperTrend
    - indicators/candle_patterns.py::CandleAnatomy, CandlePatterns
    - indicators/compression.py::VolatilityCompression

[ 호출하는 곳 ]
    - indicators/pipeline.py::IndicatorPipeline.run()에서 봉마다 update() 호출
"""

from abc import ABC, abstractmethod
from typing import Any, Sequence

from candle_replay.core.data_provider import Candle


class Indicator(ABC):
    """점화식 지표 추상 클래스.

    update()에 전달되는 candle.indicators에는 같은 봉에서 앞서 계산된 지표 값이 들어 있다.
    history는 이미 지표가 부착된 이전 봉들 (읽기 전용으로 취급).
    과거 데이터가 부족하면 값은 None (0으로 대체 금지).
    """

    name: str = ""
    requires: tuple[str, ...] = ()   # 같은 봉에서 먼저 계산되어 있어야 하는 필드

    @property
    @abstractmethod
    def fields(self) -> tuple[str, ...]:
        """이 지표가 채우는 필드 이름들."""
        ...

    @abstractmethod
    def reset(self) -> None:
        """상태 초기화. 새 시리즈를 처리하기 전에 호출된다."""
        ...

    @abstractmethod
    def update(self, index: int, candle: Candle, history: Sequence[Candle]) -> dict[str, Any]:
        """봉 하나에 대한 지표 값 계산 후 상태 갱신.

        Returns:
            {필드 이름: 값 또는 None}
        """
        ...

    def config(self) -> dict[str, Any]:
        """생성 설정. `_`로 시작하는 점화식 상태는 제외 (중복 등록 판정용)."""
        return {k: v for k, v in vars(self).items() if not k.startswith("_")}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name})"
