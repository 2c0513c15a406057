"""
지표 파이프라인 모듈.

[ 역할 ]
    리플레이 전에 전체 봉 시퀀스를 시간 순서대로 한 번 훑으며 지표 값을 부착.
    각 봉의 지표는 봉 [0..t]만으로 계산되고, Candle.with_indicators()로 정확히 한 번 부착된다.
    원본 봉 객체는 변경하지 않고 새 Candle 튜플을 반환.

[ 실행 흐름 ]
    run(candles):
        1. 모든 지표 reset()
        2. 봉마다 지표를 등록 순서대로 update() → 같은 봉의 앞선 지표 값은 candle.indicators로 보임
        3. 모은 값으로 새 Candle 생성 후 history에 추가

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine.execute() 리플레이 전에
      전략의 indicators() 목록으로 파이프라인 생성
"""

import logging
from dataclasses import replace
from types import MappingProxyType
from typing import Any, Iterable, Sequence

import pandas as pd

from candle_replay.core.data_provider import Candle
from candle_replay.core.errors import ConfigurationError
from candle_replay.indicators.atr import AverageTrueRange
from candle_replay.indicators.base import Indicator
from candle_replay.indicators.candle_patterns import CandleAnatomy
from candle_replay.indicators.compression import VolatilityCompression
from candle_replay.indicators.moving_average import MovingAverage
from candle_replay.indicators.supertrend import SuperTrend

logger = logging.getLogger("candle_replay.indicators")


def default_indicators() -> list[Indicator]:
    """기본 지표 세트: 캔들 형태, MA20 고/저, MA60/200 종가, ATR10, SuperTrend(2), 변동성 수축."""
    return [
        CandleAnatomy(),
        MovingAverage(20, "high"),
        MovingAverage(20, "low"),
        MovingAverage(60, "close"),
        MovingAverage(200, "close"),
        AverageTrueRange(10),
        SuperTrend(multiplier=2, atr_period=10),
        VolatilityCompression(),
    ]


class IndicatorPipeline:
    """등록된 지표를 순서대로 실행하여 봉에 부착.

    사용 예:
        pipeline = IndicatorPipeline([AverageTrueRange(10), SuperTrend(2, 10)])
        candles = pipeline.run(raw_candles)
        candles[-1].get("supertrend_direction")
    """

    def __init__(self, indicators: Iterable[Indicator] | None = None):
        self.indicators: list[Indicator] = []
        self._fields: set[str] = set()
        for indicator in default_indicators() if indicators is None else indicators:
            self.add(indicator)

    def add(self, indicator: Indicator) -> "IndicatorPipeline":
        """지표 추가. 필드 중복이거나 선행 필드가 없으면 ConfigurationError."""
        fields = set(indicator.fields)
        duplicated = fields & self._fields
        if duplicated:
            # 같은 설정의 지표가 중복 등록된 경우는 무시
            if any(type(i) is type(indicator) and i.config() == indicator.config() for i in self.indicators):
                return self
            raise ConfigurationError(f"{indicator!r}: 이미 등록된 필드 {sorted(duplicated)}")
        missing = [f for f in indicator.requires if f not in self._fields]
        if missing:
            raise ConfigurationError(f"{indicator!r}: 선행 지표 필요 {missing}")
        self.indicators.append(indicator)
        self._fields |= fields
        return self

    @property
    def fields(self) -> tuple[str, ...]:
        return tuple(f for i in self.indicators for f in i.fields)

    def run(self, candles: Sequence[Candle]) -> tuple[Candle, ...]:
        for indicator in self.indicators:
            indicator.reset()

        out: list[Candle] = []
        for i, raw in enumerate(candles):
            if raw.index != i:
                raw = raw.with_index(i)
            values: dict[str, Any] = {}
            # 같은 봉의 앞선 지표 값을 읽을 수 있도록 임시 뷰를 붙인 봉을 전달
            staged = replace(raw, indicators=MappingProxyType(values))
            for indicator in self.indicators:
                values.update(indicator.update(i, staged, out))
            out.append(raw.with_indicators(values))

        logger.debug(f"지표 {len(self.indicators)}개 부착 완료 ({len(out)}개 봉)")
        return tuple(out)


def candles_to_frame(candles: Sequence[Candle]) -> pd.DataFrame:
    """지표가 부착된 봉 → DataFrame (노트북 확인/디버깅용)."""
    return pd.DataFrame([c.to_dict() for c in candles])
