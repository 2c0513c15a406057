"""
캔들 데이터 타입과 데이터 제공 추상 클래스 정의.

[ 역할 ]
    OHLCV(시가/고가/저가/종가/거래량) 봉 하나를 표현하는 불변 Candle 타입과,
    파일/DataFrame 등 데이터 소스에 독립적으로 봉 시퀀스를 공급하는 인터페이스.

[ 구현체 ]
    - data/file_provider.py::DataFrameProvider  (메모리 DataFrame)
    - data/file_provider.py::CsvDataProvider    (PathsConfig.data_dir 아래 CSV/JSON 파일)

[ 호출하는 곳 ]
    - data/quote_series.py::QuoteSeries가 Candle 튜플을 보관
    - indicators/pipeline.py가 Candle.with_indicators()로 지표를 한 번만 부착
    - backtest/engine.py 이전 단계에서 provider.get_candles()로 데이터 로드
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

import pandas as pd

from candle_replay.core.errors import DataIntegrityError

OHLCV_COLUMNS = ["timestamp", "open", "high", "low", "close", "volume"]


class Direction(Enum):
    """SuperTrend 방향."""
    BUY = "buy"
    SELL = "sell"


class Side(Enum):
    """포지션 방향."""
    LONG = "long"
    SHORT = "short"

    @property
    def sign(self) -> int:
        return 1 if self is Side.LONG else -1


def _empty_indicators() -> Mapping[str, Any]:
    return MappingProxyType({})


@dataclass(frozen=True)
class Candle:
    """단일 봉(캔들) 데이터.

    indicators는 IndicatorPipeline이 시간 순서대로 한 번만 채우는 읽기 전용 매핑.
    값이 None이면 "과거 데이터 부족 → 시그널 없음"으로 해석한다 (0으로 취급 금지).
    """
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    index: int = -1                # 시리즈 내 위치 (QuoteSeries가 부여)
    indicators: Mapping[str, Any] = field(default_factory=_empty_indicators, compare=False)

    def __post_init__(self):
        for name in ("open", "high", "low", "close"):
            value = getattr(self, name)
            if not math.isfinite(value) or value <= 0:
                raise DataIntegrityError(f"{self.timestamp}: {name} 값 오류 ({value})")
        if not math.isfinite(self.volume) or self.volume < 0:
            raise DataIntegrityError(f"{self.timestamp}: volume 값 오류 ({self.volume})")
        if self.high < self.low:
            raise DataIntegrityError(f"{self.timestamp}: high({self.high}) < low({self.low})")

    @property
    def body(self) -> float:
        return self.close - self.open

    @property
    def range(self) -> float:
        return self.high - self.low

    def get(self, name: str, default: Any = None) -> Any:
        """지표 값 조회. 없으면 default."""
        return self.indicators.get(name, default)

    def with_index(self, index: int) -> "Candle":
        return replace(self, index=index)

    def with_indicators(self, values: Mapping[str, Any]) -> "Candle":
        """지표가 부착된 새 Candle 반환. 이미 부착된 봉에는 다시 붙일 수 없다."""
        if self.indicators:
            raise ValueError(f"{self.timestamp}: 지표가 이미 부착된 봉")
        return replace(self, indicators=MappingProxyType(dict(values)))

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
            **self.indicators,
        }


def frame_to_candles(df: pd.DataFrame) -> list[Candle]:
    """OHLCV DataFrame → Candle 리스트. 타임스탬프 순으로 정렬하지 않는다 (검증은 호출측)."""
    missing = [c for c in OHLCV_COLUMNS if c not in df.columns and c != "volume"]
    if missing:
        raise DataIntegrityError(f"필수 컬럼 누락: {missing}")

    if pd.api.types.is_numeric_dtype(df["timestamp"]):
        timestamps = pd.to_datetime(df["timestamp"], unit="ms")  # 거래소 unix ms
    else:
        timestamps = pd.to_datetime(df["timestamp"])
    volumes = df["volume"] if "volume" in df.columns else pd.Series(0.0, index=df.index)
    candles = []
    for ts, o, h, l, c, v in zip(timestamps, df["open"], df["high"], df["low"], df["close"], volumes):
        candles.append(Candle(
            timestamp=ts.to_pydatetime(),
            open=float(o),
            high=float(h),
            low=float(l),
            close=float(c),
            volume=float(v),
        ))
    return candles


class DataProvider(ABC):
    """봉 데이터 제공 추상 클래스.

    모든 데이터 제공자 구현체는 이 클래스를 상속받아 아래 메서드를 구현해야 한다.
    """

    @abstractmethod
    def get_ohlcv(self, symbol: str, interval: str) -> pd.DataFrame:
        """OHLCV 데이터 조회.

        Returns:
            DataFrame with columns: [timestamp, open, high, low, close, volume]
        """
        ...

    @abstractmethod
    def get_symbols(self) -> list[str]:
        """조회 가능한 심볼 목록."""
        ...

    def get_candles(self, symbol: str, interval: str) -> list[Candle]:
        """get_ohlcv() 결과를 Candle 리스트로 변환."""
        return frame_to_candles(self.get_ohlcv(symbol, interval))
