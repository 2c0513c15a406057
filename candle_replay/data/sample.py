"""
샘플 봉 데이터 생성 모듈.

[ 역할 ]
    실데이터 없이 전략/지표를 검증하기 위한 합성 OHLCV 데이터 생성.
    - generate_sample_data(): 랜덤 워크 DataFrame (numpy)
    - candles_from_closes(): 종가 리스트로 결정적인 봉 생성 (시나리오 테스트용)

[ 호출하는 곳 ]
    - tests/ 전반 (지표 기준값 비교, 엔진 시나리오)
    - 노트북에서 DataFrameProvider에 넣어 빠른 시연
"""

from typing import Sequence

import numpy as np
import pandas as pd

from candle_replay.core.data_provider import Candle, frame_to_candles
from candle_replay.data.integrity import parse_interval


def generate_sample_data(
    symbol: str = "SAMPLE",
    periods: int = 500,
    interval: str = "60",
    start: str = "2024-01-01",
    initial_price: float = 100.0,
    volatility: float = 0.02,
    seed: int | None = None,
) -> pd.DataFrame:
    """백테스트용 랜덤 워크 OHLCV 데이터 생성.

    seed를 주지 않으면 symbol 문자열에서 결정적으로 시드를 만든다.
    """
    if seed is None:
        seed = sum(ord(ch) for ch in symbol)
    rng = np.random.default_rng(seed)

    timestamps = pd.date_range(start=start, periods=periods, freq=parse_interval(interval))
    returns = rng.normal(0.0002, volatility, periods)
    closes = initial_price * np.cumprod(1 + returns)
    opens = np.concatenate([[initial_price], closes[:-1]]) * (1 + rng.normal(0, 0.002, periods))

    # 고가/저가는 시가/종가를 반드시 포함하도록
    highs = np.maximum(opens, closes) * (1 + np.abs(rng.normal(0, 0.005, periods)))
    lows = np.minimum(opens, closes) * (1 - np.abs(rng.normal(0, 0.005, periods)))
    volumes = rng.lognormal(10, 1, periods)

    return pd.DataFrame({
        "timestamp": timestamps,
        "open": opens,
        "high": highs,
        "low": lows,
        "close": closes,
        "volume": volumes,
    })


def generate_sample_candles(periods: int = 500, **kwargs) -> list[Candle]:
    """generate_sample_data() 결과를 Candle 리스트로."""
    return frame_to_candles(generate_sample_data(periods=periods, **kwargs))


def candles_from_closes(
    closes: Sequence[float],
    interval: str = "60",
    start: str = "2024-01-01",
    spread: float = 0.0,
    volume: float = 1000.0,
) -> list[Candle]:
    """종가 시퀀스로 결정적인 봉 생성.

    시가 = 직전 종가 (첫 봉은 자기 종가), 고가/저가 = 시가·종가 범위를 spread 비율만큼 확장.
    spread=0이고 종가가 일정하면 변동성이 0인 봉이 된다.
    """
    timestamps = pd.date_range(start=start, periods=len(closes), freq=parse_interval(interval))
    candles = []
    prev_close = closes[0] if len(closes) else 0.0
    for ts, close in zip(timestamps, closes):
        open_price = prev_close
        candles.append(Candle(
            timestamp=ts.to_pydatetime(),
            open=float(open_price),
            high=float(max(open_price, close) * (1 + spread)),
            low=float(min(open_price, close) * (1 - spread)),
            close=float(close),
            volume=volume,
        ))
        prev_close = close
    return candles
