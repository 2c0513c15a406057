"""
봉 데이터 무결성 검사 모듈.

[ 역할 ]
    리플레이 시작 전에 타임스탬프 순서와 간격을 검사하여 DataIntegrityError로 즉시 실패.
    봉 간격 문자열("15m", "1h", "D", "60" 등)을 Timedelta로 변환.

[ 호출하는 곳 ]
    - data/file_provider.py::load_series() 에서 QuoteSeries 생성 전
    - backtest/accountant.py 에서 거래 보유 기간(봉 수) 계산 시 parse_interval()
"""

import logging
import re
from collections import Counter
from typing import Sequence

import pandas as pd

from candle_replay.core.data_provider import Candle
from candle_replay.core.errors import DataIntegrityError

logger = logging.getLogger("candle_replay.data")

# 거래소 표기 (Bybit 스타일) → pandas 단위
_LETTER_INTERVALS = {
    "D": pd.Timedelta(days=1),
    "W": pd.Timedelta(weeks=1),
}
_UNIT_PATTERN = re.compile(r"^(\d+)\s*(m|min|h|d|w)$", re.IGNORECASE)
_UNITS = {"m": "min", "min": "min", "h": "h", "d": "D", "w": "W"}


def parse_interval(interval: str) -> pd.Timedelta:
    """봉 간격 문자열 → Timedelta.

    숫자만 있으면 분 단위 ("60" → 1시간), "D"/"W"는 일/주,
    "15m", "4h", "1d" 같은 표기도 허용.
    """
    text = str(interval).strip()
    if text.isdigit():
        return pd.Timedelta(minutes=int(text))
    if text.upper() in _LETTER_INTERVALS:
        return _LETTER_INTERVALS[text.upper()]
    match = _UNIT_PATTERN.match(text)
    if not match:
        raise DataIntegrityError(f"알 수 없는 봉 간격: '{interval}'")
    value, unit = match.groups()
    return pd.Timedelta(int(value), unit=_UNITS[unit.lower()])


def check_data_integrity(
    candles: Sequence[Candle],
    interval: str,
    allow_gaps: bool = False,
) -> dict[str, int]:
    """타임스탬프 단조 증가 + 간격 일치 검사.

    Args:
        candles: 시간순 봉 리스트
        interval: 명목 봉 간격
        allow_gaps: True면 간격이 벌어진 구간(주말/휴장)은 경고만 남김

    Returns:
        {날짜: 봉 개수} 일별 집계 (누락 점검용)

    Raises:
        DataIntegrityError: 역순/중복 타임스탬프, 또는 allow_gaps=False일 때 간격 누락
    """
    expected = parse_interval(interval)
    gaps = 0
    for prev, curr in zip(candles, candles[1:]):
        delta = pd.Timestamp(curr.timestamp) - pd.Timestamp(prev.timestamp)
        if delta <= pd.Timedelta(0):
            raise DataIntegrityError(f"타임스탬프 역순/중복: {prev.timestamp} -> {curr.timestamp}")
        if delta != expected:
            if not allow_gaps:
                raise DataIntegrityError(
                    f"데이터 누락: {prev.timestamp} -> {curr.timestamp} ({delta}, 기대값 {expected})"
                )
            gaps += 1

    if gaps:
        logger.warning(f"간격 불일치 구간 {gaps}개 (allow_gaps=True)")

    daily = Counter(pd.Timestamp(c.timestamp).date().isoformat() for c in candles)
    return dict(daily)
