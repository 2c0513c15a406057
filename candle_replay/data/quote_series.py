"""
봉 시퀀스 + 리플레이 커서 모듈.

[ 역할 ]
    불변 Candle 튜플과 앞으로만 움직이는 커서를 제공.
    전략은 current()/lookback()/window_*()로 현재 봉과 과거 봉만 조회할 수 있다 (미래 조회 불가).

[ 커서 규칙 ]
    - 생성 직후에는 아무 봉도 가리키지 않음 (position == warmup - 1)
    - advance()마다 한 봉 전진
    - warmup 만큼의 앞쪽 봉은 전략 평가 없이 과거 데이터로만 사용됨
    - cursor()로 같은 데이터를 공유하는 독립 커서 생성 (전략 실행마다 하나씩)

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine.execute() 리플레이 루프
    - strategies/*.py 에서 진입/청산 판단 시 조회
"""

from typing import Iterable

from candle_replay.core.data_provider import Candle
from candle_replay.core.errors import DataIntegrityError, InsufficientHistoryError


class QuoteSeries:
    """불변 봉 시퀀스와 전진 전용 커서.

    사용 예:
        series = QuoteSeries(candles, warmup=20)
        while series.has_next():
            today = series.advance()
            yesterday = series.lookback(1)
    """

    def __init__(
        self,
        candles: Iterable[Candle],
        warmup: int = 0,
        symbol: str = "",
        interval: str = "",
    ):
        if warmup < 0:
            raise ValueError("warmup must be >= 0")

        items = tuple(candles)
        for prev, curr in zip(items, items[1:]):
            if curr.timestamp <= prev.timestamp:
                raise DataIntegrityError(
                    f"타임스탬프 역순/중복: {prev.timestamp} -> {curr.timestamp}"
                )
        # index가 비어 있는 봉에는 위치를 부여
        self._candles: tuple[Candle, ...] = tuple(
            c if c.index == i else c.with_index(i) for i, c in enumerate(items)
        )
        self.warmup = warmup
        self.symbol = symbol
        self.interval = interval
        self._position = warmup - 1

    def __len__(self) -> int:
        return len(self._candles)

    @property
    def candles(self) -> tuple[Candle, ...]:
        return self._candles

    @property
    def position(self) -> int:
        """현재 커서 위치. advance() 전에는 warmup - 1."""
        return self._position

    def cursor(self, warmup: int | None = None) -> "QuoteSeries":
        """같은 불변 데이터를 공유하는 새 커서."""
        clone = QuoteSeries.__new__(QuoteSeries)
        clone._candles = self._candles
        clone.warmup = self.warmup if warmup is None else warmup
        clone.symbol = self.symbol
        clone.interval = self.interval
        clone._position = clone.warmup - 1
        return clone

    def has_next(self) -> bool:
        return self._position + 1 < len(self._candles)

    def advance(self) -> Candle:
        if not self.has_next():
            raise StopIteration("시리즈 끝")
        self._position += 1
        return self._candles[self._position]

    def current(self) -> Candle:
        if self._position < 0:
            raise IndexError("advance()를 먼저 호출하세요.")
        return self._candles[self._position]

    def lookback(self, n: int = 1) -> Candle | None:
        """현재 봉 기준 n봉 전. 범위를 벗어나면 None."""
        if n < 0:
            raise ValueError("lookback은 과거 방향만 허용 (n >= 0)")
        idx = self._position - n
        if idx < 0 or self._position < 0:
            return None
        return self._candles[idx]

    def history(self, n: int) -> tuple[Candle, ...]:
        """현재 봉 이전 최대 n개 봉 (현재 봉 제외, 오래된 순)."""
        start = max(0, self._position - n)
        return self._candles[start:max(self._position, 0)]

    def window(self, n: int) -> tuple[Candle, ...]:
        """현재 봉 포함 최근 n개 봉. 부족하면 InsufficientHistoryError."""
        available = self._position + 1
        if n > available:
            raise InsufficientHistoryError(required=n, available=available)
        return self._candles[available - n:available]

    def window_high(self, n: int) -> Candle | None:
        """현재 봉 이전 n개 봉 중 고가가 가장 높은 봉."""
        candles = self.history(n)
        if not candles:
            return None
        return max(candles, key=lambda c: c.high)

    def window_low(self, n: int) -> Candle | None:
        """현재 봉 이전 n개 봉 중 저가가 가장 낮은 봉."""
        candles = self.history(n)
        if not candles:
            return None
        return min(candles, key=lambda c: c.low)

    def simple_moving_average(self, n: int) -> float | None:
        """현재 봉 포함 최근 n개 종가 평균. 데이터 부족 시 None."""
        if n <= 0 or self._position + 1 < n:
            return None
        closes = [c.close for c in self.window(n)]
        return sum(closes) / n
