"""
변동성 수축 구간 돌파 전략. 롱 전용.

[ 진입 ]
    직전 봉은 수축 구간 안, 현재 봉은 구간 밖
    현재 양봉이 구간 고가 아래에서 시작해 구간 고가 위로 마감
    (옵션) mother/child 몸통 방향 반대, child 거래량 증가율 > min_volume_change
    → 종가에 매수, 손절가 = 구간 저가

[ 청산 ]
    1. 종가 < 손절가                          → 손절가에 청산
    2. 고가 > 진입가 + target_r * 단위 리스크 → 보유 수량의 partial_fraction 부분 청산 (포지션당 1회)
    3. MA(exit_ma_period) > 종가 > 진입가     → 종가에 청산 (수익 보전)
    4. 구간 하단 이탈 음봉                     → 종가에 청산
"""

from typing import Any

from candle_replay.core.data_provider import Side
from candle_replay.core.errors import ConfigurationError
from candle_replay.core.trading_strategy import EntrySignal, ExitSignal, TradingStrategy
from candle_replay.indicators.compression import VolatilityCompression
from candle_replay.indicators.moving_average import MovingAverage
from candle_replay.strategies import register


@register("compression_breakout")
class CompressionBreakoutStrategy(TradingStrategy):

    DEFAULT_PARAMS = {
        "target_r": 2.0,
        "partial_fraction": 0.8,
        "exit_ma_period": 9,
        "require_opposite": True,
        "min_volume_change": 0.0,
    }

    def __init__(self, params: dict[str, Any] | None = None):
        super().__init__(name="compression_breakout", params=params)
        self.exit_ma_field = f"ma{int(self.params['exit_ma_period'])}_close"
        self._partial_taken_at = None   # 부분 청산한 포지션의 진입 시각

    def validate(self) -> None:
        if not 0 < float(self.params["partial_fraction"]) < 1:
            raise ConfigurationError(f"partial_fraction 범위 오류 (0, 1): {self.params['partial_fraction']}")
        if float(self.params["target_r"]) <= 0:
            raise ConfigurationError(f"target_r는 0보다 커야 합니다: {self.params['target_r']}")

    def reset(self) -> None:
        self._partial_taken_at = None

    def indicators(self):
        return [
            VolatilityCompression(),
            MovingAverage(int(self.params["exit_ma_period"]), "close"),
        ]

    @staticmethod
    def _range_exit(series):
        """직전 봉 구간 안 → 현재 봉 구간 밖이면 (어제, 오늘, 구간) 반환."""
        yesterday, today = series.window(2)
        compression = yesterday.get("compression")
        if not yesterday.get("compression_present") or today.get("compression_present") or compression is None:
            return None
        return yesterday, today, compression

    def evaluate_entry(self, series):
        found = self._range_exit(series)
        if found is None:
            return None
        _, today, compression = found
        if not (today.close > compression.high and today.body > 0 and today.open < compression.high):
            return None
        if self.params["require_opposite"] and not compression.is_opposite:
            return None
        if compression.volume_change is None or compression.volume_change <= float(self.params["min_volume_change"]):
            return None
        if compression.low >= today.close:
            return None
        return EntrySignal(
            Side.LONG,
            price=today.close,
            stop_loss=compression.low,
            reason=f"수축 구간(#{compression.origin_index}) 상단 돌파",
        )

    def evaluate_exit(self, series, position):
        today = series.current()
        if today.close < position.stop_loss:
            return ExitSignal(position.stop_loss, reason="손절")

        target = position.entry_price + position.risk_per_unit * float(self.params["target_r"])
        if today.high > target and self._partial_taken_at != position.entry_time:
            self._partial_taken_at = position.entry_time
            quantity = position.quantity * float(self.params["partial_fraction"])
            return ExitSignal(target, quantity=quantity, reason=f"{self.params['target_r']}R 목표 부분 청산")

        ma = today.get(self.exit_ma_field)
        if ma is not None and ma > today.close > position.entry_price:
            return ExitSignal(today.close, reason=f"{self.exit_ma_field} 하회 (수익 구간)")

        found = self._range_exit(series)
        if found is not None:
            _, today, compression = found
            if today.close < compression.low and today.body < 0:
                return ExitSignal(today.close, reason="수축 구간 하단 이탈")
        return None
