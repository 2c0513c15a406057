"""
외부 예측 모델 시그널 전략.

[ 역할 ]
    학습된 모델을 불투명한 시그널 제공자로 취급: model(candle) → 스칼라.
    모델 학습/로딩은 이 패키지 밖의 책임이며, 여기서는 스칼라를 진입/청산으로만 변환.

[ 시그널 해석 mode ]
    "probability": [0, 1] 상승 확률. > threshold → 롱, < 1 - threshold → 숏(allow_short일 때)
    "direction":   {-1, 0, 1}. 1 → 롱, -1 → 숏(allow_short일 때), 0 → 관망

[ 청산 ]
    저가/고가가 손절가 도달 → 손절가에 청산
    시그널이 보유 방향과 반대 → 종가에 청산

[ 파라미터 ]
    model (필수, callable), mode, threshold, stop_pct, allow_short
"""

import math
from typing import Any

from candle_replay.core.data_provider import Side
from candle_replay.core.errors import ConfigurationError, SignalError
from candle_replay.core.trading_strategy import EntrySignal, ExitSignal, TradingStrategy
from candle_replay.strategies import register

MODES = ("probability", "direction")


@register("signal_provider")
class SignalProviderStrategy(TradingStrategy):

    DEFAULT_PARAMS = {
        "model": None,
        "mode": "probability",
        "threshold": 0.5,
        "stop_pct": 2.0,
        "allow_short": True,
    }

    def __init__(self, params: dict[str, Any] | None = None):
        super().__init__(name="signal_provider", params=params)
        self.model = self.params["model"]

    def validate(self) -> None:
        if not callable(self.params["model"]):
            raise ConfigurationError("signal_provider: model(callable) 파라미터가 필요합니다.")
        if self.params["mode"] not in MODES:
            raise ConfigurationError(f"signal_provider: mode는 {MODES} 중 하나: '{self.params['mode']}'")
        if not 0.5 <= float(self.params["threshold"]) < 1:
            raise ConfigurationError(f"signal_provider: threshold 범위 오류 [0.5, 1): {self.params['threshold']}")
        if not 0 < float(self.params["stop_pct"]) < 100:
            raise ConfigurationError(f"signal_provider: stop_pct 범위 오류 (0, 100): {self.params['stop_pct']}")

    def indicators(self):
        return []

    def direction(self, candle) -> int:
        """모델 스칼라 → +1(롱) / -1(숏) / 0(관망)."""
        output = self.model(candle)
        try:
            value = float(output)
        except (TypeError, ValueError) as e:
            raise SignalError(f"모델 출력을 숫자로 변환할 수 없습니다: {output!r}") from e
        if not math.isfinite(value):
            raise SignalError(f"모델 출력 오류: {value}")

        if self.params["mode"] == "direction":
            if value not in (-1.0, 0.0, 1.0):
                raise SignalError(f"direction 모드 모델 출력은 -1/0/1 이어야 합니다: {value}")
            signal = int(value)
        else:
            if not 0 <= value <= 1:
                raise SignalError(f"probability 모드 모델 출력은 [0, 1] 이어야 합니다: {value}")
            threshold = float(self.params["threshold"])
            if value > threshold:
                signal = 1
            elif value < 1 - threshold:
                signal = -1
            else:
                signal = 0

        if signal == -1 and not self.params["allow_short"]:
            return 0
        return signal

    def evaluate_entry(self, series):
        today = series.current()
        signal = self.direction(today)
        if signal == 0:
            return None
        stop_pct = float(self.params["stop_pct"]) / 100
        if signal == 1:
            return EntrySignal(Side.LONG, today.close, today.close * (1 - stop_pct), reason="모델 롱 시그널")
        return EntrySignal(Side.SHORT, today.close, today.close * (1 + stop_pct), reason="모델 숏 시그널")

    def evaluate_exit(self, series, position):
        today = series.current()
        if position.side is Side.LONG and today.low <= position.stop_loss:
            return ExitSignal(position.stop_loss, reason="손절")
        if position.side is Side.SHORT and today.high >= position.stop_loss:
            return ExitSignal(position.stop_loss, reason="손절")
        signal = self.direction(today)
        if signal == -position.side.sign:
            return ExitSignal(today.close, reason="모델 시그널 반전")
        return None
