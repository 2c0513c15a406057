"""
캔들 패턴 전략. 롱 전용.

[ 진입 ]
    hammer / bullish_engulfing / morning_star / piercing_line 중 하나 → 종가에 매수
    손절가 = 종가 * (1 - stop_pct / 100)

[ 청산 ]
    저가 <= 손절가 → 손절가에 청산
    bearish_engulfing / dark_cloud_cover / three_black_crows (exit_on_doji면 doji 포함) → 종가에 청산

[ 파라미터 ]
    패턴 임계값은 모두 이 전략이 소유 (엔진/지표 공용 상수 아님)
    doji_ratio 0.1, engulfing_ratio 1.5, hammer_shadow_ratio 2.0, star_ratio 0.3, stop_pct 2.0
"""

from typing import Any

from candle_replay.core.data_provider import Side
from candle_replay.core.errors import ConfigurationError
from candle_replay.core.trading_strategy import EntrySignal, ExitSignal, TradingStrategy
from candle_replay.indicators.candle_patterns import CandlePatterns
from candle_replay.strategies import register

BULLISH_PATTERNS = ("hammer", "bullish_engulfing", "morning_star", "piercing_line")
BEARISH_PATTERNS = ("bearish_engulfing", "dark_cloud_cover", "three_black_crows")


@register("candle_pattern")
class CandlePatternStrategy(TradingStrategy):

    DEFAULT_PARAMS = {
        "doji_ratio": 0.1,
        "engulfing_ratio": 1.5,
        "hammer_shadow_ratio": 2.0,
        "star_ratio": 0.3,
        "stop_pct": 2.0,
        "exit_on_doji": True,
    }

    def __init__(self, params: dict[str, Any] | None = None):
        super().__init__(name="candle_pattern", params=params)

    def validate(self) -> None:
        if not 0 < float(self.params["stop_pct"]) < 100:
            raise ConfigurationError(f"stop_pct 범위 오류 (0, 100): {self.params['stop_pct']}")

    def indicators(self):
        return [CandlePatterns(
            doji_ratio=float(self.params["doji_ratio"]),
            hammer_shadow_ratio=float(self.params["hammer_shadow_ratio"]),
            engulfing_ratio=float(self.params["engulfing_ratio"]),
            star_ratio=float(self.params["star_ratio"]),
        )]

    def evaluate_entry(self, series):
        today = series.current()
        matched = [name for name in BULLISH_PATTERNS if today.get(name) == 1]
        if not matched:
            return None
        stop = today.close * (1 - float(self.params["stop_pct"]) / 100)
        return EntrySignal(Side.LONG, today.close, stop, reason=f"상승 패턴: {', '.join(matched)}")

    def evaluate_exit(self, series, position):
        today = series.current()
        if today.low <= position.stop_loss:
            return ExitSignal(position.stop_loss, reason="손절")
        exits = BEARISH_PATTERNS + (("doji",) if self.params["exit_on_doji"] else ())
        matched = [name for name in exits if today.get(name) == 1]
        if matched:
            return ExitSignal(today.close, reason=f"하락/반전 패턴: {', '.join(matched)}")
        return None
