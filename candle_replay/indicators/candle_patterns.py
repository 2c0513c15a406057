"""
캔들 형태 / 패턴 판별.

[ 역할 ]
    현재 봉과 최대 3개의 직전 봉만 보는 상태 없는 판별 함수 모음.
    결과는 1(패턴 있음) / 0(없음) / None(직전 봉 부족 → 판단 불가).
    임계값은 모두 키워드 인자이며 기본값은 아래와 같다.

[ 패턴 / 기본 임계값 ]
    doji               |body| / range < 0.1
    hammer             아래꼬리 > 2 * |body|, 위꼬리 < |body| / 2
    bullish_engulfing  음봉 뒤 양봉, 몸통 >= 직전 몸통 * 1.5, 직전 몸통을 감쌈
    bearish_engulfing  양봉 뒤 음봉, 조건 대칭
    morning_star       장대 음봉 → 작은 몸통(<= 첫 몸통 * 0.3) → 첫 봉 몸통 중간 위로 마감한 양봉
    three_black_crows  연속 음봉 3개, 각 시가는 직전 몸통 안, 종가는 계속 하락
    piercing_line      음봉 뒤 직전 종가 아래 시가, 직전 몸통 중간 위 ~ 시가 아래 마감한 양봉
    dark_cloud_cover   양봉 뒤 직전 종가 위 시가, 직전 몸통 중간 아래 ~ 시가 위 마감한 음봉

[ 호출하는 곳 ]
    - CandlePatterns 지표로 파이프라인에서 필드 부착
    - strategies/candle_pattern_strategy.py
"""

from typing import Any, Sequence

from candle_replay.core.data_provider import Candle
from candle_replay.indicators.base import Indicator


# ─── 캔들 형태 ──────────────────────────────────────────────────────────────

def upper_wick(candle: Candle) -> float:
    return candle.high - max(candle.open, candle.close)


def lower_wick(candle: Candle) -> float:
    return min(candle.open, candle.close) - candle.low


def _midpoint(candle: Candle) -> float:
    return (candle.open + candle.close) / 2


# ─── 단일 봉 패턴 ───────────────────────────────────────────────────────────

def is_doji(candle: Candle, body_ratio: float = 0.1) -> int:
    if candle.range == 0:
        return 1
    return int(abs(candle.body) / candle.range < body_ratio)


def is_hammer(candle: Candle, shadow_ratio: float = 2.0, upper_ratio: float = 0.5) -> int:
    body = abs(candle.body)
    return int(lower_wick(candle) > shadow_ratio * body and upper_wick(candle) < body * upper_ratio)


# ─── 2봉 패턴 ───────────────────────────────────────────────────────────────

def is_bullish_engulfing(candle: Candle, prev: Candle | None, body_ratio: float = 1.5) -> int | None:
    if prev is None:
        return None
    return int(
        prev.body < 0
        and candle.body > 0
        and abs(candle.body) >= body_ratio * abs(prev.body)
        and candle.open <= prev.close
        and candle.close >= prev.open
    )


def is_bearish_engulfing(candle: Candle, prev: Candle | None, body_ratio: float = 1.5) -> int | None:
    if prev is None:
        return None
    return int(
        prev.body > 0
        and candle.body < 0
        and abs(candle.body) >= body_ratio * abs(prev.body)
        and candle.open >= prev.close
        and candle.close <= prev.open
    )


def is_piercing_line(candle: Candle, prev: Candle | None) -> int | None:
    if prev is None:
        return None
    return int(
        prev.body < 0
        and candle.body > 0
        and candle.open < prev.close
        and _midpoint(prev) < candle.close < prev.open
    )


def is_dark_cloud_cover(candle: Candle, prev: Candle | None) -> int | None:
    if prev is None:
        return None
    return int(
        prev.body > 0
        and candle.body < 0
        and candle.open > prev.close
        and prev.open < candle.close < _midpoint(prev)
    )


# ─── 3봉 패턴 ───────────────────────────────────────────────────────────────

def is_morning_star(candle: Candle, priors: Sequence[Candle], star_ratio: float = 0.3) -> int | None:
    """priors: 직전 봉들 (오래된 순), 최소 2개 필요."""
    if len(priors) < 2:
        return None
    first, star = priors[-2], priors[-1]
    return int(
        first.body < 0
        and abs(star.body) <= star_ratio * abs(first.body)
        and candle.body > 0
        and candle.close > _midpoint(first)
    )


def is_three_black_crows(candle: Candle, priors: Sequence[Candle]) -> int | None:
    """priors: 직전 봉들 (오래된 순), 최소 2개 필요."""
    if len(priors) < 2:
        return None
    crows = (priors[-2], priors[-1], candle)
    if any(c.body >= 0 for c in crows):
        return 0
    for prev, cur in zip(crows, crows[1:]):
        if not (prev.close <= cur.open <= prev.open and cur.close < prev.close):
            return 0
    return 1


# ─── 파이프라인 지표 ─────────────────────────────────────────────────────────

class CandleAnatomy(Indicator):
    """body / upper_wick / lower_wick 필드."""

    name = "anatomy"

    @property
    def fields(self) -> tuple[str, ...]:
        return ("body", "upper_wick", "lower_wick")

    def reset(self) -> None:
        pass

    def update(self, index: int, candle: Candle, history: Sequence[Candle]) -> dict[str, Any]:
        return {
            "body": candle.body,
            "upper_wick": upper_wick(candle),
            "lower_wick": lower_wick(candle),
        }


class CandlePatterns(Indicator):
    """모든 패턴 판별 결과를 필드로 부착."""

    name = "patterns"

    def __init__(
        self,
        doji_ratio: float = 0.1,
        hammer_shadow_ratio: float = 2.0,
        engulfing_ratio: float = 1.5,
        star_ratio: float = 0.3,
    ):
        self.doji_ratio = doji_ratio
        self.hammer_shadow_ratio = hammer_shadow_ratio
        self.engulfing_ratio = engulfing_ratio
        self.star_ratio = star_ratio

    @property
    def fields(self) -> tuple[str, ...]:
        return (
            "doji", "hammer", "bullish_engulfing", "bearish_engulfing",
            "morning_star", "three_black_crows", "piercing_line", "dark_cloud_cover",
        )

    def reset(self) -> None:
        pass

    def update(self, index: int, candle: Candle, history: Sequence[Candle]) -> dict[str, Any]:
        priors = history[-3:]
        prev = priors[-1] if priors else None
        return {
            "doji": is_doji(candle, self.doji_ratio),
            "hammer": is_hammer(candle, self.hammer_shadow_ratio),
            "bullish_engulfing": is_bullish_engulfing(candle, prev, self.engulfing_ratio),
            "bearish_engulfing": is_bearish_engulfing(candle, prev, self.engulfing_ratio),
            "morning_star": is_morning_star(candle, priors, self.star_ratio),
            "three_black_crows": is_three_black_crows(candle, priors),
            "piercing_line": is_piercing_line(candle, prev),
            "dark_cloud_cover": is_dark_cloud_cover(candle, prev),
        }
