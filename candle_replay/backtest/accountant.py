"""
거래 결과 정산(Accountant) 모듈.

[ 역할 ]
    PositionLedger의 체결 로그(Transaction)를 사후 처리하여 ClosedTrade 목록을 만든다.
    두 단계 모두 입력을 변경하지 않는 순수 함수이며, 같은 입력에 다시 적용해도 결과가 같다.

[ 1단계: 페어링 pair_transactions() ]
    ENTRY 하나 + 이어지는 PARTIAL_EXIT들 + 마지막 EXIT → ClosedTrade 하나 (FIFO)
    - 청산가: 청산 레그들의 수량 가중 평균
    - 보유 기간: ceil((청산 시각 - 진입 시각) / 봉 간격) 봉
    - 수수료: 진입/청산 모든 레그의 체결금액 * fee_rate
    - 손익: Σ (청산가 - 진입가) * 수량 (숏은 부호 반대)
    - reward: 손익 / |risk| (risk 0이면 0)
    - 청산되지 않은 마지막 ENTRY는 open_entry로 따로 보고 (페어링 안 함)
    - ENTRY 없이 나온 청산 → IllegalStateTransition

[ 2단계: 낙폭 apply_drawdown() ]
    누적 손익(수수료 차감 후)과 누적 고점(0에서 시작)을 순서대로 추적
    - drawdown = 고점 - 누적 손익 (0 이상 금액)
    - drawdown_pct = drawdown / (초기 자본 + 고점) * 100
    - drawdown_duration = 마지막 신고점 이후 연속 거래 수, 신고점에서 정확히 0으로 리셋

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine.execute() 리플레이 종료 후
    - backtest/metrics.py::calculate_metrics()가 결과 ClosedTrade로 성과 계산
"""

import math
from dataclasses import asdict, dataclass, replace
from datetime import datetime
from typing import Any, Sequence

import pandas as pd

from candle_replay.core.data_provider import Side
from candle_replay.core.errors import IllegalStateTransition
from candle_replay.data.integrity import parse_interval
from candle_replay.data.ledger import Transaction, TransactionType

DEFAULT_FEE_RATE = 0.001
_QTY_TOLERANCE = 1e-9


@dataclass(frozen=True)
class ClosedTrade:
    """진입~청산이 끝난 거래 하나. accountant만 생성한다."""
    side: Side
    entry_time: datetime
    exit_time: datetime
    entry_price: float
    exit_price: float            # 청산 레그 수량 가중 평균
    quantity: float
    duration: int                # 봉 수
    fee: float
    pnl: float
    pnl_after_fee: float
    risk: float
    reward: float
    legs: int = 1                # 청산 레그 수 (부분 청산 포함)
    # apply_drawdown()이 채우는 값
    drawdown: float = 0.0
    drawdown_pct: float = 0.0
    drawdown_duration: int = 0
    cumulative_pnl: float = 0.0
    cumulative_reward: float = 0.0
    equity: float = 0.0
    peak_equity: float = 0.0

    @property
    def is_win(self) -> bool:
        return self.pnl_after_fee > 0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["side"] = self.side.value
        return data


@dataclass(frozen=True)
class PairingResult:
    trades: tuple[ClosedTrade, ...]
    open_entry: Transaction | None = None       # 청산되지 않은 마지막 진입
    open_quantity: float = 0.0                  # 그 진입의 남은 수량


def _close_trade(entry: Transaction, legs: list[Transaction], interval: pd.Timedelta, fee_rate: float) -> ClosedTrade:
    quantity = sum(leg.quantity for leg in legs)
    notional_out = sum(leg.price * leg.quantity for leg in legs)
    exit_price = notional_out / quantity
    pnl = sum((leg.price - entry.price) * leg.quantity for leg in legs) * entry.side.sign
    fee = fee_rate * (entry.price * entry.quantity + notional_out)
    exit_time = legs[-1].timestamp
    elapsed = pd.Timestamp(exit_time) - pd.Timestamp(entry.timestamp)
    risk = abs(entry.risk)
    return ClosedTrade(
        side=entry.side,
        entry_time=entry.timestamp,
        exit_time=exit_time,
        entry_price=entry.price,
        exit_price=exit_price,
        quantity=quantity,
        duration=math.ceil(elapsed / interval),
        fee=fee,
        pnl=pnl,
        pnl_after_fee=pnl - fee,
        risk=risk,
        reward=pnl / risk if risk else 0.0,
        legs=len(legs),
    )


def pair_transactions(
    transactions: Sequence[Transaction],
    interval: str,
    fee_rate: float = DEFAULT_FEE_RATE,
) -> PairingResult:
    """체결 로그 → ClosedTrade 목록 (+ 미청산 진입)."""
    step = parse_interval(interval)
    trades: list[ClosedTrade] = []
    entry: Transaction | None = None
    legs: list[Transaction] = []

    for tx in transactions:
        if tx.type is TransactionType.ENTRY:
            if entry is not None:
                raise IllegalStateTransition(f"{tx.timestamp}: 이전 진입({entry.timestamp})이 청산되기 전 진입")
            entry, legs = tx, []
            continue

        if entry is None:
            raise IllegalStateTransition(f"{tx.timestamp}: 진입 없는 청산")
        if tx.side is not entry.side:
            raise IllegalStateTransition(f"{tx.timestamp}: 진입({entry.side.value})과 다른 방향 청산({tx.side.value})")
        legs.append(tx)

        if tx.type is TransactionType.EXIT:
            closed = sum(leg.quantity for leg in legs)
            if abs(closed - entry.quantity) > _QTY_TOLERANCE * max(1.0, entry.quantity):
                raise IllegalStateTransition(
                    f"{tx.timestamp}: 청산 수량 합({closed})이 진입 수량({entry.quantity})과 다름"
                )
            trades.append(_close_trade(entry, legs, step, fee_rate))
            entry, legs = None, []

    open_quantity = 0.0
    if entry is not None:
        open_quantity = entry.quantity - sum(leg.quantity for leg in legs)
    return PairingResult(trades=tuple(trades), open_entry=entry, open_quantity=open_quantity)


def apply_drawdown(trades: Sequence[ClosedTrade], starting_capital: float) -> tuple[ClosedTrade, ...]:
    """누적 손익/고점 기준 낙폭 계산. 새 ClosedTrade 튜플 반환."""
    result = []
    cumulative = 0.0
    cumulative_reward = 0.0
    peak = 0.0
    duration = 0

    for trade in trades:
        cumulative += trade.pnl_after_fee
        cumulative_reward += trade.reward
        if cumulative > peak:
            peak = cumulative
            duration = 0
            drawdown = 0.0
        else:
            drawdown = peak - cumulative
            duration += 1
        base = starting_capital + peak
        result.append(replace(
            trade,
            drawdown=drawdown,
            drawdown_pct=drawdown / base * 100 if base > 0 else 0.0,
            drawdown_duration=duration,
            cumulative_pnl=cumulative,
            cumulative_reward=cumulative_reward,
            equity=starting_capital + cumulative,
            peak_equity=starting_capital + peak,
        ))
    return tuple(result)


class TradeAccountant:
    """페어링 + 낙폭 계산을 묶은 정산기.

    사용 예:
        accountant = TradeAccountant(interval="60", fee_rate=0.001)
        result = accountant.process(ledger.transactions, starting_capital=100_000)
    """

    def __init__(self, interval: str, fee_rate: float = DEFAULT_FEE_RATE):
        self.interval = str(interval)
        self.fee_rate = fee_rate

    def process(self, transactions: Sequence[Transaction], starting_capital: float) -> PairingResult:
        paired = pair_transactions(transactions, self.interval, self.fee_rate)
        return replace(paired, trades=apply_drawdown(paired.trades, starting_capital))
