"""
포지션 원장(Ledger) 모듈.

[ 역할 ]
    자본, 리스크 예산, 단일 포지션, 체결 로그(Transaction)를 통합 관리.
    모든 전략이 공유하는 진입/청산/수량 계산 상태 머신.
    전략은 시그널만 반환하고 자본/수량은 이 클래스만 변경한다.

[ 상태 전이 ]
    FLAT ──enter()──→ LONG / SHORT
    LONG / SHORT ──exit(보유 수량 전체)──→ FLAT           (EXIT)
    LONG / SHORT ──exit(일부 수량)──→ 수량 감소 상태 유지   (PARTIAL_EXIT)
    숏 청산 입금액은 short_credit ("notional" 기본, "margin")로 선택
    포지션 보유 중 enter(), 포지션 없이 exit(), 보유 수량 초과 exit() → IllegalStateTransition

[ 주요 클래스 ]
    Transaction    - 체결 기록 (불변, append-only)
    Position       - 현재 보유 포지션 (진입가/수량/단위 리스크/방향/손절가)
    Account        - 자본 + 1회 진입 리스크 예산
    PositionLedger - 위 세 가지를 묶은 상태 머신

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine이 전략 시그널을 받아 enter()/exit() 호출
    - backtest/accountant.py::pair_transactions()가 transactions 로그를 거래 단위로 묶음
    - backtest/engine.py가 리플레이마다 새 원장을 만들고, 같은 원장을 다시 쓸 때는 reset()
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from candle_replay.core.data_provider import Side
from candle_replay.core.errors import CapitalExhausted, ConfigurationError, IllegalStateTransition

logger = logging.getLogger("candle_replay.ledger")

# 숏 청산 입금 방식
#   "notional": quantity * 청산가 (롱과 동일)
#   "margin":   진입 때 묶인 증거금 + 숏 손익 = quantity * (2 * 진입가 - 청산가)
SHORT_CREDIT_MODES = ("notional", "margin")


class TransactionType(Enum):
    ENTRY = "entry"
    EXIT = "exit"
    PARTIAL_EXIT = "partial_exit"


@dataclass(frozen=True)
class Transaction:
    """체결 기록. accountant.py에서 진입/청산 쌍으로 묶인다."""
    timestamp: datetime
    price: float
    quantity: float
    risk: float              # 진입 시 risk_per_unit * quantity, 청산 시 0
    side: Side
    type: TransactionType

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "price": self.price,
            "quantity": self.quantity,
            "risk": self.risk,
            "side": self.side.value,
            "type": self.type.value,
        }


@dataclass
class Position:
    """현재 보유 포지션. 원장에 최대 1개."""
    side: Side
    entry_price: float
    quantity: float
    risk_per_unit: float
    stop_loss: float
    entry_time: datetime

    def unrealized_pnl(self, price: float) -> float:
        """현재가 기준 평가 손익 (금액)."""
        return (price - self.entry_price) * self.quantity * self.side.sign

    def unrealized_return(self, price: float) -> float:
        """현재가 기준 평가 수익률 (비율, 0.01 = 1%)."""
        return (price - self.entry_price) / self.entry_price * self.side.sign


@dataclass
class Account:
    """자본 + 리스크 예산.

    risk_budget = 초기 자본 * risk_percentage / 100
    risk_mode="fixed"면 생성 시 고정, "equity"면 진입마다 현재 자본으로 재계산.
    """
    capital: float
    risk_percentage: float
    risk_mode: str = "fixed"

    def __post_init__(self):
        if self.capital <= 0:
            raise ConfigurationError(f"capital은 0보다 커야 합니다: {self.capital}")
        if not 0 < self.risk_percentage <= 100:
            raise ConfigurationError(f"risk_percentage 범위 오류 (0, 100]: {self.risk_percentage}")
        if self.risk_mode not in ("fixed", "equity"):
            raise ConfigurationError(f"알 수 없는 risk_mode: '{self.risk_mode}'")
        self.starting_capital = self.capital
        self.risk_budget = self.capital * self.risk_percentage / 100

    def refresh_budget(self) -> None:
        """equity 모드에서만 현재 자본 기준으로 예산 갱신."""
        if self.risk_mode == "equity":
            self.risk_budget = max(self.capital, 0.0) * self.risk_percentage / 100


class PositionLedger:
    """진입/청산/수량 계산 상태 머신.

    사용 예:
        ledger = PositionLedger(capital=100_000, risk_percentage=5)
        ledger.enter(Side.LONG, price=100, stop_loss=95, timestamp=ts)
        ledger.exit(price=110, timestamp=ts2)
    """

    def __init__(
        self,
        capital: float,
        risk_percentage: float,
        risk_mode: str = "fixed",
        fractional: bool = True,
        short_credit: str = "notional",
    ):
        if short_credit not in SHORT_CREDIT_MODES:
            raise ConfigurationError(f"short_credit는 {SHORT_CREDIT_MODES} 중 하나: '{short_credit}'")
        self.account = Account(capital, risk_percentage, risk_mode)
        self.fractional = fractional
        self.short_credit = short_credit
        self.position: Position | None = None
        self.transactions: list[Transaction] = []

    # ─── 상태 조회 ─────────────────────────────────────────────────────────

    @property
    def capital(self) -> float:
        return self.account.capital

    @property
    def risk_budget(self) -> float:
        return self.account.risk_budget

    @property
    def starting_capital(self) -> float:
        return self.account.starting_capital

    @property
    def is_flat(self) -> bool:
        return self.position is None

    @property
    def state(self) -> str:
        """"flat" / "long" / "short"."""
        return "flat" if self.position is None else self.position.side.value

    # ─── 수량 계산 ─────────────────────────────────────────────────────────

    def quantity_for(self, price: float, risk_per_unit: float) -> float:
        """자본 한도와 리스크 한도 중 작은 쪽으로 수량 결정."""
        by_capital = self.account.capital / price
        by_risk = self.account.risk_budget / risk_per_unit
        quantity = min(by_capital, by_risk)
        if not self.fractional:
            quantity = float(math.floor(quantity))
        return quantity

    # ─── 상태 전이 ─────────────────────────────────────────────────────────

    def enter(
        self,
        side: Side,
        price: float,
        stop_loss: float,
        timestamp: datetime,
    ) -> Transaction | None:
        """포지션 진입. 단위 리스크나 수량이 0 이하면 아무것도 하지 않고 None 반환."""
        if self.position is not None:
            raise IllegalStateTransition(
                f"{timestamp}: {self.position.side.value} 포지션 보유 중 재진입 시도"
            )
        risk_per_unit = abs(price - stop_loss)
        if risk_per_unit <= 0:
            logger.warning(f"{timestamp}: 단위 리스크 0 → 진입 거부 (price={price}, stop={stop_loss})")
            return None

        self.account.refresh_budget()
        quantity = self.quantity_for(price, risk_per_unit)
        if quantity <= 0:
            logger.warning(f"{timestamp}: 매수 가능 수량 없음 → 진입 거부 (capital={self.capital:,.2f})")
            return None

        self.account.capital -= quantity * price
        self.position = Position(
            side=side,
            entry_price=price,
            quantity=quantity,
            risk_per_unit=risk_per_unit,
            stop_loss=stop_loss,
            entry_time=timestamp,
        )
        tx = Transaction(
            timestamp=timestamp,
            price=price,
            quantity=quantity,
            risk=risk_per_unit * quantity,
            side=side,
            type=TransactionType.ENTRY,
        )
        self.transactions.append(tx)
        logger.debug(f"[{timestamp}] 진입: {side.value} {quantity:.4f} @ {price:,.4f} (stop={stop_loss:,.4f})")
        return tx

    def exit(
        self,
        price: float,
        timestamp: datetime,
        quantity: float | None = None,
    ) -> Transaction:
        """포지션 청산. quantity=None이면 전량.

        입금액은 _exit_value() (롱은 quantity * price, 숏은 short_credit 방식에 따름).
        """
        position = self.position
        if position is None:
            raise IllegalStateTransition(f"{timestamp}: 청산할 포지션 없음")
        if quantity is None:
            quantity = position.quantity
        if quantity <= 0:
            raise IllegalStateTransition(f"{timestamp}: 청산 수량 오류 ({quantity})")
        if quantity > position.quantity:
            raise IllegalStateTransition(
                f"{timestamp}: 보유 수량 초과 청산 ({quantity} > {position.quantity})"
            )

        self.account.capital += self._exit_value(position, quantity, price)

        if quantity == position.quantity:
            tx_type = TransactionType.EXIT
            self.position = None
        else:
            tx_type = TransactionType.PARTIAL_EXIT
            position.quantity -= quantity

        tx = Transaction(
            timestamp=timestamp,
            price=price,
            quantity=quantity,
            risk=0.0,
            side=position.side,
            type=tx_type,
        )
        self.transactions.append(tx)
        logger.debug(f"[{timestamp}] {tx_type.value}: {position.side.value} {quantity:.4f} @ {price:,.4f}")
        return tx

    def equity(self, price: float | None = None) -> float:
        """현금 + 보유 포지션을 price에 전량 청산했을 때의 입금액. price가 없으면 진입가로 평가."""
        position = self.position
        if position is None:
            return self.account.capital
        mark = position.entry_price if price is None else price
        return self.account.capital + self._exit_value(position, position.quantity, mark)

    def _exit_value(self, position: Position, quantity: float, price: float) -> float:
        if position.side is Side.SHORT and self.short_credit == "margin":
            return quantity * (2 * position.entry_price - price)
        return quantity * price

    def ensure_solvent(self, price: float | None = None) -> None:
        """평가 자본 equity(price)가 0 이하면 CapitalExhausted.

        현금 잔고만 보지 않는다. 자본 전부를 포지션에 넣어 현금이 0 이하여도
        포지션 평가액이 남아 있으면 소진이 아니다.
        """
        equity = self.equity(price)
        if equity <= 0:
            raise CapitalExhausted(equity)

    def reset(self) -> None:
        """초기 상태로 복원 (자본/예산/포지션/체결 로그)."""
        account = self.account
        self.account = Account(account.starting_capital, account.risk_percentage, account.risk_mode)
        self.position = None
        self.transactions = []
