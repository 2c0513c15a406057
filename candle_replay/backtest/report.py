"""
백테스트 리포트 모듈.

[ 역할 ]
    한 번의 리플레이 결과(정산된 거래, 체결 로그, 미청산 포지션, 성과 지표, 종료 사유)를 묶는 값 객체.
    저장/출력 형식은 이 패키지 밖의 책임이므로 dict / DataFrame 변환만 제공.

[ 종료 사유 terminated_reason ]
    "completed"         - 시리즈 끝까지 리플레이
    "capital_exhausted" - 자본 소진으로 중단 (부분 리포트)
    "illegal_state"     - 원장 상태 오류로 중단 (engine.report에만 남고 예외는 다시 발생)
    "invalid_signal"    - 모델 시그널 값 오류로 중단 (illegal_state와 같은 방식)

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine.execute()의 반환값
"""

from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from candle_replay.backtest.accountant import ClosedTrade
from candle_replay.backtest.metrics import BacktestMetrics
from candle_replay.data.ledger import Position, Transaction

COMPLETED = "completed"
CAPITAL_EXHAUSTED = "capital_exhausted"
ILLEGAL_STATE = "illegal_state"
INVALID_SIGNAL = "invalid_signal"


@dataclass
class BacktestReport:
    closed_trades: tuple[ClosedTrade, ...]
    metadata: dict[str, Any]
    transactions: tuple[Transaction, ...] = ()
    open_position: Position | None = None
    metrics: BacktestMetrics = field(default_factory=BacktestMetrics)
    terminated_reason: str = COMPLETED
    ending_cash: float = 0.0           # 원장 현금 잔고 (미청산 포지션 금액 제외)

    @property
    def completed(self) -> bool:
        return self.terminated_reason == COMPLETED

    def to_dict(self) -> dict[str, Any]:
        """JSON 직렬화 가능한 형태로 변환 (datetime은 ISO 문자열)."""
        position = None
        if self.open_position is not None:
            p = self.open_position
            position = {
                "side": p.side.value,
                "entry_price": p.entry_price,
                "quantity": p.quantity,
                "risk_per_unit": p.risk_per_unit,
                "stop_loss": p.stop_loss,
                "entry_time": p.entry_time.isoformat(),
            }
        return {
            "metadata": dict(self.metadata),
            "metrics": self.metrics.to_dict(),
            "terminated_reason": self.terminated_reason,
            "ending_cash": self.ending_cash,
            "open_position": position,
            "closed_trades": [_isoformat(t.to_dict()) for t in self.closed_trades],
            "transactions": [_isoformat(t.to_dict()) for t in self.transactions],
        }

    def to_frame(self) -> pd.DataFrame:
        """정산된 거래 → DataFrame (거래 하나당 한 행)."""
        if not self.closed_trades:
            return pd.DataFrame(columns=list(ClosedTrade.__dataclass_fields__))
        return pd.DataFrame([t.to_dict() for t in self.closed_trades])

    def summary(self) -> str:
        meta = self.metadata
        header = f"{meta.get('strategy', '')} | {meta.get('symbol', '')} ({meta.get('interval', '')})"
        return f"{header}\n{self.metrics.summary()}\n종료 사유: {self.terminated_reason}"


def _isoformat(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v.isoformat() if hasattr(v, "isoformat") else v for k, v in data.items()}
