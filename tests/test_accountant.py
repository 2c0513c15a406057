from datetime import datetime, timedelta

import numpy as np
import pytest

from candle_replay.backtest.accountant import (
    ClosedTrade,
    TradeAccountant,
    apply_drawdown,
    pair_transactions,
)
from candle_replay.backtest.metrics import calculate_metrics
from candle_replay.core.data_provider import Side
from candle_replay.core.errors import IllegalStateTransition
from candle_replay.data.ledger import PositionLedger, Transaction, TransactionType

T0 = datetime(2024, 1, 1)


def _at(hours: float) -> datetime:
    return T0 + timedelta(hours=hours)


def _tx(hours, price, quantity, side=Side.LONG, type=TransactionType.ENTRY, risk=0.0):
    return Transaction(timestamp=_at(hours), price=price, quantity=quantity, risk=risk, side=side, type=type)


def _trade(pnl_after_fee, side=Side.LONG, reward=1.0):
    return ClosedTrade(
        side=side, entry_time=T0, exit_time=_at(1), entry_price=100, exit_price=100,
        quantity=1, duration=1, fee=0.0, pnl=pnl_after_fee, pnl_after_fee=pnl_after_fee,
        risk=1.0, reward=reward,
    )


# ─── 페어링 ────────────────────────────────────────────────────────────────

def test_pairing_long_trade():
    result = pair_transactions([
        _tx(0, 100, 10, risk=50),
        _tx(3, 110, 10, type=TransactionType.EXIT),
    ], interval="60")

    trade, = result.trades
    assert result.open_entry is None
    assert trade.duration == 3
    assert trade.pnl == pytest.approx(100)
    assert trade.fee == pytest.approx(0.001 * (1_000 + 1_100))
    assert trade.pnl_after_fee == pytest.approx(100 - 2.1)
    assert trade.reward == pytest.approx(2)
    assert trade.is_win


def test_pairing_partial_exits_fold_into_one_trade():
    result = pair_transactions([
        _tx(0, 100, 10, risk=50),
        _tx(1, 110, 4, type=TransactionType.PARTIAL_EXIT),
        _tx(2, 120, 6, type=TransactionType.EXIT),
    ], interval="60", fee_rate=0.0)

    trade, = result.trades
    assert trade.legs == 2
    assert trade.quantity == pytest.approx(10)
    assert trade.exit_price == pytest.approx(116)
    assert trade.pnl == pytest.approx(160)
    assert trade.exit_time == _at(2)


def test_pairing_short_trade_and_duration_rounding():
    result = pair_transactions([
        _tx(0, 100, 10, side=Side.SHORT, risk=100),
        _tx(1.5, 90, 10, side=Side.SHORT, type=TransactionType.EXIT),
    ], interval="60")
    trade, = result.trades
    assert trade.side is Side.SHORT
    assert trade.pnl == pytest.approx(100)
    assert trade.reward == pytest.approx(1)
    assert trade.duration == 2


def test_pairing_reports_open_entry():
    entry = _tx(2, 100, 10, risk=10)
    result = pair_transactions([
        _tx(0, 100, 5, risk=5),
        _tx(1, 101, 5, type=TransactionType.EXIT),
        entry,
        _tx(3, 102, 4, type=TransactionType.PARTIAL_EXIT),
    ], interval="60")
    assert len(result.trades) == 1
    assert result.open_entry == entry
    assert result.open_quantity == pytest.approx(6)


@pytest.mark.parametrize("transactions", [
    [_tx(0, 100, 10, type=TransactionType.EXIT)],
    [_tx(0, 100, 10), _tx(1, 100, 10)],
    [_tx(0, 100, 10), _tx(1, 100, 10, side=Side.SHORT, type=TransactionType.EXIT)],
    [_tx(0, 100, 10), _tx(1, 100, 4, type=TransactionType.EXIT)],
])
def test_pairing_rejects_inconsistent_logs(transactions):
    with pytest.raises(IllegalStateTransition):
        pair_transactions(transactions, interval="60")


def test_pairing_ledger_log():
    ledger = PositionLedger(capital=10_000, risk_percentage=10, short_credit="margin")
    ledger.enter(Side.LONG, 50, 45, _at(0))
    ledger.exit(55, _at(2), quantity=50)
    ledger.exit(60, _at(4))
    ledger.enter(Side.SHORT, 60, 62, _at(5))
    ledger.exit(58, _at(6))

    result = TradeAccountant("60", fee_rate=0).process(ledger.transactions, ledger.starting_capital)
    assert [t.side for t in result.trades] == [Side.LONG, Side.SHORT]
    assert sum(t.pnl for t in result.trades) == pytest.approx(ledger.capital - 10_000)


# ─── 낙폭 ───────────────────────────────────────────────────────────────────

def test_drawdown_tracks_peak_and_duration():
    trades = apply_drawdown([_trade(100), _trade(-50), _trade(-30), _trade(200)], starting_capital=1_000)

    assert [t.cumulative_pnl for t in trades] == [100, 50, 20, 220]
    assert [t.drawdown for t in trades] == [0, 50, 80, 0]
    assert [t.drawdown_duration for t in trades] == [0, 1, 2, 0]
    assert trades[1].drawdown_pct == pytest.approx(50 / 1_100 * 100)
    assert trades[2].drawdown_pct == pytest.approx(80 / 1_100 * 100)
    assert trades[3].peak_equity == pytest.approx(1_220)
    assert trades[3].cumulative_reward == pytest.approx(4)


def test_drawdown_is_idempotent():
    raw = [_trade(p) for p in (10, -5, -7, 3, 20, -1)]
    once = apply_drawdown(raw, starting_capital=500)
    twice = apply_drawdown(once, starting_capital=500)
    assert once == twice


def test_drawdown_starts_from_zero_peak():
    trades = apply_drawdown([_trade(-10), _trade(-10)], starting_capital=100)
    assert [t.drawdown for t in trades] == [10, 20]
    assert trades[1].drawdown_pct == pytest.approx(20)


# ─── 성과 지표 ──────────────────────────────────────────────────────────────

def test_metrics_summary_statistics():
    profits = [100, -50, -30, 200]
    sides = [Side.LONG, Side.SHORT, Side.LONG, Side.SHORT]
    trades = apply_drawdown([_trade(p, side=s) for p, s in zip(profits, sides)], starting_capital=1_000)
    m = calculate_metrics(trades, starting_capital=1_000)

    assert m.total_trades == 4
    assert m.final_capital == pytest.approx(1_220)
    assert m.total_return == pytest.approx(22)
    assert m.win_rate == pytest.approx(50)
    assert m.profit_factor == pytest.approx(300 / 80)
    assert m.avg_profit == pytest.approx(150)
    assert m.avg_loss == pytest.approx(-40)
    assert m.max_drawdown == pytest.approx(80)
    assert m.max_drawdown_duration == 2
    assert m.max_consecutive_wins == 1
    assert m.max_consecutive_losses == 2
    assert (m.long_trades, m.short_trades) == (2, 2)
    assert m.long_win_rate == pytest.approx(50)
    assert m.sharpe_ratio == pytest.approx(np.mean(profits) / np.std(profits))
    assert "백테스트 성과 리포트" in m.summary()


def test_metrics_without_trades():
    m = calculate_metrics([], starting_capital=1_000)
    assert m.total_trades == 0
    assert m.final_capital == 1_000
    assert m.to_dict()["win_rate"] == 0.0
