import json
from datetime import datetime, timedelta

import pytest

from candle_replay.backtest.engine import BacktestEngine
from candle_replay.backtest.report import CAPITAL_EXHAUSTED, ILLEGAL_STATE, INVALID_SIGNAL
from candle_replay.core.data_provider import Candle, Side
from candle_replay.core.errors import DataIntegrityError, IllegalStateTransition, SignalError
from candle_replay.core.trading_strategy import EntrySignal, ExitSignal, TradingStrategy
from candle_replay.data.file_provider import DataFrameProvider
from candle_replay.data.ledger import TransactionType
from candle_replay.data.quote_series import QuoteSeries
from candle_replay.data.sample import candles_from_closes, generate_sample_candles, generate_sample_data
from candle_replay.strategies import create_strategy, list_strategies
from candle_replay.utils.config import Config

UP_THEN_DOWN = [100 + i for i in range(15)] + [113 - i for i in range(15)]


def _series(closes, warmup=0):
    return QuoteSeries(candles_from_closes(closes), warmup=warmup, symbol="TEST", interval="60")


def _ohlc_series(rows):
    """(시가, 고가, 저가, 종가) 또는 (시가, 고가, 저가, 종가, 거래량) 행으로 1시간 봉 시리즈 생성."""
    t0 = datetime(2024, 1, 1)
    candles = [
        Candle(t0 + timedelta(hours=i), *row[:4], volume=row[4] if len(row) > 4 else 1000.0)
        for i, row in enumerate(rows)
    ]
    return QuoteSeries(candles, symbol="TEST", interval="60")


def _trail(report):
    return [(tx.type, tx.price) for tx in report.transactions]


class _ShortAndHold(TradingStrategy):
    """첫 봉에 숏 진입 후 청산하지 않는 테스트용 전략."""

    def __init__(self, params=None):
        super().__init__(name="short_and_hold", params=params)

    def indicators(self):
        return []

    def evaluate_entry(self, series):
        today = series.current()
        return EntrySignal(Side.SHORT, today.close, today.close + 1)

    def evaluate_exit(self, series, position):
        return None


class _OversizedExit(TradingStrategy):
    """보유 수량보다 많이 청산하려는 테스트용 전략."""

    def __init__(self, params=None):
        super().__init__(name="oversized_exit", params=params)

    def indicators(self):
        return []

    def evaluate_entry(self, series):
        today = series.current()
        return EntrySignal(Side.LONG, today.close, today.close - 10)

    def evaluate_exit(self, series, position):
        return ExitSignal(series.current().close, quantity=position.quantity * 2)


def test_ma_cross_single_round_trip():
    strategy = create_strategy("ma_cross", {"ma_period": 5, "capital": 100_000, "risk_percentage": 5})
    report = BacktestEngine(strategy, _series(UP_THEN_DOWN)).execute()

    assert report.completed
    trade, = report.closed_trades
    assert trade.side is Side.LONG
    assert trade.entry_price == 101       # 첫 봉은 과거 봉 부족으로 관망
    assert trade.exit_price == pytest.approx(110)
    assert trade.quantity == pytest.approx(100_000 / 101)

    fee = 0.001 * (trade.entry_price + trade.exit_price) * trade.quantity
    expected = 100_000 + (trade.exit_price - trade.entry_price) * trade.quantity - fee
    assert trade.fee == pytest.approx(fee)
    assert report.metrics.final_capital == pytest.approx(expected)
    assert report.ending_cash == pytest.approx(100_000 + (trade.exit_price - trade.entry_price) * trade.quantity)
    assert report.open_position is None
    assert report.metadata["starting_capital"] == 100_000
    assert report.metadata["risk_percentage"] == 5


def test_supertrend_never_enters_on_flat_series():
    strategy = create_strategy("supertrend")
    engine = BacktestEngine(strategy, _series([100.0] * 80))
    report = engine.execute()

    assert report.completed
    assert report.transactions == ()
    assert report.closed_trades == ()
    assert engine.ledger.capital == strategy.capital


def test_capital_exhaustion_returns_partial_report():
    closes = [100, 120, 160, 250, 260, 270]
    engine = BacktestEngine(_ShortAndHold(), _series(closes), short_credit="margin")
    report = engine.execute()

    assert report.terminated_reason == CAPITAL_EXHAUSTED
    assert not report.completed
    assert len(report.transactions) == 1
    assert report.open_position.side is Side.SHORT
    assert report.closed_trades == ()


def test_illegal_transition_keeps_partial_report():
    engine = BacktestEngine(_OversizedExit(), _series([100, 101, 102]))
    with pytest.raises(IllegalStateTransition):
        engine.execute()
    assert engine.report.terminated_reason == ILLEGAL_STATE
    assert len(engine.report.transactions) == 1
    assert engine.report.open_position is not None


def test_warmup_candles_are_not_traded():
    strategy = create_strategy("ma_cross", {"ma_period": 5})
    report = BacktestEngine(strategy, _series(UP_THEN_DOWN, warmup=20)).execute()
    assert report.transactions == ()
    assert report.metadata["warmup"] == 20


def test_engine_rejects_unknown_interval():
    series = QuoteSeries(candles_from_closes([1, 2, 3]), interval="hourly")
    with pytest.raises(DataIntegrityError):
        BacktestEngine(create_strategy("ma_cross"), series)


def test_from_config_and_report_serialization():
    provider = DataFrameProvider()
    provider.load_data("BTCUSDT", "60", generate_sample_data(periods=400, seed=5))
    config = Config()
    config.strategy.params = {"ma_period": 10}

    report = BacktestEngine.from_config(config, provider).execute()
    assert report.metadata["symbol"] == "BTCUSDT"
    assert report.metadata["strategy"] == "ma_cross"
    assert report.metadata["fee_rate"] == config.backtest.fee_rate
    assert report.metadata["short_credit"] == "notional"

    data = json.loads(json.dumps(report.to_dict()))
    assert len(data["closed_trades"]) == len(report.closed_trades)
    frame = report.to_frame()
    assert "pnl_after_fee" in frame.columns
    assert len(frame) == len(report.closed_trades)
    assert "종료 사유" in report.summary()


def test_repeated_execution_is_deterministic():
    strategy = create_strategy("moving_average")
    engine = BacktestEngine(strategy, QuoteSeries(generate_sample_candles(500, seed=9), interval="60"))
    first = engine.execute()
    second = engine.execute()
    assert [t.to_dict() for t in first.transactions] == [t.to_dict() for t in second.transactions]


@pytest.mark.parametrize("name", [
    "ma_cross", "moving_average", "supertrend", "forty_twenty", "compression_breakout", "candle_pattern",
])
def test_registered_strategies_replay_cleanly(name):
    candles = generate_sample_candles(600, seed=31, volatility=0.03)
    strategy = create_strategy(name)
    report = BacktestEngine(strategy, QuoteSeries(candles, symbol="S", interval="60")).execute()

    assert report.terminated_reason in ("completed", "capital_exhausted")
    entered = sum(tx.quantity for tx in report.transactions if tx.type is TransactionType.ENTRY)
    exited = sum(tx.quantity for tx in report.transactions if tx.type is not TransactionType.ENTRY)
    still_open = report.open_position.quantity if report.open_position else 0.0
    assert exited + still_open == pytest.approx(entered)
    assert len(report.closed_trades) == sum(1 for tx in report.transactions if tx.type is TransactionType.EXIT)


# ─── 전략별 시나리오 ─────────────────────────────────────────────────────────

def test_moving_average_channel_breakout_and_bearish_exit():
    series = _ohlc_series([
        (100.0, 101.0, 99.0, 100.5),
        (100.5, 103.0, 100.0, 102.8),   # 종가 > ma2_high(102.0), 양봉 2개, SuperTrend BUY
        (102.8, 106.0, 102.5, 105.8),   # 시가 진입, 손절가 = 직전 ma2_low(99.5)
        (103.0, 103.5, 101.0, 101.5),   # 채널 상단(103.75) 아래 음봉 → 종가 청산
    ])
    strategy = create_strategy("moving_average", {"channel_period": 2, "atr_period": 2})
    report = BacktestEngine(strategy, series).execute()

    assert _trail(report) == [(TransactionType.ENTRY, 102.8), (TransactionType.EXIT, 101.5)]
    trade, = report.closed_trades
    assert trade.side is Side.LONG
    assert trade.risk == pytest.approx((102.8 - 99.5) * trade.quantity)
    assert trade.quantity == pytest.approx(100_000 / 102.8)


def test_forty_twenty_breakout_and_channel_exit():
    closes = [100, 100, 100, 105, 104, 103, 99]
    series = QuoteSeries(candles_from_closes(closes, spread=0.01), symbol="TEST", interval="60")
    strategy = create_strategy("forty_twenty", {"buy_window": 3, "sell_window": 2, "trend_period": 3})
    report = BacktestEngine(strategy, series).execute()

    (entry_type, entry_price), (exit_type, exit_price) = _trail(report)
    assert entry_type is TransactionType.ENTRY
    assert entry_price == pytest.approx(101.0)              # 직전 3봉 최고가에서 돌파 매수
    assert exit_type is TransactionType.EXIT
    assert exit_price == pytest.approx(103 * 0.99)          # 직전 2봉 최저가 이탈
    assert report.transactions[0].timestamp == series.candles[3].timestamp
    assert report.transactions[1].timestamp == series.candles[6].timestamp
    assert report.transactions[0].risk == pytest.approx((101.0 - 99.0) * report.transactions[0].quantity)


def test_compression_breakout_partial_exit_folds_into_one_trade():
    series = _ohlc_series([
        (100.0, 101.0, 99.0, 100.5, 1000.0),
        (100.0, 110.0, 95.0, 108.0, 1000.0),    # mother
        (106.0, 107.0, 100.0, 102.0, 1500.0),   # child: 반대 몸통, 거래량 +50%
        (104.0, 113.0, 103.0, 112.0, 1200.0),   # 구간 상단 돌파 → 112 매수, 손절 95
        (112.0, 150.0, 111.0, 148.0, 1200.0),   # 고가 > 112 + 2R(146) → 80% 부분 청산
        (148.0, 149.0, 114.0, 115.0, 1200.0),   # ma3_close(118.2) > 종가 > 진입가 → 잔량 청산
    ])
    strategy = create_strategy("compression_breakout", {"exit_ma_period": 3})
    report = BacktestEngine(strategy, series, fee_rate=0.0).execute()

    assert _trail(report) == [
        (TransactionType.ENTRY, 112.0),
        (TransactionType.PARTIAL_EXIT, 146.0),
        (TransactionType.EXIT, 115.0),
    ]
    entry, partial, final = report.transactions
    assert entry.quantity == pytest.approx(5_000 / 17)
    assert partial.quantity == pytest.approx(entry.quantity * 0.8)
    assert partial.quantity + final.quantity == pytest.approx(entry.quantity)

    trade, = report.closed_trades
    assert trade.legs == 2
    assert trade.quantity == pytest.approx(entry.quantity)
    assert trade.exit_price == pytest.approx(0.8 * 146 + 0.2 * 115)
    assert trade.pnl == pytest.approx(entry.quantity * (0.8 * 34 + 0.2 * 3))
    assert trade.duration == 2


def test_candle_pattern_engulfing_round_trip():
    series = _ohlc_series([
        (100.0, 101.0, 97.0, 98.0),
        (97.5, 102.5, 97.0, 102.0),     # 상승 장악형 → 102 매수, 손절 99.96
        (102.0, 104.0, 101.5, 103.5),
        (104.0, 104.5, 100.5, 101.0),   # 하락 장악형 → 종가 청산
    ])
    report = BacktestEngine(create_strategy("candle_pattern"), series).execute()

    assert _trail(report) == [(TransactionType.ENTRY, 102.0), (TransactionType.EXIT, 101.0)]
    assert report.transactions[0].risk == pytest.approx(102.0 * 0.02 * report.transactions[0].quantity)
    trade, = report.closed_trades
    assert trade.pnl == pytest.approx(-1.0 * trade.quantity)


def test_signal_provider_strategy():
    candles = generate_sample_candles(200, seed=41)
    model = lambda candle: 1.0 if candle.close > candle.open else 0.0  # noqa: E731
    strategy = create_strategy("signal_provider", {"model": model})
    report = BacktestEngine(strategy, QuoteSeries(candles, interval="60")).execute()
    assert len(report.transactions) > 0
    assert {t.side for t in report.closed_trades} <= {Side.LONG, Side.SHORT}


def test_all_strategies_registered():
    assert set(list_strategies()) >= {
        "ma_cross", "moving_average", "supertrend", "forty_twenty",
        "compression_breakout", "candle_pattern", "signal_provider", "reinforcement_learning",
    }


def test_invalid_model_output_keeps_partial_report():
    candles = candles_from_closes([100, 102, 104, 103, 105, 107])
    outputs = iter([1.0, 1.0, 1.0, 1.0, 2.0, 1.0])
    strategy = create_strategy("signal_provider", {"model": lambda candle: next(outputs)})
    engine = BacktestEngine(strategy, QuoteSeries(candles, interval="60"))

    with pytest.raises(SignalError):
        engine.execute()
    assert engine.report.terminated_reason == INVALID_SIGNAL
    assert [tx.type for tx in engine.report.transactions] == [TransactionType.ENTRY]
    assert engine.report.open_position.side is Side.LONG
