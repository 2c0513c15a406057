"""
백테스팅 엔진 모듈.

[ 역할 ]
    과거 봉 데이터에 전략을 적용하여 가상 매매를 시뮬레이션하고 성과를 측정.
    시스템의 핵심 실행 루프를 담당.

[ 실행 흐름 ]
    execute() 호출 시:
        1. strategy.indicators()로 IndicatorPipeline 구성 → 전체 봉에 지표 부착
        2. 전략 전용 QuoteSeries 커서 + PositionLedger 생성
        3. 봉마다 _step():
           → strategy.observe()
           → 보유 중이면 evaluate_exit() → ledger.exit()
           → 미보유면 evaluate_entry() → ledger.enter()
           → strategy.on_step_end()
        4. 종료 후 TradeAccountant로 페어링 + 낙폭 → calculate_metrics()

[ 예외 처리 ]
    InsufficientHistoryError - 해당 봉 관망 (리플레이 계속)
    CapitalExhausted         - 리플레이 중단, terminated_reason="capital_exhausted" 리포트 반환
    IllegalStateTransition   - 부분 리포트를 self.report에 남기고 예외 재발생
    SignalError              - 같은 방식, terminated_reason="invalid_signal"

[ 의존성 ]
    - core/trading_strategy.py::TradingStrategy (전략 인터페이스)
    - data/ledger.py::PositionLedger (자본/포지션/체결 로그)
    - backtest/accountant.py::TradeAccountant, backtest/metrics.py::calculate_metrics()

[ 호출하는 곳 ]
    - 노트북/스크립트에서 BacktestEngine.from_config(config, provider).execute()
    - learning/trainer.py::RLTrainer (에피소드마다 execute())
"""

import logging
from dataclasses import replace

from candle_replay.backtest.accountant import TradeAccountant
from candle_replay.backtest.metrics import calculate_metrics
from candle_replay.backtest.report import (
    CAPITAL_EXHAUSTED,
    COMPLETED,
    ILLEGAL_STATE,
    INVALID_SIGNAL,
    BacktestReport,
)
from candle_replay.core.data_provider import DataProvider
from candle_replay.core.errors import (
    CapitalExhausted,
    IllegalStateTransition,
    InsufficientHistoryError,
    SignalError,
)
from candle_replay.core.trading_strategy import TradingStrategy
from candle_replay.data.file_provider import load_series
from candle_replay.data.integrity import parse_interval
from candle_replay.data.ledger import PositionLedger
from candle_replay.data.quote_series import QuoteSeries
from candle_replay.indicators.pipeline import IndicatorPipeline
from candle_replay.strategies import create_strategy
from candle_replay.utils.config import Config

logger = logging.getLogger("candle_replay.backtest")


class BacktestEngine:
    """백테스팅 엔진. execute()로 리플레이 실행.

    사용 예:
        engine = BacktestEngine(create_strategy("ma_cross"), series)
        report = engine.execute()
    """

    def __init__(
        self,
        strategy: TradingStrategy,
        series: QuoteSeries,
        fee_rate: float = 0.001,
        risk_mode: str = "fixed",
        fractional: bool = True,
        short_credit: str = "notional",
    ):
        self.strategy = strategy
        self.series = series
        self.fee_rate = fee_rate
        self.risk_mode = risk_mode
        self.fractional = fractional
        self.short_credit = short_credit
        parse_interval(series.interval)  # 봉 간격 표기 오류는 실행 전에 실패

        # 실행 후 채워지는 결과
        self.ledger: PositionLedger | None = None
        self.report: BacktestReport | None = None

    @classmethod
    def from_config(
        cls,
        config: Config,
        provider: DataProvider,
        strategy: TradingStrategy | None = None,
    ) -> "BacktestEngine":
        """설정 + 데이터 제공자로 엔진 생성. 데이터 무결성은 여기서 검사된다."""
        config.validate()
        bt = config.backtest
        if strategy is None:
            strategy = create_strategy(config.strategy.name, config.strategy_params())
        series = load_series(provider, bt.symbol, bt.interval, warmup=bt.warmup, allow_gaps=bt.allow_gaps)
        return cls(
            strategy,
            series,
            fee_rate=bt.fee_rate,
            risk_mode=bt.risk_mode,
            fractional=bt.fractional,
            short_credit=bt.short_credit,
        )

    def execute(self) -> BacktestReport:
        """리플레이 실행 → BacktestReport."""
        strategy = self.strategy
        strategy.reset()

        candles = IndicatorPipeline(strategy.indicators()).run(self.series.candles)
        series = QuoteSeries(
            candles,
            warmup=self.series.warmup,
            symbol=self.series.symbol,
            interval=self.series.interval,
        )
        self.ledger = PositionLedger(
            capital=strategy.capital,
            risk_percentage=strategy.risk_percentage,
            risk_mode=self.risk_mode,
            fractional=self.fractional,
            short_credit=self.short_credit,
        )
        self.report = None

        logger.info(
            f"백테스트 시작: {strategy.name} | {series.symbol} ({series.interval}) "
            f"{len(series)}개 봉, warmup={series.warmup}, 자본={strategy.capital:,.0f}"
        )

        reason = COMPLETED
        try:
            while series.has_next():
                candle = series.advance()
                self.ledger.ensure_solvent(candle.close)
                self._step(series)
        except CapitalExhausted as e:
            logger.error(f"{series.current().timestamp}: {e} → 리플레이 중단")
            reason = CAPITAL_EXHAUSTED
        except IllegalStateTransition:
            self.report = self._build_report(ILLEGAL_STATE)
            raise
        except SignalError:
            self.report = self._build_report(INVALID_SIGNAL)
            raise

        self.report = self._build_report(reason)
        if self.ledger.position is not None:
            p = self.ledger.position
            logger.warning(f"미청산 포지션: {p.side.value} {p.quantity:.4f} @ {p.entry_price:,.4f} ({p.entry_time})")
        logger.info(
            f"백테스트 완료: 거래 {self.report.metrics.total_trades}회, "
            f"총 수익률 {self.report.metrics.total_return:.2f}%"
        )
        return self.report

    def _step(self, series: QuoteSeries) -> None:
        """봉 하나 처리. 보유 중인 봉에서는 청산만, 미보유 봉에서는 진입만 판단."""
        ledger = self.ledger
        strategy = self.strategy
        candle = series.current()
        try:
            strategy.observe(series, ledger.position)
            if ledger.position is not None:
                signal = strategy.evaluate_exit(series, ledger.position)
                if signal is not None:
                    logger.debug(f"[{candle.timestamp}] 청산 시그널: {signal.reason}")
                    ledger.exit(signal.price, candle.timestamp, signal.quantity)
            else:
                entry = strategy.evaluate_entry(series)
                if entry is not None:
                    logger.debug(f"[{candle.timestamp}] 진입 시그널: {entry.side.value} {entry.reason}")
                    ledger.enter(entry.side, entry.price, entry.stop_loss, candle.timestamp)
            strategy.on_step_end(series, ledger.position)
        except InsufficientHistoryError as e:
            logger.debug(f"[{candle.timestamp}] 관망: {e}")

    def _build_report(self, reason: str) -> BacktestReport:
        ledger = self.ledger
        accountant = TradeAccountant(self.series.interval, self.fee_rate)
        try:
            paired = accountant.process(ledger.transactions, ledger.starting_capital)
            trades = paired.trades
        except IllegalStateTransition as e:
            # 상태 오류로 중단된 경우 로그가 불완전할 수 있음
            logger.error(f"정산 실패: {e}")
            trades = ()

        return BacktestReport(
            closed_trades=trades,
            metadata={
                "symbol": self.series.symbol,
                "interval": self.series.interval,
                "strategy": self.strategy.name,
                "starting_capital": ledger.starting_capital,
                "risk_percentage": self.strategy.risk_percentage,
                "fee_rate": self.fee_rate,
                "risk_mode": self.risk_mode,
                "short_credit": self.short_credit,
                "candles": len(self.series),
                "warmup": self.series.warmup,
            },
            transactions=tuple(ledger.transactions),
            open_position=replace(ledger.position) if ledger.position is not None else None,
            metrics=calculate_metrics(trades, ledger.starting_capital),
            terminated_reason=reason,
            ending_cash=ledger.capital,
        )
