"""
백테스트 예외 정의.

[ 역할 ]
    실행 전 검증 실패와 실행 중 상태 오류를 구분하는 예외 계층.

[ 예외 종류 / 처리 방식 ]
    ConfigurationError       - 전략/설정 파라미터 오류. 실행 전 즉시 실패.
    DataIntegrityError       - 타임스탬프 역순/누락, 비정상 OHLCV. 실행 전 즉시 실패.
    InsufficientHistoryError - 과거 데이터 부족. 엔진이 잡아서 해당 봉은 관망 처리.
    IllegalStateTransition   - 보유 수량 초과 청산, 포지션 없는 청산 등. 논리 오류로 즉시 중단.
    SignalError              - 리플레이 중 전략/모델이 해석할 수 없는 값을 냄. 부분 리포트 유지 후 중단.
    CapitalExhausted         - 자본 0 이하. 리플레이 종료, 부분 리포트는 유지.

[ 호출하는 곳 ]
    - data/ledger.py, data/quote_series.py, data/integrity.py
    - backtest/engine.py (InsufficientHistoryError, CapitalExhausted, SignalError 처리)
    - strategies/__init__.py, utils/config.py (ConfigurationError)
"""


class BacktestError(Exception):
    """모든 백테스트 예외의 부모."""


class ConfigurationError(BacktestError, ValueError):
    """잘못되었거나 누락된 설정 값."""


class DataIntegrityError(BacktestError, ValueError):
    """시계열 순서/간격 또는 OHLCV 값이 유효하지 않음."""


class InsufficientHistoryError(BacktestError):
    """요청한 구간만큼의 과거 봉이 아직 없음."""

    def __init__(self, required: int, available: int):
        super().__init__(f"과거 데이터 부족 (필요: {required}, 보유: {available})")
        self.required = required
        self.available = available


class IllegalStateTransition(BacktestError):
    """포지션 상태 머신이 허용하지 않는 전이."""


class SignalError(BacktestError):
    """리플레이 도중 전략이 받은 외부 시그널 값이 유효하지 않음."""


class CapitalExhausted(BacktestError):
    """자본이 0 이하로 떨어져 더 이상 매매할 수 없음."""

    def __init__(self, capital: float):
        super().__init__(f"자본 소진 (capital={capital:,.2f})")
        self.capital = capital
