"""
매매 전략 추상 클래스 정의.

[ 역할 ]
    매매 로직의 인터페이스를 정의.
    QuoteSeries(현재 봉 + 과거 봉)와 보유 포지션을 받아 진입/청산 시그널만 반환.
    자본/수량 계산은 data/ledger.py::PositionLedger만 담당하므로 전략은 원장을 직접 건드리지 않는다.

[ 구현체 ]
    - strategies/*.py (@register 데코레이터로 등록)

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine._step()에서 봉마다
        observe() → (보유 중) evaluate_exit() → (미보유) evaluate_entry() → on_step_end()

[ 데이터 흐름 ]
    QuoteSeries + Position → evaluate_exit() → ExitSignal → ledger.exit()
    QuoteSeries            → evaluate_entry() → EntrySignal → ledger.enter()
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from candle_replay.core.data_provider import Side
from candle_replay.core.errors import ConfigurationError

if TYPE_CHECKING:
    from candle_replay.data.ledger import Position
    from candle_replay.data.quote_series import QuoteSeries
    from candle_replay.indicators.base import Indicator


@dataclass(frozen=True)
class EntrySignal:
    """evaluate_entry()의 반환값. 엔진이 ledger.enter()로 변환."""
    side: Side
    price: float
    stop_loss: float
    reason: str = ""


@dataclass(frozen=True)
class ExitSignal:
    """evaluate_exit()의 반환값. quantity=None이면 전량 청산."""
    price: float
    quantity: float | None = None
    reason: str = ""


class TradingStrategy(ABC):
    """매매 전략 추상 클래스.

    새 전략을 만들려면 이 클래스를 상속받아 아래를 구현하면 된다:
    - DEFAULT_PARAMS: 전략 고유 파라미터 기본값
    - indicators(): 필요한 지표 목록
    - evaluate_entry(): 진입 조건 판단
    - evaluate_exit(): 청산 조건 판단

    파라미터는 BASE_PARAMS → DEFAULT_PARAMS → 전달된 params 순으로 덮어쓴다.
    정의되지 않은 키는 ConfigurationError.
    """

    BASE_PARAMS: dict[str, Any] = {
        "capital": 100_000,
        "risk_percentage": 5.0,
    }
    DEFAULT_PARAMS: dict[str, Any] = {}

    def __init__(self, name: str, params: dict[str, Any] | None = None):
        allowed = {**self.BASE_PARAMS, **self.DEFAULT_PARAMS}
        unknown = set(params or {}) - set(allowed)
        if unknown:
            raise ConfigurationError(f"{name}: 알 수 없는 파라미터 {sorted(unknown)}")
        self.name = name
        self.params = {**allowed, **(params or {})}
        self._check_base_params()
        self.validate()

    def _check_base_params(self) -> None:
        try:
            capital = float(self.params["capital"])
            risk = float(self.params["risk_percentage"])
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"{self.name}: 숫자 파라미터 오류 ({e})") from e
        if capital <= 0:
            raise ConfigurationError(f"{self.name}: capital은 0보다 커야 합니다 ({capital})")
        if not 0 < risk <= 100:
            raise ConfigurationError(f"{self.name}: risk_percentage 범위 오류 ({risk})")

    def validate(self) -> None:
        """전략별 파라미터 검사. 필요하면 오버라이드하여 ConfigurationError."""

    @property
    def capital(self) -> float:
        return float(self.params["capital"])

    @property
    def risk_percentage(self) -> float:
        return float(self.params["risk_percentage"])

    @abstractmethod
    def indicators(self) -> list["Indicator"]:
        """리플레이 전에 봉에 부착할 지표 목록 (등록 순서대로 실행)."""
        ...

    @abstractmethod
    def evaluate_entry(self, series: "QuoteSeries") -> EntrySignal | None:
        """미보유 상태에서 진입 조건 판단. 조건 미충족이면 None."""
        ...

    @abstractmethod
    def evaluate_exit(self, series: "QuoteSeries", position: "Position") -> ExitSignal | None:
        """보유 중 청산 조건 판단. 조건 미충족이면 None."""
        ...

    # ─── 선택 훅 (RL 전략 등 상태를 가진 전략용) ───────────────────────────

    def observe(self, series: "QuoteSeries", position: "Position | None") -> None:
        """봉마다 진입/청산 판단 전에 호출."""

    def on_step_end(self, series: "QuoteSeries", position: "Position | None") -> None:
        """봉마다 체결 처리 후 호출."""

    def reset(self) -> None:
        """새 리플레이 시작 전 호출. 전략 내부 상태 초기화."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
