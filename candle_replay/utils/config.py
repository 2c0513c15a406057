"""
설정 관리 모듈.

[ 역할 ]
    config.yaml (또는 .json) 파일을 파싱하여 Config 객체로 변환.
    전략 파라미터, 백테스트 파라미터, 파일 경로, RL 학습, 로깅 설정 등을 통합 관리.

[ 설정 파일 구조 (config.yaml) ]
    strategy:         → StrategyConfig (전략 이름 + 파라미터)
    backtest:         → BacktestConfig (심볼/봉 간격/자본/리스크/수수료)
    paths:            → PathsConfig (데이터/결과/모델 디렉토리)
    training:         → TrainingConfig (RL 에피소드 수, 시드)
    log_level:        → "INFO" / "DEBUG"
    log_dir:          → 로그 디렉토리 경로

[ 호출하는 곳 ]
    - Config.from_yaml()로 로드 후 validate()
    - 전략 생성 시 config.strategy_params()를 params로 전달
    - data/file_provider.py::CsvDataProvider에 config.paths 전달
    - backtest/engine.py::BacktestEngine.from_config()
"""

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml

from candle_replay.core.errors import ConfigurationError
from candle_replay.data.ledger import SHORT_CREDIT_MODES

RISK_MODES = ("fixed", "equity")


@dataclass
class StrategyConfig:
    """전략 설정. config.yaml의 strategy 섹션에 대응.

    전략별 파라미터는 params dict에 자유롭게 넣는다.
    각 전략 클래스의 DEFAULT_PARAMS가 기본값 역할을 하므로,
    여기서는 오버라이드할 값만 지정하면 된다.
    """
    name: str = "ma_cross"
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class BacktestConfig:
    """백테스트 설정. config.yaml의 backtest 섹션에 대응."""
    symbol: str = "BTCUSDT"
    interval: str = "60"
    capital: float = 100_000
    risk_percentage: float = 5.0     # 1회 진입 리스크 한도 (초기 자본 대비 %)
    fee_rate: float = 0.001          # 진입/청산 각각 체결금액의 0.1%
    warmup: int = 20                 # 전략 평가 전 건너뛰는 봉 수
    risk_mode: str = "fixed"         # "fixed": 초기 자본 기준 고정, "equity": 진입 시 현재 자본 기준
    fractional: bool = True          # False면 수량을 정수로 내림
    short_credit: str = "notional"   # 숏 청산 입금: "notional" = 수량 * 청산가, "margin" = 증거금 + 숏 손익
    allow_gaps: bool = False         # True면 봉 간격 누락을 경고만 남김


@dataclass
class PathsConfig:
    """파일 위치. 전역 싱글톤 대신 필요한 컴포넌트에 직접 전달한다."""
    data_dir: str = ".data/market"
    results_dir: str = ".data/results"
    model_dir: str = ".data/model"


@dataclass
class TrainingConfig:
    """RL 학습 설정. config.yaml의 training 섹션에 대응."""
    episodes: int = 10
    seed: int | None = None


@dataclass
class Config:
    """전체 설정. from_yaml() 또는 from_json()으로 파일에서 로드."""
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    backtest: BacktestConfig = field(default_factory=BacktestConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    training: TrainingConfig = field(default_factory=TrainingConfig)
    log_level: str = "INFO"
    log_dir: str = "logs"

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """YAML 파일에서 설정 로드."""
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return cls._from_dict(data)

    @classmethod
    def from_json(cls, path: str | Path) -> "Config":
        """JSON 파일에서 설정 로드."""
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "Config":
        """딕셔너리에서 Config 생성. 알 수 없는 키는 ConfigurationError."""
        strategy_data = dict(data.get("strategy", {}) or {})

        # strategy 섹션 파싱: name은 직접 필드, params가 없으면 나머지를 모두 params로
        strategy_name = strategy_data.pop("name", "ma_cross")
        if "params" in strategy_data:
            strategy_params = dict(strategy_data["params"] or {})
        else:
            strategy_params = strategy_data
        strategy = StrategyConfig(name=strategy_name, params=strategy_params)

        config = cls(
            strategy=strategy,
            backtest=_section(BacktestConfig, data.get("backtest")),
            paths=_section(PathsConfig, data.get("paths")),
            training=_section(TrainingConfig, data.get("training")),
            log_level=data.get("log_level", "INFO"),
            log_dir=data.get("log_dir", "logs"),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """값 범위 검사. 실행 전에 실패시키기 위해 로드 직후 호출된다."""
        bt = self.backtest
        if bt.capital <= 0:
            raise ConfigurationError(f"capital은 0보다 커야 합니다: {bt.capital}")
        if not 0 < bt.risk_percentage <= 100:
            raise ConfigurationError(f"risk_percentage 범위 오류 (0, 100]: {bt.risk_percentage}")
        if not 0 <= bt.fee_rate < 1:
            raise ConfigurationError(f"fee_rate 범위 오류 [0, 1): {bt.fee_rate}")
        if bt.warmup < 0:
            raise ConfigurationError(f"warmup은 0 이상이어야 합니다: {bt.warmup}")
        if bt.risk_mode not in RISK_MODES:
            raise ConfigurationError(f"risk_mode는 {RISK_MODES} 중 하나: '{bt.risk_mode}'")
        if bt.short_credit not in SHORT_CREDIT_MODES:
            raise ConfigurationError(f"short_credit는 {SHORT_CREDIT_MODES} 중 하나: '{bt.short_credit}'")
        if not bt.symbol:
            raise ConfigurationError("symbol이 비어 있습니다.")
        if self.training.episodes <= 0:
            raise ConfigurationError(f"episodes는 1 이상이어야 합니다: {self.training.episodes}")
        if self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigurationError(f"알 수 없는 log_level: {self.log_level}")

    def strategy_params(self) -> dict[str, Any]:
        """전략 생성용 파라미터. 자본/리스크는 backtest 섹션 값으로 채운다."""
        return {
            "capital": self.backtest.capital,
            "risk_percentage": self.backtest.risk_percentage,
            **self.strategy.params,
        }

    def to_dict(self) -> dict[str, Any]:
        """딕셔너리로 변환."""
        return asdict(self)

    def save_yaml(self, path: str | Path) -> None:
        """YAML 파일로 저장."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(self.to_dict(), f, allow_unicode=True, default_flow_style=False)


def _section(section_cls, data: dict[str, Any] | None):
    """섹션 dict → dataclass. 정의되지 않은 키는 오타일 가능성이 높으므로 거부."""
    data = dict(data or {})
    unknown = set(data) - set(section_cls.__dataclass_fields__)
    if unknown:
        raise ConfigurationError(f"{section_cls.__name__}: 알 수 없는 키 {sorted(unknown)}")
    return section_cls(**data)
