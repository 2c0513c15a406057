"""
RL 학습 루프.

[ 역할 ]
    strategies/rl_strategy.py::RLStrategy를 학습 모드로 같은 QuoteSeries에 여러 번 리플레이(에피소드).
    에피소드마다 리플레이 버퍼/정규화 통계/에피소드 reward를 비우고, 원장은 BacktestEngine이 새로 만든다.
    Q 가중치만 에피소드 사이에 이어진다.

[ 조기 종료 ]
    샤프 비율 > 2 이고 승률 > 60% 인 에피소드가 나오면 중단.

[ 모델 저장 ]
    save_model() → {PathsConfig.model_dir}/{symbol}_{interval}_rl_model.json
        weights, bias, normalizer 통계, 전략 파라미터, 에피소드 통계

[ 의존성 ]
    - backtest/engine.py::BacktestEngine (에피소드 한 번 = execute() 한 번)
    - utils/config.py::Config, PathsConfig

[ 호출하는 곳 ]
    - 노트북/스크립트에서 RLTrainer.from_config(config, provider).train()
"""

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from candle_replay.backtest.engine import BacktestEngine
from candle_replay.backtest.report import BacktestReport
from candle_replay.core.data_provider import DataProvider
from candle_replay.core.errors import ConfigurationError
from candle_replay.data.file_provider import load_series
from candle_replay.data.quote_series import QuoteSeries
from candle_replay.strategies import create_strategy
from candle_replay.strategies.rl_strategy import RLStrategy
from candle_replay.utils.config import Config, PathsConfig

logger = logging.getLogger("candle_replay.learning")


@dataclass
class EpisodeStats:
    """에피소드 한 번의 결과 요약."""
    episode: int
    total_reward: float
    total_return: float
    total_trades: int
    win_rate: float
    sharpe_ratio: float
    max_drawdown_pct: float
    buffer_size: int
    terminated_reason: str


class RLTrainer:
    """RLStrategy 에피소드 학습기.

    사용 예:
        trainer = RLTrainer(create_strategy("reinforcement_learning", {"seed": 7}), series, episodes=5)
        history = trainer.train()
        trainer.save_model()
    """

    def __init__(
        self,
        strategy: RLStrategy,
        series: QuoteSeries,
        episodes: int = 10,
        fee_rate: float = 0.001,
        risk_mode: str = "fixed",
        fractional: bool = True,
        short_credit: str = "notional",
        paths: PathsConfig | None = None,
        target_sharpe: float = 2.0,
        target_win_rate: float = 60.0,
    ):
        if not isinstance(strategy, RLStrategy):
            raise ConfigurationError(f"RLTrainer는 RLStrategy만 학습합니다: {type(strategy).__name__}")
        if episodes <= 0:
            raise ConfigurationError(f"episodes는 1 이상이어야 합니다: {episodes}")
        self.strategy = strategy
        self.series = series
        self.episodes = episodes
        self.fee_rate = fee_rate
        self.risk_mode = risk_mode
        self.fractional = fractional
        self.short_credit = short_credit
        self.paths = paths or PathsConfig()
        self.target_sharpe = target_sharpe
        self.target_win_rate = target_win_rate

        self.history: list[EpisodeStats] = []
        self.last_report: BacktestReport | None = None

    @classmethod
    def from_config(cls, config: Config, provider: DataProvider) -> "RLTrainer":
        config.validate()
        bt = config.backtest
        params = config.strategy_params()
        if config.training.seed is not None:
            params.setdefault("seed", config.training.seed)
        strategy = create_strategy("reinforcement_learning", params)
        series = load_series(provider, bt.symbol, bt.interval, warmup=bt.warmup, allow_gaps=bt.allow_gaps)
        return cls(
            strategy,
            series,
            episodes=config.training.episodes,
            fee_rate=bt.fee_rate,
            risk_mode=bt.risk_mode,
            fractional=bt.fractional,
            short_credit=bt.short_credit,
            paths=config.paths,
        )

    def train(self) -> list[EpisodeStats]:
        """에피소드 반복. 끝나면 학습 모드 플래그를 원래대로 돌려놓는다."""
        strategy = self.strategy
        previous_mode = strategy.training_mode
        strategy.training_mode = True
        self.history = []
        try:
            for episode in range(1, self.episodes + 1):
                stats = self._run_episode(episode)
                self.history.append(stats)
                logger.info(
                    f"에피소드 {episode}/{self.episodes}: reward={stats.total_reward:.2f}, "
                    f"수익률={stats.total_return:.2f}%, 거래={stats.total_trades}, "
                    f"승률={stats.win_rate:.1f}%, 샤프={stats.sharpe_ratio:.2f}"
                )
                if stats.sharpe_ratio > self.target_sharpe and stats.win_rate > self.target_win_rate:
                    logger.info(f"목표 성과 도달 → 에피소드 {episode}에서 조기 종료")
                    break
        finally:
            strategy.training_mode = previous_mode
        return self.history

    def _run_episode(self, episode: int) -> EpisodeStats:
        strategy = self.strategy
        strategy.reset_learning_state()
        engine = BacktestEngine(
            strategy,
            self.series.cursor(),
            fee_rate=self.fee_rate,
            risk_mode=self.risk_mode,
            fractional=self.fractional,
            short_credit=self.short_credit,
        )
        report = engine.execute()
        self.last_report = report
        m = report.metrics
        return EpisodeStats(
            episode=episode,
            total_reward=strategy.episode_reward,
            total_return=m.total_return,
            total_trades=m.total_trades,
            win_rate=m.win_rate,
            sharpe_ratio=m.sharpe_ratio,
            max_drawdown_pct=m.max_drawdown_pct,
            buffer_size=len(strategy.replay_buffer),
            terminated_reason=report.terminated_reason,
        )

    def model_dict(self) -> dict[str, Any]:
        strategy = self.strategy
        params = {k: v for k, v in strategy.params.items() if not callable(v)}
        return {
            **strategy.q_function.to_dict(),
            "normalizer": strategy.normalizer.stats(),
            "params": params,
            "training_stats": [asdict(s) for s in self.history],
            "saved_at": datetime.now().isoformat(timespec="seconds"),
        }

    def save_model(self, path: str | Path | None = None) -> Path:
        """학습된 모델을 JSON으로 저장하고 경로 반환."""
        if path is None:
            name = f"{self.series.symbol or 'series'}_{self.series.interval or 'na'}_rl_model.json"
            path = Path(self.paths.model_dir) / name
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.model_dict(), f, ensure_ascii=False, indent=2)
        logger.info(f"모델 저장: {path}")
        return path
