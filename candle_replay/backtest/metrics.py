"""
백테스트 성과 지표 계산 모듈.

[ 역할 ]
    정산이 끝난 ClosedTrade 목록을 받아 성과 지표를 계산.
    calculate_metrics() 함수가 핵심.

[ 계산하는 지표 ]
    - 총 수익률 / 최종 자본 / 누적 수수료
    - 승률, 평균 수익/손실, 수익 팩터
    - 롱/숏 별 거래 수와 승률
    - reward 합계/평균, 거래당 샤프 비율 (무위험 수익률 0)
    - 최대 낙폭 (금액/%) 및 최장 낙폭 기간
    - 연속 승/패, 평균 보유 봉 수

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine.execute() 완료 시 호출
    - learning/trainer.py::RLTrainer 에피소드 통계

[ 입력 데이터 ]
    - trades: backtest/accountant.py::apply_drawdown()까지 거친 ClosedTrade
"""

from dataclasses import asdict, dataclass
from typing import Any, Sequence

import numpy as np

from candle_replay.backtest.accountant import ClosedTrade
from candle_replay.core.data_provider import Side


@dataclass
class BacktestMetrics:
    """백테스트 성과 지표. summary()로 포맷된 리포트 출력 가능."""
    total_return: float = 0.0          # 총 수익률 (%)
    final_capital: float = 0.0         # 초기 자본 + 수수료 차감 후 누적 손익
    total_pnl: float = 0.0             # 수수료 차감 전 손익 합
    total_fee: float = 0.0
    sharpe_ratio: float = 0.0          # 거래당 손익 평균 / 표준편차
    max_drawdown: float = 0.0          # 최대 낙폭 (금액)
    max_drawdown_pct: float = 0.0      # 최대 낙폭 (%)
    max_drawdown_duration: int = 0     # 최장 낙폭 기간 (거래 수)
    win_rate: float = 0.0              # 승률 (%)
    avg_profit: float = 0.0            # 수익 거래 평균 이익
    avg_loss: float = 0.0              # 손실 거래 평균 손실
    profit_factor: float = 0.0         # 총이익 / 총손실 (1 이상이면 수익)
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    long_trades: int = 0
    short_trades: int = 0
    long_win_rate: float = 0.0
    short_win_rate: float = 0.0
    total_reward: float = 0.0          # Σ reward (R 배수)
    avg_reward: float = 0.0
    avg_duration: float = 0.0          # 평균 보유 봉 수
    max_consecutive_wins: int = 0
    max_consecutive_losses: int = 0

    def to_dict(self) -> dict[str, Any]:
        """딕셔너리 변환."""
        return asdict(self)

    def summary(self) -> str:
        """성과 요약 문자열."""
        lines = [
            "=" * 50,
            "백테스트 성과 리포트",
            "=" * 50,
            f"총 수익률:       {self.total_return:>10.2f}%",
            f"최종 자본:       {self.final_capital:>10,.2f}",
            f"누적 수수료:     {self.total_fee:>10,.2f}",
            f"샤프 비율:       {self.sharpe_ratio:>10.2f}",
            f"최대 낙폭:       {self.max_drawdown:>10,.2f} ({self.max_drawdown_pct:.2f}%)",
            f"최장 낙폭 기간:  {self.max_drawdown_duration:>10d}",
            "-" * 50,
            f"총 거래 횟수:    {self.total_trades:>10d}",
            f"승률:            {self.win_rate:>10.2f}%",
            f"수익 거래:       {self.winning_trades:>10d}",
            f"손실 거래:       {self.losing_trades:>10d}",
            f"롱 / 숏:         {self.long_trades:>4d} / {self.short_trades:<4d}",
            f"평균 수익:       {self.avg_profit:>10,.2f}",
            f"평균 손실:       {self.avg_loss:>10,.2f}",
            f"수익 팩터:       {self.profit_factor:>10.2f}",
            f"평균 reward:     {self.avg_reward:>10.2f}R",
            "-" * 50,
            f"최대 연속 수익:  {self.max_consecutive_wins:>10d}",
            f"최대 연속 손실:  {self.max_consecutive_losses:>10d}",
            "=" * 50,
        ]
        return "\n".join(lines)


def _win_rate(trades: Sequence[ClosedTrade]) -> float:
    if not trades:
        return 0.0
    return sum(1 for t in trades if t.is_win) / len(trades) * 100


def calculate_metrics(trades: Sequence[ClosedTrade], starting_capital: float) -> BacktestMetrics:
    """성과 지표 계산. engine.py에서 정산 완료 후 호출됨.

    Args:
        trades: apply_drawdown()까지 적용된 ClosedTrade 목록 (시간순)
        starting_capital: 초기 자본
    """
    metrics = BacktestMetrics(final_capital=starting_capital)
    metrics.total_trades = len(trades)
    if not trades:
        return metrics

    # ─── 수익률 ──────────────────────────────────────────────────────────
    profits = np.array([t.pnl_after_fee for t in trades])
    metrics.total_pnl = float(sum(t.pnl for t in trades))
    metrics.total_fee = float(sum(t.fee for t in trades))
    metrics.final_capital = starting_capital + float(profits.sum())
    metrics.total_return = (metrics.final_capital - starting_capital) / starting_capital * 100

    if profits.std() > 0:
        metrics.sharpe_ratio = float(profits.mean() / profits.std())

    # ─── 낙폭 (apply_drawdown 결과 사용) ──────────────────────────────────
    metrics.max_drawdown = max(t.drawdown for t in trades)
    metrics.max_drawdown_pct = max(t.drawdown_pct for t in trades)
    metrics.max_drawdown_duration = max(t.drawdown_duration for t in trades)

    # ─── 승패 ─────────────────────────────────────────────────────────────
    winners = profits[profits > 0]
    losers = profits[profits <= 0]
    metrics.winning_trades = len(winners)
    metrics.losing_trades = len(losers)
    metrics.win_rate = len(winners) / len(trades) * 100
    if len(winners):
        metrics.avg_profit = float(winners.mean())
    if len(losers):
        metrics.avg_loss = float(losers.mean())
    total_loss = abs(float(losers.sum()))
    metrics.profit_factor = float(winners.sum()) / total_loss if total_loss > 0 else float("inf")

    longs = [t for t in trades if t.side is Side.LONG]
    shorts = [t for t in trades if t.side is Side.SHORT]
    metrics.long_trades = len(longs)
    metrics.short_trades = len(shorts)
    metrics.long_win_rate = _win_rate(longs)
    metrics.short_win_rate = _win_rate(shorts)

    rewards = np.array([t.reward for t in trades])
    metrics.total_reward = float(rewards.sum())
    metrics.avg_reward = float(rewards.mean())
    metrics.avg_duration = float(np.mean([t.duration for t in trades]))

    # 연속 승패
    consecutive_wins = 0
    consecutive_losses = 0
    for p in profits:
        if p > 0:
            consecutive_wins += 1
            consecutive_losses = 0
            metrics.max_consecutive_wins = max(metrics.max_consecutive_wins, consecutive_wins)
        else:
            consecutive_losses += 1
            consecutive_wins = 0
            metrics.max_consecutive_losses = max(metrics.max_consecutive_losses, consecutive_losses)

    return metrics
