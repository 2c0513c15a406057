"""
상태(feature) 온라인 정규화.

[ 역할 ]
    Welford 알고리즘으로 feature별 평균/분산을 누적하고 z-score로 변환 후 ±clip으로 자른다.
    이미 -1/0/1로 제한된 feature(bounded)는 그대로 통과.

[ 규칙 ]
    std = sqrt(M2 / (count - 1)), 표본이 2개 미만이거나 std가 0이면 정규화 값 0
    처음 보는 feature는 그대로 통과

[ 호출하는 곳 ]
    - strategies/rl_strategy.py::RLStrategy.observe()
    - learning/trainer.py::RLTrainer (에피소드마다 reset())
"""

import math
from typing import Iterable, Mapping

BOUNDED_FEATURES = ("ma20_trend", "ma60_trend", "supertrend", "in_position", "position_side")


class StateNormalizer:

    def __init__(self, bounded: Iterable[str] = BOUNDED_FEATURES, clip: float = 5.0):
        self.bounded = frozenset(bounded)
        self.clip = clip
        self.reset()

    def reset(self) -> None:
        self.count = 0
        self.mean: dict[str, float] = {}
        self.m2: dict[str, float] = {}
        self.min: dict[str, float] = {}
        self.max: dict[str, float] = {}

    def update(self, state: Mapping[str, float]) -> None:
        self.count += 1
        for key, value in state.items():
            if key not in self.mean:
                self.mean[key] = value
                self.m2[key] = 0.0
                self.min[key] = value
                self.max[key] = value
                continue
            self.min[key] = min(self.min[key], value)
            self.max[key] = max(self.max[key], value)
            delta = value - self.mean[key]
            self.mean[key] += delta / self.count
            self.m2[key] += delta * (value - self.mean[key])

    def std(self, key: str) -> float:
        if self.count < 2:
            return 0.0
        return math.sqrt(self.m2[key] / (self.count - 1))

    def normalize(self, state: Mapping[str, float]) -> dict[str, float]:
        normalized = {}
        for key, value in state.items():
            if key not in self.mean or key in self.bounded:
                normalized[key] = value
                continue
            std = self.std(key)
            z = 0.0 if std == 0 else (value - self.mean[key]) / std
            normalized[key] = max(min(z, self.clip), -self.clip)
        return normalized

    def stats(self) -> dict[str, dict[str, float]]:
        """feature별 {mean, std, min, max} (모델 저장용)."""
        return {
            key: {
                "mean": self.mean[key],
                "std": self.std(key),
                "min": self.min[key],
                "max": self.max[key],
            }
            for key in self.mean
        }
