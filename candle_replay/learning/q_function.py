"""
선형 Q 함수.

[ 수식 ]
    Q(s, a) = a * (bias + Σ w_f * s_f),  a ∈ {-1(SELL), 0(HOLD), 1(BUY)}
    1-step Q-learning:
        target = r + γ * max_a' Q(s', a')
        error  = target - Q(s, a)
        bias  += α * error
        w_f   += α * error * s_f * a

[ 호출하는 곳 ]
    - strategies/rl_strategy.py::RLStrategy (행동 선택 + learn())
    - learning/trainer.py::RLTrainer.save_model()
"""

from typing import Any, Mapping, Sequence

import numpy as np

SELL, HOLD, BUY = -1, 0, 1
ACTIONS = (SELL, HOLD, BUY)


class LinearQFunction:
    """feature 가중치 + bias 하나로 모든 행동의 Q 값을 표현."""

    def __init__(
        self,
        features: Sequence[str],
        learning_rate: float = 0.001,
        discount_factor: float = 0.95,
        rng: np.random.Generator | None = None,
        init_scale: float = 0.1,
    ):
        rng = rng if rng is not None else np.random.default_rng()
        self.features = tuple(features)
        self.learning_rate = learning_rate
        self.discount_factor = discount_factor
        self.weights: dict[str, float] = {
            f: float(w) for f, w in zip(self.features, rng.uniform(-init_scale, init_scale, len(self.features)))
        }
        self.bias = 0.0

    def value(self, state: Mapping[str, float]) -> float:
        """bias + Σ w_f * s_f (행동 곱하기 전)."""
        return self.bias + sum(state[f] * w for f, w in self.weights.items() if f in state)

    def q(self, state: Mapping[str, float], action: int) -> float:
        return action * self.value(state)

    def best_action(self, state: Mapping[str, float]) -> int:
        """Q 최대 행동. 동률이면 SELL, HOLD, BUY 순으로 앞선 행동."""
        return max(ACTIONS, key=lambda a: self.q(state, a))

    def update(
        self,
        state: Mapping[str, float],
        action: int,
        reward: float,
        next_state: Mapping[str, float],
    ) -> float:
        """1-step 갱신. TD 오차 반환."""
        current = self.q(state, action)
        next_best = max(self.q(next_state, a) for a in ACTIONS)
        target = reward + self.discount_factor * next_best
        error = target - current

        self.bias += self.learning_rate * error
        for f in self.weights:
            if f in state:
                self.weights[f] += self.learning_rate * error * state[f] * action
        return error

    def feature_importance(self, top: int = 5) -> list[tuple[str, float]]:
        return sorted(self.weights.items(), key=lambda kv: abs(kv[1]), reverse=True)[:top]

    def to_dict(self) -> dict[str, Any]:
        return {"weights": dict(self.weights), "bias": self.bias}

    def load(self, data: Mapping[str, Any]) -> None:
        """to_dict() 결과 복원. 모르는 feature는 무시."""
        for f, w in data.get("weights", {}).items():
            if f in self.weights:
                self.weights[f] = float(w)
        self.bias = float(data.get("bias", 0.0))
