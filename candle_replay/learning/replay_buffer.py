"""
경험 재생(Experience Replay) 버퍼.

[ 역할 ]
    (state, action, reward, next_state) 전이를 고정 용량 링 버퍼에 저장하고
    미니배치를 균등 확률로 복원 추출(with replacement)한다.

[ 호출하는 곳 ]
    - strategies/rl_strategy.py::RLStrategy (학습 모드에서 전이 저장 + learn())
    - learning/trainer.py::RLTrainer (에피소드마다 clear())
"""

from dataclasses import dataclass
from typing import Mapping

import numpy as np


@dataclass(frozen=True)
class Experience:
    state: Mapping[str, float]
    action: int
    reward: float
    next_state: Mapping[str, float]


class ReplayBuffer:
    """고정 용량 링 버퍼. 가득 차면 가장 오래된 전이부터 덮어쓴다."""

    def __init__(self, capacity: int = 10_000, rng: np.random.Generator | None = None):
        if capacity <= 0:
            raise ValueError(f"capacity must be > 0: {capacity}")
        self.capacity = capacity
        self.rng = rng if rng is not None else np.random.default_rng()
        self._buffer: list[Experience] = []
        self._position = 0

    def __len__(self) -> int:
        return len(self._buffer)

    @property
    def size(self) -> int:
        return len(self._buffer)

    def push(self, state, action: int, reward: float, next_state) -> None:
        experience = Experience(state, action, reward, next_state)
        if len(self._buffer) < self.capacity:
            self._buffer.append(experience)
        else:
            self._buffer[self._position] = experience
        self._position = (self._position + 1) % self.capacity

    def sample(self, batch_size: int) -> list[Experience]:
        """균등 복원 추출. 저장된 전이 수와 관계없이 batch_size개 (버퍼가 비어 있으면 빈 리스트)."""
        if not self._buffer:
            return []
        indices = self.rng.integers(0, len(self._buffer), size=batch_size)
        return [self._buffer[i] for i in indices]

    def clear(self) -> None:
        self._buffer = []
        self._position = 0
