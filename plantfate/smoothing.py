"""
Moving average of recruitment flux.

Newborn flux reported by the solver fluctuates strongly from step to
step. Each species feeds it through a MovingAverager and uses the
smoothed value as its birth-flux boundary condition.
"""

from collections import deque

from plantfate.errors import ConfigError, PreconditionViolation


class MovingAverager:
    """
    Mean of the samples pushed within a trailing time window.

    Samples with t_i < t - interval are dropped when a sample at t is
    pushed. Push times must be non-decreasing.
    """

    def __init__(self, interval: float = 300.0):
        if interval <= 0:
            raise ConfigError("interval", f"must be positive, got {interval}")
        self.interval = interval
        self.samples: deque[tuple[float, float]] = deque()

    def __len__(self) -> int:
        return len(self.samples)

    def set_interval(self, interval: float) -> None:
        if interval <= 0:
            raise ConfigError("interval", f"must be positive, got {interval}")
        self.interval = interval
        if self.samples:
            self._evict(self.samples[-1][0])

    def clear(self) -> None:
        self.samples.clear()

    def _evict(self, t: float) -> None:
        while self.samples and self.samples[0][0] < t - self.interval:
            self.samples.popleft()

    def push(self, t: float, value: float) -> None:
        """
        Add a sample and drop those that fell out of the window.

        Raises:
            PreconditionViolation: if t is earlier than the last push
        """
        if self.samples and t < self.samples[-1][0]:
            raise PreconditionViolation(
                "MovingAverager.push",
                f"time {t} is earlier than the last sample at {self.samples[-1][0]}",
            )
        self.samples.append((t, value))
        self._evict(t)

    def get(self) -> float:
        """Arithmetic mean of the retained samples, 0.0 when empty."""
        if not self.samples:
            return 0.0
        return sum(v for _, v in self.samples) / len(self.samples)

    value = get

    def __repr__(self) -> str:
        return f"MovingAverager(interval={self.interval}, n={len(self.samples)}, mean={self.get()})"
