"""
Tests for the recruitment moving average.
"""

import pytest

from plantfate.errors import ConfigError, PreconditionViolation
from plantfate.smoothing import MovingAverager


class TestMovingAverager:
    """Window bookkeeping and averaging."""

    def test_empty_returns_zero(self) -> None:
        assert MovingAverager().get() == 0.0

    def test_identical_values(self) -> None:
        """n identical values within the window average to that value."""
        avg = MovingAverager(interval=300)
        for t in range(0, 100, 10):
            avg.push(float(t), 2.5)
        assert avg.get() == pytest.approx(2.5)
        assert len(avg) == 10

    def test_mean_of_retained_samples(self) -> None:
        avg = MovingAverager(interval=10)
        avg.push(0.0, 1.0)
        avg.push(5.0, 3.0)
        assert avg.get() == pytest.approx(2.0)

    def test_old_samples_are_dropped(self) -> None:
        """Samples older than the window leave the buffer."""
        avg = MovingAverager(interval=10)
        avg.push(0.0, 100.0)
        avg.push(10.0, 0.0)
        assert len(avg) == 2  # t - interval is not older than the window
        avg.push(10.5, 0.0)
        assert len(avg) == 2
        assert avg.get() == 0.0

    def test_single_value_expires(self) -> None:
        """After the window has elapsed only later pushes remain."""
        avg = MovingAverager(interval=300)
        avg.push(0.0, 7.0)
        avg.push(150.0, 0.0)
        avg.push(301.0, 0.0)
        assert avg.get() == 0.0

    def test_out_of_order_push_raises(self) -> None:
        avg = MovingAverager()
        avg.push(5.0, 1.0)
        with pytest.raises(PreconditionViolation):
            avg.push(4.0, 1.0)

    def test_same_time_push_allowed(self) -> None:
        avg = MovingAverager()
        avg.push(5.0, 1.0)
        avg.push(5.0, 3.0)
        assert avg.get() == pytest.approx(2.0)

    def test_set_interval_shrinks_window(self) -> None:
        avg = MovingAverager(interval=300)
        for t in (0.0, 50.0, 100.0):
            avg.push(t, t)
        avg.set_interval(60)
        assert len(avg) == 2
        assert avg.value() == pytest.approx(75.0)

    def test_clear(self) -> None:
        avg = MovingAverager()
        avg.push(1.0, 1.0)
        avg.clear()
        assert len(avg) == 0
        assert avg.get() == 0.0

    def test_invalid_interval(self) -> None:
        with pytest.raises(ConfigError):
            MovingAverager(interval=0)

    def test_invalid_set_interval(self) -> None:
        avg = MovingAverager()
        with pytest.raises(ConfigError):
            avg.set_interval(-5.0)
        assert avg.interval == 300.0
