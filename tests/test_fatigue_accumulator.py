"""FatigueAccumulator 单元测试"""

import pytest

from evaluators.fatigue_accumulator import FatigueAccumulator


def _run_until(accumulator, instant, start, stop, step=200):
    t = start
    while t <= stop:
        accumulator.update(instant, t)
        t += step
    return accumulator.value


class TestFatigueAccumulator:
    def test_rises_to_ninety_percent_within_three_seconds(self):
        accumulator = FatigueAccumulator()
        accumulator.update(0, 0)
        value = _run_until(accumulator, 100, 200, 3000)
        assert value >= 90

    def test_not_instantaneous(self):
        accumulator = FatigueAccumulator()
        accumulator.update(0, 0)
        accumulator.update(100, 200)
        assert accumulator.value < 50

    def test_decay_much_slower_than_rise(self):
        rising = FatigueAccumulator()
        rising.update(0, 0)
        t_rise = None
        t = 0
        while t_rise is None:
            t += 200
            if rising.update(100, t) >= 90:
                t_rise = t

        falling = FatigueAccumulator()
        falling.update(0, 0)
        _run_until(falling, 100, 200, 20000)
        start_value = falling.value
        t = 20000
        t_fall = None
        while t_fall is None:
            t += 200
            if falling.update(0, t) <= start_value * 0.1:
                t_fall = t - 20000

        assert t_fall >= 10 * t_rise

    def test_frame_rate_independent(self):
        fast = FatigueAccumulator()
        slow = FatigueAccumulator()
        fast.update(0, 0)
        slow.update(0, 0)
        _run_until(fast, 80, 100, 2000, step=100)
        _run_until(slow, 80, 500, 2000, step=500)
        assert fast.value == pytest.approx(slow.value, abs=0.5)

    def test_bounded(self):
        accumulator = FatigueAccumulator()
        accumulator.update(500, 0)
        assert 0 <= accumulator.value <= 100
        accumulator.update(float("nan"), 200)
        assert 0 <= accumulator.value <= 100

    def test_reset(self):
        accumulator = FatigueAccumulator()
        _run_until(accumulator, 100, 0, 2000)
        accumulator.reset()
        assert accumulator.value == 0.0

    def test_invalid_rate(self):
        with pytest.raises(ValueError):
            FatigueAccumulator(decay_rate=0.0)
