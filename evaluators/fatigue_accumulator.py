"""疲劳累积器：快升慢降的非对称指数跟随"""

from typing import Optional

from utils.numeric import clamp


class FatigueAccumulator:
    """
    每秒向瞬时值靠近 rise_rate（上升）或 decay_rate（下降）比例的差距。

    按实际帧间隔折算：alpha = 1 - (1 - rate) ** dt_s，dt_s 上限 1 秒，
    因此结果与帧率无关。默认参数下上升约 2.5 秒达到差距的 90%，
    下降到同样程度约需 45 秒。
    """

    def __init__(self, rise_rate: float = 0.6, decay_rate: float = 0.05,
                 default_dt_ms: float = 200.0):
        if not 0.0 < decay_rate <= 1.0 or not 0.0 < rise_rate <= 1.0:
            raise ValueError(f"累积速率必须在 (0, 1] 内: rise={rise_rate}, decay={decay_rate}")
        self.rise_rate = rise_rate
        self.decay_rate = decay_rate
        self.default_dt_ms = default_dt_ms
        self._value = 0.0
        self._last_update: Optional[float] = None

    @property
    def value(self) -> float:
        return self._value

    def update(self, instant: float, now: float) -> float:
        """
        用瞬时疲劳值推进累积器。

        Args:
            instant: 瞬时疲劳 (0-100)
            now: 当前时间（毫秒）

        Returns:
            更新后的累积值
        """
        instant = clamp(instant, 0.0, 100.0)
        if self._last_update is None:
            dt_ms = self.default_dt_ms
        else:
            dt_ms = max(0.0, now - self._last_update)
        self._last_update = now

        dt_s = min(dt_ms / 1000.0, 1.0)
        rate = self.rise_rate if instant > self._value else self.decay_rate
        alpha = 1.0 - (1.0 - rate) ** dt_s
        self._value = clamp(self._value + (instant - self._value) * alpha, 0.0, 100.0)
        return self._value

    def reset(self):
        self._value = 0.0
        self._last_update = None
