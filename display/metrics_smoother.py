"""展示层平滑模块：EMA + 单步限幅，输出稳定分数与 Low/Normal/High 等级"""

from dataclasses import dataclass
from typing import Optional, Union

from models.data_models import (
    CognitiveMetrics,
    Level,
    MetricLevels,
    MetricScores,
    SmoothedMetrics,
)
from utils.numeric import check_alpha, clamp, round_half_up, smooth_value


@dataclass(frozen=True)
class LevelBand:
    """value < low → Low；value >= high → High；其余 Normal"""
    low: float
    high: float


DEFAULT_LEVEL_BANDS = {
    "focus": LevelBand(45, 75),
    "stress": LevelBand(35, 65),
    "fatigue": LevelBand(35, 70),
}

DEFAULT_INITIAL = MetricScores(focus=50, stress=20, fatigue=20)


def to_level(value: float, band: LevelBand) -> Level:
    if value < band.low:
        return Level.LOW
    if value >= band.high:
        return Level.HIGH
    return Level.NORMAL


def limit_delta(prev: float, target: float, max_delta: float) -> float:
    """单步变化幅度不超过 max_delta"""
    delta = target - prev
    if abs(delta) <= max_delta:
        return target
    return prev + max_delta if delta > 0 else prev - max_delta


class MetricsSmoother:
    """
    对分类器的原始分数做展示层平滑。

    每项分数: EMA(alpha) → 限幅(max_delta) → 取整 → 截断到 [0, 100]。
    开启 asymmetric_fatigue 时，疲劳上升用 (rise_alpha, rise_max_delta)，
    下降用 (decay_alpha, decay_max_delta)。
    """

    def __init__(
        self,
        initial: Optional[MetricScores] = None,
        alpha: float = 0.12,
        max_delta: float = 5.0,
        asymmetric_fatigue: bool = False,
        fatigue_rise_alpha: float = 0.45,
        fatigue_rise_max_delta: float = 18.0,
        fatigue_decay_alpha: float = 0.06,
        fatigue_decay_max_delta: float = 3.0,
        level_bands=None,
    ):
        self.alpha = check_alpha("alpha", alpha)
        self.fatigue_rise_alpha = check_alpha("fatigue_rise_alpha", fatigue_rise_alpha)
        self.fatigue_decay_alpha = check_alpha("fatigue_decay_alpha", fatigue_decay_alpha)
        if max_delta <= 0 or fatigue_rise_max_delta <= 0 or fatigue_decay_max_delta <= 0:
            raise ValueError("单步限幅必须为正数")
        self.max_delta = max_delta
        self.asymmetric_fatigue = asymmetric_fatigue
        self.fatigue_rise_max_delta = fatigue_rise_max_delta
        self.fatigue_decay_max_delta = fatigue_decay_max_delta
        self.level_bands = dict(DEFAULT_LEVEL_BANDS)
        if level_bands:
            self.level_bands.update(level_bands)

        initial = initial if initial is not None else DEFAULT_INITIAL
        self._state = MetricScores(
            focus=self._bound(initial.focus),
            stress=self._bound(initial.stress),
            fatigue=self._bound(initial.fatigue),
        )

    @staticmethod
    def _bound(value: float) -> int:
        return int(clamp(round_half_up(value), 0, 100))

    def _apply(self, prev: float, raw: float, alpha: float, max_delta: float) -> int:
        ema = smooth_value(prev, clamp(raw, 0.0, 100.0), alpha)
        return self._bound(limit_delta(prev, ema, max_delta))

    def _apply_fatigue(self, prev: float, raw: float) -> int:
        if not self.asymmetric_fatigue:
            return self._apply(prev, raw, self.alpha, self.max_delta)
        if raw > prev:
            return self._apply(prev, raw, self.fatigue_rise_alpha, self.fatigue_rise_max_delta)
        return self._apply(prev, raw, self.fatigue_decay_alpha, self.fatigue_decay_max_delta)

    def levels_for(self, scores: MetricScores) -> MetricLevels:
        return MetricLevels(
            focus=to_level(scores.focus, self.level_bands["focus"]),
            stress=to_level(scores.stress, self.level_bands["stress"]),
            fatigue=to_level(scores.fatigue, self.level_bands["fatigue"]),
        )

    def update(self, raw: Union[MetricScores, CognitiveMetrics]) -> SmoothedMetrics:
        """
        推进一步平滑。

        Args:
            raw: 原始分数（MetricScores 或分类器输出的 CognitiveMetrics）

        Returns:
            SmoothedMetrics，包含平滑后的分数与等级
        """
        prev = self._state
        self._state = MetricScores(
            focus=self._apply(prev.focus, raw.focus, self.alpha, self.max_delta),
            stress=self._apply(prev.stress, raw.stress, self.alpha, self.max_delta),
            fatigue=self._apply_fatigue(prev.fatigue, raw.fatigue),
        )
        return self.get()

    def get(self) -> SmoothedMetrics:
        state = MetricScores(self._state.focus, self._state.stress, self._state.fatigue)
        return SmoothedMetrics(smoothed=state, levels=self.levels_for(state))

    def reset(self, focus: Optional[float] = None, stress: Optional[float] = None,
              fatigue: Optional[float] = None):
        """重置部分或全部状态，未给出的项保持当前值"""
        current = self._state
        self._state = MetricScores(
            focus=self._bound(current.focus if focus is None else focus),
            stress=self._bound(current.stress if stress is None else stress),
            fatigue=self._bound(current.fatigue if fatigue is None else fatigue),
        )
