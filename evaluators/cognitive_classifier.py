"""认知状态分类器：自适应阈值 + 注意力去抖 + 多因子评分 + 疲劳累积"""

import logging
from typing import Optional, Tuple

from models.data_models import AdaptiveThresholds, Baseline, CognitiveMetrics, FacialSample
from evaluators.attention_tracker import AttentionTracker
from evaluators.cognitive_scoring import (
    calculate_confidence,
    calculate_focus,
    calculate_stress,
    classify_dominant_state,
    generate_alerts,
    instantaneous_fatigue,
)
from evaluators.fatigue_accumulator import FatigueAccumulator
from evaluators.thresholds import AttentionRules, check_screen_size, compute_adaptive_thresholds
from utils.numeric import now_ms, round_half_up

logger = logging.getLogger(__name__)


class CognitiveClassifier:
    """
    每个会话独占一个实例，内部持有注意力状态机与疲劳累积器。

    基线只在 update_baseline() 时整体替换，阈值随之重算一次；
    未校准时使用默认阈值与零姿态基线。
    """

    def __init__(
        self,
        baseline: Optional[Baseline] = None,
        screen_size: Tuple[int, int] = (1920, 1080),
        rules: Optional[AttentionRules] = None,
        fatigue_rise_rate: float = 0.6,
        fatigue_decay_rate: float = 0.05,
    ):
        self.screen_size = check_screen_size(screen_size)
        self.rules = rules if rules is not None else AttentionRules()
        self.attention = AttentionTracker(self.screen_size, self.rules)
        self.fatigue = FatigueAccumulator(fatigue_rise_rate, fatigue_decay_rate)
        self._baseline = baseline
        self._thresholds = compute_adaptive_thresholds(baseline)

    @property
    def baseline(self) -> Optional[Baseline]:
        return self._baseline

    @property
    def thresholds(self) -> AdaptiveThresholds:
        return self._thresholds

    def update_baseline(self, baseline: Optional[Baseline]):
        """替换基线并重算阈值（None 恢复默认）"""
        thresholds = compute_adaptive_thresholds(baseline)
        self._baseline = baseline
        self._thresholds = thresholds
        if baseline is not None:
            logger.info("应用基线: 样本 %d 个, 专注阈值 %.0f, 疲劳阈值 %.0f",
                        baseline.samples, thresholds.focus_threshold, thresholds.fatigue_threshold)

    def calculate(self, sample: FacialSample, now: Optional[float] = None) -> CognitiveMetrics:
        """
        计算单帧认知指标。

        Args:
            sample: 稳定器输出的样本
            now: 当前时间（毫秒），缺省取单调时钟

        Returns:
            CognitiveMetrics，各分数为 0-100 整数，distraction = 100 - focus
        """
        now = now_ms() if now is None else now
        thresholds = self._thresholds
        baseline_pose = thresholds.head_pose_baseline

        attention = self.attention.evaluate(sample, baseline_pose, now)
        confidence = calculate_confidence(sample, baseline_pose)

        focus = calculate_focus(sample, attention, baseline_pose, self.screen_size, self.rules)
        stress = calculate_stress(sample)

        instant = instantaneous_fatigue(sample, baseline_pose)
        accumulated = self.fatigue.update(instant, now)
        fatigue = round_half_up(max(instant, accumulated))

        dominant = classify_dominant_state(focus, stress, fatigue, thresholds)
        alerts = generate_alerts(focus, stress, fatigue, sample, attention, baseline_pose)

        return CognitiveMetrics(
            focus=focus,
            stress=stress,
            fatigue=fatigue,
            distraction=100 - focus,
            dominant_state=dominant,
            confidence=confidence,
            attention=attention,
            alerts=alerts,
        )

    def reset(self):
        """清空注意力状态与疲劳累积，保留基线"""
        self.attention.reset()
        self.fatigue.reset()
