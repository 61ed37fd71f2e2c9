"""注意力区域判定模块：逐帧几何规则给出候选区域，经保持时间去抖后成为稳定区域"""

import logging
from typing import Optional, Tuple

from models.data_models import AttentionClassification, AttentionState, FacialSample, HeadPose
from evaluators.thresholds import CENTER_ZONE, EXTENDED_ZONE, AttentionRules, normalize_gaze
from utils.numeric import clamp, clamp01

logger = logging.getLogger(__name__)


def compute_attention_penalty(attention: AttentionState, rules: Optional[AttentionRules] = None) -> float:
    """
    离屏时长 → 0~45 分惩罚。

    前 2 秒免罚，之后线性增长，8 秒封顶；手机 +10、侧视 +5，再按检测质量缩放。
    """
    rules = rules if rules is not None else AttentionRules()
    if attention.on_screen or attention.classification == AttentionClassification.UNCERTAIN \
            or not attention.reliable:
        return 0.0

    effective_ms = max(0.0, attention.off_screen_ms - rules.offscreen_grace_ms)
    ramp = max(1.0, rules.offscreen_max_ms - rules.offscreen_grace_ms)
    penalty = rules.offscreen_max_penalty * min(1.0, effective_ms / ramp)

    if attention.phone_looking:
        penalty += rules.phone_bonus
    elif attention.side_looking:
        penalty += rules.side_bonus

    quality_boost = 0.75 + attention.quality_score * 0.25
    return min(rules.penalty_cap, penalty * quality_boost)


class AttentionTracker:
    """维护稳定注意力区域、候选计时器与离屏计时器"""

    def __init__(self, screen_size: Tuple[int, int], rules: Optional[AttentionRules] = None):
        self.screen_size = screen_size
        self.rules = rules if rules is not None else AttentionRules()
        self._stable = AttentionClassification.ON_SCREEN
        self._candidate: Optional[AttentionClassification] = None
        self._candidate_since: Optional[float] = None
        self._off_screen_since: Optional[float] = None

    @property
    def stable(self) -> AttentionClassification:
        return self._stable

    def _hold_ms(self, candidate: AttentionClassification) -> float:
        if candidate == AttentionClassification.ON_SCREEN:
            return self.rules.hold_to_on_screen_ms
        if candidate == AttentionClassification.UNCERTAIN:
            return self.rules.hold_to_uncertain_ms
        return self.rules.hold_to_distracted_ms

    def quality_of(self, sample: FacialSample) -> Tuple[float, bool]:
        """返回 (质量分, 是否可信)；缺少质量信息时视为可信"""
        if sample.quality is None:
            return self.rules.default_quality_score, True
        score = clamp01(sample.quality.score)
        reliable = sample.quality.reliable and score >= self.rules.min_quality_for_decision
        return score, reliable

    def candidate_for(self, sample: FacialSample, baseline_pose: HeadPose) -> AttentionClassification:
        """
        本帧的候选区域。

        优先级: 不可信 → uncertain；检测到手机 → phone_like；
        在扩展区内且偏离未超上限（且非抬头） → on_screen；
        低头看下方 → phone_like；抬头看上方或注视点出扩展区 → off_screen；
        大幅偏航或离开中心区 → side_like；其余 → off_screen。
        """
        _, reliable = self.quality_of(sample)
        if not reliable:
            return AttentionClassification.UNCERTAIN
        if sample.phone_in_frame:
            return AttentionClassification.PHONE_LIKE

        rules = self.rules
        xn, yn = normalize_gaze(sample.gaze, self.screen_size)
        raw_pitch = sample.head_pose.pitch - baseline_pose.pitch
        yaw_dev = abs(sample.head_pose.yaw - baseline_pose.yaw)
        pitch_dev = abs(raw_pitch)

        in_extended = EXTENDED_ZONE.contains(xn, yn)
        in_center = CENTER_ZONE.contains(xn, yn)
        looking_up = raw_pitch < -rules.look_up_pitch_deg and yn < rules.look_up_gaze_y

        if in_extended and yaw_dev < rules.on_screen_yaw_cap_deg \
                and pitch_dev < rules.on_screen_pitch_cap_deg and not looking_up:
            return AttentionClassification.ON_SCREEN
        if pitch_dev > rules.phone_pitch_deg and yn > rules.phone_gaze_y:
            return AttentionClassification.PHONE_LIKE
        if looking_up or not in_extended:
            return AttentionClassification.OFF_SCREEN
        if yaw_dev > rules.side_yaw_deg or not in_center:
            return AttentionClassification.SIDE_LIKE
        return AttentionClassification.OFF_SCREEN

    def evaluate(self, sample: FacialSample, baseline_pose: HeadPose, now: float) -> AttentionState:
        """推进去抖状态机并返回稳定状态"""
        quality_score, reliable = self.quality_of(sample)
        candidate = self.candidate_for(sample, baseline_pose)

        if candidate == self._stable:
            self._candidate = None
            self._candidate_since = None
        elif candidate != self._candidate:
            # 候选变化时重新计时，要求同一候选连续保持
            self._candidate = candidate
            self._candidate_since = now
        elif now - self._candidate_since >= self._hold_ms(candidate):
            logger.debug("注意力区域: %s -> %s", self._stable.value, candidate.value)
            self._stable = candidate
            self._candidate = None
            self._candidate_since = None

        stable = self._stable
        if stable in (AttentionClassification.ON_SCREEN, AttentionClassification.UNCERTAIN):
            self._off_screen_since = None
        elif self._off_screen_since is None:
            self._off_screen_since = now

        off_screen_ms = 0.0 if self._off_screen_since is None else max(0.0, now - self._off_screen_since)

        return AttentionState(
            classification=stable,
            on_screen=stable == AttentionClassification.ON_SCREEN,
            off_screen_ms=off_screen_ms,
            phone_looking=stable == AttentionClassification.PHONE_LIKE,
            side_looking=stable in (AttentionClassification.SIDE_LIKE, AttentionClassification.OFF_SCREEN),
            quality_score=clamp(quality_score, 0.0, 1.0),
            reliable=reliable,
        )

    def reset(self):
        self._stable = AttentionClassification.ON_SCREEN
        self._candidate = None
        self._candidate_since = None
        self._off_screen_since = None
