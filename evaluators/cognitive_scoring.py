"""认知指标评分：专注、压力、瞬时疲劳、置信度、主导状态与告警（无状态函数）"""

from typing import Optional, Tuple

from models.data_models import (
    AdaptiveThresholds,
    Alerts,
    AttentionClassification,
    AttentionState,
    CognitiveState,
    Emotion,
    FacialSample,
    HeadPose,
)
from evaluators.attention_tracker import compute_attention_penalty
from evaluators.thresholds import (
    BLINK_DEEP_FOCUS,
    BLINK_DROWSY_MIN,
    BLINK_FATIGUE_MIN,
    BLINK_OPTIMAL_MAX,
    CENTER_ZONE,
    EXTENDED_ZONE,
    EYE_CLOSEDNESS_PROXY_THRESHOLD,
    HEAD_POSE_HIGH,
    HEAD_POSE_MODERATE,
    HEAD_POSE_OPTIMAL,
    LOW_HAPPY,
    LOW_NEUTRAL,
    STRESS_EXPRESSION_THRESHOLD,
    AttentionRules,
    normalize_gaze,
)
from utils.numeric import clamp, round_half_up


def pose_deviation(pose: HeadPose, baseline_pose: HeadPose) -> Tuple[float, float]:
    """相对基线的 (|yaw|, |pitch|) 偏离"""
    return abs(pose.yaw - baseline_pose.yaw), abs(pose.pitch - baseline_pose.pitch)


def visual_penalty_factor(attention: AttentionState) -> float:
    """检测质量低时削弱视觉类惩罚；uncertain 时仅保留 1/4"""
    if attention.classification == AttentionClassification.UNCERTAIN:
        return 0.25
    return 0.6 + attention.quality_score * 0.4


def head_pose_penalty(yaw_dev: float, pitch_dev: float) -> float:
    if yaw_dev > HEAD_POSE_HIGH[0] or pitch_dev > HEAD_POSE_HIGH[1]:
        return 40.0
    if yaw_dev > HEAD_POSE_MODERATE[0] or pitch_dev > HEAD_POSE_MODERATE[1]:
        return 25.0
    if yaw_dev > HEAD_POSE_OPTIMAL[0] or pitch_dev > HEAD_POSE_OPTIMAL[1]:
        return 10.0
    return 0.0


def gaze_penalty(xn: float, yn: float) -> float:
    if not EXTENDED_ZONE.contains(xn, yn):
        return 30.0
    if not CENTER_ZONE.contains(xn, yn):
        return 15.0
    return 0.0


def blink_focus_penalty(blink_rate: float) -> float:
    """眨眼频率高于 5~15 最优区间时按档扣分（过低由疲劳 U 型曲线处理）"""
    if blink_rate >= BLINK_DROWSY_MIN:
        return 15.0
    if blink_rate >= BLINK_FATIGUE_MIN:
        return 10.0
    if blink_rate > BLINK_OPTIMAL_MAX:
        return 5.0
    return 0.0


def eye_closedness_proxy(sample: FacialSample) -> float:
    """中性 × 悲伤 × 2：眼睑下垂时表情模型的典型输出"""
    return sample.expressions[Emotion.NEUTRAL] * sample.expressions[Emotion.SAD] * 2.0


def calculate_focus(sample: FacialSample, attention: AttentionState, baseline_pose: HeadPose,
                    screen_size: Tuple[int, int], rules: Optional[AttentionRules] = None) -> int:
    """
    专注度 (0-100)：从 100 开始逐项扣分。

    头部姿态与注视点扣分按检测质量缩放；离屏惩罚见 compute_attention_penalty；
    画面中出现手机直接扣 35 分。
    """
    score = 100.0
    factor = visual_penalty_factor(attention)

    # 1. 头部姿态
    yaw_dev, pitch_dev = pose_deviation(sample.head_pose, baseline_pose)
    head_penalty = head_pose_penalty(yaw_dev, pitch_dev)
    score -= round_half_up(head_penalty * factor)

    # 2. 注视点
    xn, yn = normalize_gaze(sample.gaze, screen_size)
    gaze_pen = gaze_penalty(xn, yn)
    score -= round_half_up(gaze_pen * factor)

    # 3. 表情
    expressions = sample.expressions
    negative = expressions[Emotion.ANGRY] + expressions[Emotion.SAD] + expressions[Emotion.FEARFUL]
    if negative > STRESS_EXPRESSION_THRESHOLD:
        score -= 20
    elif expressions[Emotion.NEUTRAL] < LOW_NEUTRAL and expressions[Emotion.HAPPY] < LOW_HAPPY:
        score -= 10

    # 4. 眨眼频率
    score -= blink_focus_penalty(sample.blink_rate)

    # 5. 持续闭眼与 PERCLOS
    eye = sample.eye_state
    if eye.eyes_closed:
        closure_ms = eye.eye_closure_duration_ms
        if closure_ms > 2000:
            score -= 40
        elif closure_ms > 500:
            score -= 15 + round_half_up((closure_ms - 500) / 1500 * 25)
        else:
            score -= 5
    if eye.perclos > 0.15:
        score -= round_half_up(min(20.0, (eye.perclos - 0.15) / 0.25 * 20))

    # 6. 检测不可信 / 表情代理的闭眼
    if sample.quality is not None and not sample.quality.reliable:
        score -= 15
    proxy = eye_closedness_proxy(sample)
    if proxy > EYE_CLOSEDNESS_PROXY_THRESHOLD:
        score -= round_half_up(min(25.0, proxy * 50))

    # 7. 离屏
    score -= round_half_up(compute_attention_penalty(attention, rules) * factor)

    # 8. 手机入镜
    if sample.phone_in_frame:
        score -= 35

    # 9. 大幅抬头/低头
    raw_pitch = sample.head_pose.pitch - baseline_pose.pitch
    if abs(raw_pitch) > 22:
        score -= 30
    elif abs(raw_pitch) > 15:
        score -= 15

    # 深度专注奖励
    low, high = BLINK_DEEP_FOCUS
    if head_penalty == 0 and gaze_pen == 0 and not sample.phone_in_frame \
            and low <= sample.blink_rate <= high:
        score = min(100.0, score + 5)

    return round_half_up(clamp(score, 0.0, 100.0))


def calculate_stress(sample: FacialSample) -> int:
    """压力 (0-100)：负面表情最多 60 分，眨眼 5/15/25 分，惊讶紧张最多 15 分"""
    expressions = sample.expressions
    negative_sum = (expressions[Emotion.ANGRY] + expressions[Emotion.SAD]
                    + expressions[Emotion.FEARFUL] + expressions[Emotion.DISGUSTED])
    negative_score = min(60.0, negative_sum * 100)

    blink_rate = sample.blink_rate
    if blink_rate > BLINK_DROWSY_MIN:
        blink_stress = 25.0
    elif blink_rate > BLINK_FATIGUE_MIN:
        blink_stress = 15.0
    else:
        blink_stress = 5.0

    tension = min(15.0, expressions[Emotion.SURPRISED] * 30)
    return round_half_up(clamp(negative_score + blink_stress + tension, 0.0, 100.0))


def instantaneous_fatigue(sample: FacialSample, baseline_pose: HeadPose) -> float:
    """
    瞬时疲劳估计 (0-100)。

    PERCLOS 0-35、持续闭眼 0-25（>3s 直接 25）、近 5 分钟微睡眠最多 10、
    眨眼 U 型曲线 0-15、慢眨眼 0-10、低头 0-10、表情呆板 0-5。
    """
    eye = sample.eye_state
    score = 0.0

    perclos = eye.perclos
    if perclos < 0.08:
        score += perclos / 0.08 * 5
    elif perclos < 0.15:
        score += 5 + (perclos - 0.08) / 0.07 * 10
    elif perclos < 0.25:
        score += 15 + (perclos - 0.15) / 0.10 * 10
    else:
        score += 25 + min(10.0, (perclos - 0.25) / 0.15 * 10)

    closure_ms = eye.eye_closure_duration_ms
    if closure_ms > 3000:
        score += 25
    elif closure_ms > 1500:
        score += 18 + min(7.0, (closure_ms - 1500) / 1500 * 7)
    elif closure_ms > 500:
        score += 8 + (closure_ms - 500) / 1000 * 10
    elif eye.eyes_closed:
        score += closure_ms / 500 * 8

    if eye.microsleep_count > 0:
        score += min(10, eye.microsleep_count * 5)

    blink_rate = sample.blink_rate
    if 10 <= blink_rate <= 18:
        pass
    elif 18 < blink_rate <= 25:
        score += (blink_rate - 18) / 7 * 5
    elif blink_rate > 25:
        score += 5 + min(10.0, (blink_rate - 25) / 15 * 10)
    elif blink_rate >= 5:
        score += (10 - blink_rate) / 5 * 5
    elif blink_rate >= 0:
        score += 5 + min(7.0, (5 - blink_rate) / 5 * 7)

    slow_blinks = eye.slow_blink_count
    if slow_blinks >= 5:
        score += 10
    elif slow_blinks >= 3:
        score += 7
    elif slow_blinks >= 1:
        score += 3

    pitch_dev = abs(sample.head_pose.pitch - baseline_pose.pitch)
    if pitch_dev > 25:
        score += 10
    elif pitch_dev > 15:
        score += 5

    neutral = sample.expressions[Emotion.NEUTRAL]
    if neutral > 0.85:
        score += 5
    elif neutral > 0.7:
        score += (neutral - 0.7) / 0.15 * 5

    return clamp(score, 0.0, 100.0)


def calculate_confidence(sample: FacialSample, baseline_pose: HeadPose) -> float:
    """模型置信度 (0.2-1.0)"""
    confidence = 1.0

    yaw_dev, pitch_dev = pose_deviation(sample.head_pose, baseline_pose)
    if yaw_dev > 40 or pitch_dev > 30:
        confidence *= 0.6
    elif yaw_dev > 25 or pitch_dev > 20:
        confidence *= 0.8

    # 表情概率总量偏低说明信号稀薄
    if sample.expressions.total() < 0.8:
        confidence *= 0.7

    if sample.quality is not None:
        confidence = confidence * 0.65 + clamp(sample.quality.score, 0.0, 1.0) * 0.35
        if not sample.quality.reliable:
            confidence *= 0.75

    return clamp(confidence, 0.2, 1.0)


def classify_dominant_state(focus: int, stress: int, fatigue: int,
                            thresholds: AdaptiveThresholds) -> CognitiveState:
    """按优先级取第一个命中的状态"""
    if fatigue >= 85:
        return CognitiveState.DROWSY
    if fatigue >= thresholds.fatigue_threshold:
        return CognitiveState.TIRED
    if stress >= thresholds.stress_threshold:
        return CognitiveState.STRESSED
    if focus < 35:
        return CognitiveState.DISTRACTED
    if focus >= 85:
        return CognitiveState.DEEP_FOCUS
    if focus >= thresholds.focus_threshold:
        return CognitiveState.FOCUS
    return CognitiveState.NORMAL


def generate_alerts(focus: int, stress: int, fatigue: int, sample: FacialSample,
                    attention: AttentionState, baseline_pose: HeadPose) -> Alerts:
    yaw_dev, pitch_dev = pose_deviation(sample.head_pose, baseline_pose)
    eye = sample.eye_state
    return Alerts(
        high_stress=stress >= 75,
        high_fatigue=fatigue >= 70,
        poor_posture=attention.reliable and (yaw_dev > 35 or pitch_dev > 25),
        frequent_distraction=attention.classification != AttentionClassification.UNCERTAIN and focus < 30,
        eyes_closed=eye.eyes_closed and eye.eye_closure_duration_ms > 500,
        microsleep=eye.eye_closure_duration_ms > 1500,
    )
