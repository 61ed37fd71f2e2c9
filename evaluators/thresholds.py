"""分类阈值常量与基于基线的自适应阈值"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from models.data_models import AdaptiveThresholds, Baseline, Emotion, ExpressionMap, GazePoint, HeadPose
from utils.numeric import clamp

logger = logging.getLogger(__name__)

# 眨眼频率分档（次/分钟）
BLINK_DEEP_FOCUS = (5, 12)
BLINK_OPTIMAL_MAX = 15
BLINK_FATIGUE_MIN = 20
BLINK_DROWSY_MIN = 30

# 头部姿态偏离分档（度）: (yaw, pitch)
HEAD_POSE_OPTIMAL = (10.0, 10.0)
HEAD_POSE_MODERATE = (25.0, 20.0)
HEAD_POSE_HIGH = (45.0, 35.0)

# 表情阈值
STRESS_EXPRESSION_THRESHOLD = 0.2
LOW_NEUTRAL = 0.3
LOW_HAPPY = 0.2
EYE_CLOSEDNESS_PROXY_THRESHOLD = 0.2

# 默认分类阈值（未校准）
DEFAULT_FOCUS_THRESHOLD = 65.0
DEFAULT_STRESS_THRESHOLD = 60.0
DEFAULT_FATIGUE_THRESHOLD = 70.0
DEFAULT_BLINK_RATE = 15.0
DEFAULT_EXPRESSIONS = {"neutral": 0.6, "happy": 0.2, "sad": 0.05, "angry": 0.05}

FOCUS_THRESHOLD_BAND = (50.0, 80.0)
FATIGUE_THRESHOLD_BAND = (60.0, 80.0)


@dataclass(frozen=True)
class GazeZone:
    """归一化屏幕矩形"""
    x_min: float
    x_max: float
    y_min: float
    y_max: float

    def contains(self, xn: float, yn: float) -> bool:
        return self.x_min <= xn <= self.x_max and self.y_min <= yn <= self.y_max


CENTER_ZONE = GazeZone(0.2, 0.8, 0.15, 0.85)
EXTENDED_ZONE = GazeZone(0.1, 0.9, 0.05, 0.95)


@dataclass(frozen=True)
class AttentionRules:
    """注意力区域判定与惩罚的可调参数"""
    offscreen_grace_ms: float = 2000.0
    offscreen_max_ms: float = 8000.0
    offscreen_max_penalty: float = 35.0
    penalty_cap: float = 45.0
    phone_bonus: float = 10.0
    side_bonus: float = 5.0
    phone_pitch_deg: float = 18.0
    phone_gaze_y: float = 0.75
    look_up_pitch_deg: float = 15.0
    look_up_gaze_y: float = 0.12
    side_yaw_deg: float = 25.0
    on_screen_yaw_cap_deg: float = 35.0
    on_screen_pitch_cap_deg: float = 28.0
    min_quality_for_decision: float = 0.55
    default_quality_score: float = 0.75
    hold_to_on_screen_ms: float = 450.0
    hold_to_distracted_ms: float = 1000.0
    hold_to_uncertain_ms: float = 300.0


def normalize_gaze(gaze: GazePoint, screen_size: Tuple[int, int]) -> Tuple[float, float]:
    """像素注视点 → [0, 1] 归一化坐标（不截断，屏外为越界值）"""
    width, height = screen_size
    return gaze.x / max(1.0, float(width)), gaze.y / max(1.0, float(height))


def check_screen_size(screen_size: Tuple[int, int]) -> Tuple[int, int]:
    width, height = screen_size
    if width <= 0 or height <= 0:
        raise ValueError(f"屏幕尺寸必须为正数: {screen_size}")
    return int(width), int(height)


def compute_adaptive_thresholds(baseline: Optional[Baseline]) -> AdaptiveThresholds:
    """
    根据用户基线调整分类阈值。

    - 基线眨眼频率 > 18 时疲劳阈值 +5，< 12 时 -5，截断到 [60, 80]
    - 基线中性表情 > 0.7 时专注阈值 -5，< 0.5 时 +5，截断到 [50, 80]

    Args:
        baseline: 校准得到的基线，None 表示未校准

    Returns:
        AdaptiveThresholds
    """
    if baseline is None:
        return AdaptiveThresholds(
            focus_threshold=DEFAULT_FOCUS_THRESHOLD,
            stress_threshold=DEFAULT_STRESS_THRESHOLD,
            fatigue_threshold=DEFAULT_FATIGUE_THRESHOLD,
            blink_rate_baseline=DEFAULT_BLINK_RATE,
            head_pose_baseline=HeadPose(),
            expression_baseline=ExpressionMap.from_dict(DEFAULT_EXPRESSIONS),
        )

    user_blink = baseline.blink_rate
    user_neutral = baseline.expressions[Emotion.NEUTRAL] or DEFAULT_EXPRESSIONS["neutral"]

    if user_blink > 18:
        fatigue_adjust = 5.0
    elif user_blink < 12:
        fatigue_adjust = -5.0
    else:
        fatigue_adjust = 0.0

    if user_neutral > 0.7:
        focus_adjust = -5.0
    elif user_neutral < 0.5:
        focus_adjust = 5.0
    else:
        focus_adjust = 0.0

    thresholds = AdaptiveThresholds(
        focus_threshold=clamp(DEFAULT_FOCUS_THRESHOLD + focus_adjust, *FOCUS_THRESHOLD_BAND),
        stress_threshold=DEFAULT_STRESS_THRESHOLD,
        fatigue_threshold=clamp(DEFAULT_FATIGUE_THRESHOLD + fatigue_adjust, *FATIGUE_THRESHOLD_BAND),
        blink_rate_baseline=user_blink,
        head_pose_baseline=HeadPose(baseline.head_pose.yaw, baseline.head_pose.pitch, baseline.head_pose.roll),
        expression_baseline=baseline.expressions.copy(),
    )
    logger.debug("自适应阈值: focus=%.0f stress=%.0f fatigue=%.0f",
                 thresholds.focus_threshold, thresholds.stress_threshold, thresholds.fatigue_threshold)
    return thresholds
