"""核心数据模型定义"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, List, Mapping, Optional, Tuple

import numpy as np


class Emotion(IntEnum):
    """表情标签，取值即表情向量中的下标"""
    NEUTRAL = 0
    HAPPY = 1
    SAD = 2
    ANGRY = 3
    FEARFUL = 4
    DISGUSTED = 5
    SURPRISED = 6


EMOTION_COUNT = len(Emotion)


class AttentionClassification(str, Enum):
    """注意力区域"""
    ON_SCREEN = "on_screen"
    OFF_SCREEN = "off_screen"
    PHONE_LIKE = "phone_like"
    SIDE_LIKE = "side_like"
    UNCERTAIN = "uncertain"


class CognitiveState(str, Enum):
    """主导认知状态"""
    DEEP_FOCUS = "deep_focus"
    FOCUS = "focus"
    NORMAL = "normal"
    DISTRACTED = "distracted"
    STRESSED = "stressed"
    TIRED = "tired"
    DROWSY = "drowsy"


class Level(str, Enum):
    """展示层离散等级"""
    LOW = "Low"
    NORMAL = "Normal"
    HIGH = "High"


@dataclass(eq=False)
class ExpressionMap:
    """7 种表情的概率向量，按 Emotion 下标存放"""
    values: np.ndarray = field(default_factory=lambda: np.zeros(EMOTION_COUNT))

    def __post_init__(self):
        arr = np.nan_to_num(np.asarray(self.values, dtype=np.float64), nan=0.0, posinf=1.0, neginf=0.0)
        if arr.shape != (EMOTION_COUNT,):
            raise ValueError(f"表情向量长度必须为 {EMOTION_COUNT}: {arr.shape}")
        self.values = np.clip(arr, 0.0, 1.0)

    @classmethod
    def from_dict(cls, mapping: Mapping[str, float]) -> "ExpressionMap":
        """由 {"neutral": 0.8, ...} 构建，缺失键为 0，未知键忽略"""
        values = np.zeros(EMOTION_COUNT)
        for emotion in Emotion:
            raw = mapping.get(emotion.name.lower())
            if raw is not None:
                values[emotion] = float(raw)
        return cls(values)

    def __getitem__(self, emotion: Emotion) -> float:
        return float(self.values[emotion])

    def to_dict(self) -> Dict[str, float]:
        return {emotion.name.lower(): float(self.values[emotion]) for emotion in Emotion}

    def total(self) -> float:
        """概率总和（不要求为 1）"""
        return float(self.values.sum())

    def copy(self) -> "ExpressionMap":
        return ExpressionMap(self.values.copy())


@dataclass
class HeadPose:
    """头部姿态，单位为度"""
    yaw: float = 0.0
    pitch: float = 0.0
    roll: float = 0.0


@dataclass
class GazePoint:
    """屏幕像素坐标下的注视点"""
    x: float = 0.0
    y: float = 0.0


@dataclass
class DetectionQuality:
    """检测器置信度代理"""
    reliable: bool = True
    score: float = 0.75
    face_area_ratio: float = 0.0
    centeredness: float = 0.0


@dataclass
class FaceObservation:
    """感知子系统每帧输出的原始观测"""
    expressions: ExpressionMap
    gaze: GazePoint
    head_pose: HeadPose
    left_eye: List[Tuple[float, float]]
    right_eye: List[Tuple[float, float]]
    quality: Optional[DetectionQuality] = None
    phone_in_frame: Optional[bool] = None


@dataclass
class EyeState:
    """眼部状态，每帧由稳定器重新计算"""
    ear_avg: float = 0.0
    eyes_closed: bool = False
    eye_closure_duration_ms: float = 0.0
    perclos: float = 0.0
    slow_blink_count: int = 0
    microsleep_count: int = 0


@dataclass
class FacialSample:
    """稳定后的单帧样本，分类器的输入"""
    expressions: ExpressionMap
    gaze: GazePoint
    head_pose: HeadPose
    blink_rate: float
    eye_state: EyeState = field(default_factory=EyeState)
    quality: Optional[DetectionQuality] = None
    phone_in_frame: Optional[bool] = None


@dataclass(frozen=True, eq=False)
class Baseline:
    """用户个人基线，校准完成后不可变"""
    gaze: GazePoint
    blink_rate: float
    head_pose: HeadPose
    expressions: ExpressionMap
    samples: int
    started_at: float
    finished_at: float
    degraded: bool = False


@dataclass
class CalibrationProgress:
    """校准进度报告"""
    progress: float
    seconds_remaining: int
    elapsed_ms: float
    time_elapsed: bool
    samples: int
    target_samples: int
    message: Optional[str] = None


@dataclass
class AdaptiveThresholds:
    """基于基线调整后的分类阈值"""
    focus_threshold: float
    stress_threshold: float
    fatigue_threshold: float
    blink_rate_baseline: float
    head_pose_baseline: HeadPose
    expression_baseline: ExpressionMap


@dataclass
class AttentionState:
    """稳定后的注意力区域状态"""
    classification: AttentionClassification = AttentionClassification.ON_SCREEN
    on_screen: bool = True
    off_screen_ms: float = 0.0
    phone_looking: bool = False
    side_looking: bool = False
    quality_score: float = 0.75
    reliable: bool = True


@dataclass
class Alerts:
    """告警标志"""
    high_stress: bool = False
    high_fatigue: bool = False
    poor_posture: bool = False
    frequent_distraction: bool = False
    eyes_closed: bool = False
    microsleep: bool = False

    def active(self) -> List[str]:
        """返回处于激活状态的告警名称"""
        return [name for name, value in vars(self).items() if value]


@dataclass
class CognitiveMetrics:
    """分类器每帧输出"""
    focus: int
    stress: int
    fatigue: int
    distraction: int
    dominant_state: CognitiveState
    confidence: float
    attention: AttentionState
    alerts: Alerts


@dataclass
class MetricScores:
    """展示层使用的分数组"""
    focus: int
    stress: int
    fatigue: int

    @property
    def distraction(self) -> int:
        return 100 - self.focus


@dataclass
class MetricLevels:
    """分数组对应的离散等级"""
    focus: Level
    stress: Level
    fatigue: Level


@dataclass
class SmoothedMetrics:
    """平滑器输出"""
    smoothed: MetricScores
    levels: MetricLevels


@dataclass
class Nudge:
    """提醒决策（仅决策，不负责播放）"""
    kind: str
    severity: str
    text: str
    at_ms: float


@dataclass
class SessionTick:
    """会话单帧处理结果"""
    sample: FacialSample
    metrics: CognitiveMetrics
    output: SmoothedMetrics
    calibrating: bool
    calibration: Optional[CalibrationProgress] = None
    nudges: List[Nudge] = field(default_factory=list)


@dataclass
class SessionSummary:
    """会话统计摘要"""
    duration_s: int
    avg_focus: float
    avg_stress: float
    avg_fatigue: float
    avg_distraction: float
    pct_focused: float
    pct_distracted: float
    pct_stressed: float
    pct_tired: float
    interruptions: int
    focus_periods: int
    dominant_state: CognitiveState
    avg_confidence: float
    effectiveness: float
