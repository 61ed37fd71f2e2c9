"""信号稳定模块：对表情、头部姿态、注视点做 EMA 平滑，并驱动眨眼状态机"""

from typing import List, Optional, Tuple

import numpy as np

from detectors.eye_analyzer import EyeAnalyzer
from models.data_models import (
    EyeState,
    ExpressionMap,
    FaceObservation,
    FacialSample,
    GazePoint,
    HeadPose,
)
from utils.numeric import check_alpha, is_finite, now_ms, smooth_value


class SignalStabilizer:
    """每个监测会话独占一个实例；首帧直接作为平滑初值，无预热偏差"""

    def __init__(
        self,
        expression_alpha: float = 0.35,
        pose_alpha: float = 0.25,
        gaze_alpha: float = 0.2,
        eye_analyzer: Optional[EyeAnalyzer] = None,
    ):
        self.expression_alpha = check_alpha("expression_alpha", expression_alpha)
        self.pose_alpha = check_alpha("pose_alpha", pose_alpha)
        self.gaze_alpha = check_alpha("gaze_alpha", gaze_alpha)
        self.eye_analyzer = eye_analyzer if eye_analyzer is not None else EyeAnalyzer()

        self._expressions: Optional[np.ndarray] = None
        self._pose: Optional[HeadPose] = None
        self._gaze: Optional[GazePoint] = None

    def smooth_expressions(self, expressions: ExpressionMap) -> ExpressionMap:
        """表情概率 EMA，结果截断到 [0, 1]"""
        if self._expressions is None:
            self._expressions = expressions.values.copy()
        else:
            blended = self._expressions + self.expression_alpha * (expressions.values - self._expressions)
            self._expressions = np.clip(blended, 0.0, 1.0)
        return ExpressionMap(self._expressions.copy())

    def smooth_pose(self, pose: HeadPose) -> HeadPose:
        """含 NaN/inf 的姿态整帧丢弃，沿用上一次平滑值（尚无状态时返回零姿态）"""
        if not is_finite(pose.yaw, pose.pitch, pose.roll):
            if self._pose is None:
                return HeadPose()
            return HeadPose(self._pose.yaw, self._pose.pitch, self._pose.roll)
        if self._pose is None:
            self._pose = HeadPose(pose.yaw, pose.pitch, pose.roll)
        else:
            self._pose = HeadPose(
                yaw=smooth_value(self._pose.yaw, pose.yaw, self.pose_alpha),
                pitch=smooth_value(self._pose.pitch, pose.pitch, self.pose_alpha),
                roll=smooth_value(self._pose.roll, pose.roll, self.pose_alpha),
            )
        return HeadPose(self._pose.yaw, self._pose.pitch, self._pose.roll)

    def smooth_gaze(self, gaze: GazePoint) -> GazePoint:
        if not is_finite(gaze.x, gaze.y):
            if self._gaze is None:
                return GazePoint()
            return GazePoint(self._gaze.x, self._gaze.y)
        if self._gaze is None:
            self._gaze = GazePoint(gaze.x, gaze.y)
        else:
            self._gaze = GazePoint(
                x=smooth_value(self._gaze.x, gaze.x, self.gaze_alpha),
                y=smooth_value(self._gaze.y, gaze.y, self.gaze_alpha),
            )
        return GazePoint(self._gaze.x, self._gaze.y)

    def update_blink_state(self, left_eye: List[Tuple[float, float]], right_eye: List[Tuple[float, float]],
                           now: Optional[float] = None) -> bool:
        """推进眨眼状态机，返回当前是否闭眼"""
        return self.eye_analyzer.update(left_eye, right_eye, now_ms() if now is None else now)

    def get_blink_rate(self, now: Optional[float] = None) -> int:
        return self.eye_analyzer.blink_rate(now_ms() if now is None else now)

    def get_eye_state(self, now: Optional[float] = None) -> EyeState:
        return self.eye_analyzer.eye_state(now_ms() if now is None else now)

    def stabilize(self, observation: FaceObservation, now: Optional[float] = None) -> FacialSample:
        """
        处理一帧原始观测，输出供校准器/分类器使用的样本。

        Args:
            observation: 感知子系统的原始观测
            now: 当前时间（毫秒），缺省取单调时钟

        Returns:
            FacialSample，附带眨眼频率与眼部状态
        """
        now = now_ms() if now is None else now
        self.update_blink_state(observation.left_eye, observation.right_eye, now)

        return FacialSample(
            expressions=self.smooth_expressions(observation.expressions),
            gaze=self.smooth_gaze(observation.gaze),
            head_pose=self.smooth_pose(observation.head_pose),
            blink_rate=float(self.get_blink_rate(now)),
            eye_state=self.get_eye_state(now),
            quality=observation.quality,
            phone_in_frame=observation.phone_in_frame,
        )

    def reset(self):
        """清空平滑状态、眨眼历史与闭眼计时器（检测长时间丢失后调用）"""
        self._expressions = None
        self._pose = None
        self._gaze = None
        self.eye_analyzer.reset()
