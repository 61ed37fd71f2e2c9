"""基线校准模块，累积早期样本，求出用户个人的注视、姿态、眨眼与表情均值"""

import logging
import math
from typing import Optional

import numpy as np

from models.data_models import (
    EMOTION_COUNT,
    Baseline,
    CalibrationProgress,
    ExpressionMap,
    FacialSample,
    GazePoint,
    HeadPose,
)
from utils.numeric import clamp01, is_finite, now_ms

logger = logging.getLogger(__name__)

LOW_DETECTIONS_MESSAGE = "检测次数过少，请改善光照"


class BaselineCalibrator:
    """
    累加样本的运行和，结束后求均值得到 Baseline。

    校准器本身不决定何时结束，由调用方依据样本数与时长调用 finish()。
    """

    def __init__(
        self,
        duration_ms: float = 12000.0,
        target_samples: int = 20,
        min_samples: int = 8,
        started_at: Optional[float] = None,
    ):
        if duration_ms <= 0:
            raise ValueError(f"校准时长必须为正数: {duration_ms}")
        if target_samples <= 0 or min_samples <= 0:
            raise ValueError(f"样本数必须为正数: target={target_samples}, min={min_samples}")
        if min_samples > target_samples:
            raise ValueError(f"最少样本数不能超过目标样本数: {min_samples} > {target_samples}")

        self.duration_ms = duration_ms
        self.target_samples = target_samples
        self.min_samples = min_samples
        self.started_at = now_ms() if started_at is None else started_at

        self._samples = 0
        self._sum_gaze = np.zeros(2)
        self._sum_pose = np.zeros(3)
        self._sum_blink = 0.0
        self._sum_expressions = np.zeros(EMOTION_COUNT)
        self._finished_at: Optional[float] = None

    def add_sample(self, sample: FacialSample) -> None:
        """累加一个样本，完成后调用无效；含 NaN/inf 的样本不计入"""
        if self._finished_at is not None:
            return
        if not is_finite(sample.gaze.x, sample.gaze.y, sample.head_pose.yaw, sample.head_pose.pitch,
                         sample.head_pose.roll, sample.blink_rate):
            logger.debug("丢弃非有限校准样本")
            return

        self._samples += 1
        self._sum_gaze += (sample.gaze.x, sample.gaze.y)
        self._sum_pose += (sample.head_pose.yaw, sample.head_pose.pitch, sample.head_pose.roll)
        self._sum_blink += sample.blink_rate
        self._sum_expressions += sample.expressions.values

    def get_progress(self, now: Optional[float] = None) -> CalibrationProgress:
        """
        查询校准进度。

        时长耗尽而样本仍少于下限时，附带“检测过少”提示。
        """
        now = now_ms() if now is None else now
        elapsed = max(0.0, now - self.started_at)
        time_elapsed = elapsed >= self.duration_ms
        message = None
        if time_elapsed and self._samples < self.min_samples:
            message = LOW_DETECTIONS_MESSAGE

        return CalibrationProgress(
            progress=clamp01(elapsed / self.duration_ms),
            seconds_remaining=max(0, math.ceil((self.duration_ms - elapsed) / 1000.0)),
            elapsed_ms=elapsed,
            time_elapsed=time_elapsed,
            samples=self._samples,
            target_samples=self.target_samples,
            message=message,
        )

    def get_samples(self) -> int:
        return self._samples

    def should_finish(self, now: Optional[float] = None) -> bool:
        """达到目标样本数，或时长耗尽且不低于样本下限"""
        if self._samples >= self.target_samples:
            return True
        return self.get_progress(now).time_elapsed and self._samples >= self.min_samples

    def finish(self, now: Optional[float] = None) -> None:
        if self._finished_at is None:
            self._finished_at = now_ms() if now is None else now
            logger.info("校准结束: 样本 %d 个, 耗时 %.0f ms",
                        self._samples, self._finished_at - self.started_at)

    def is_done(self) -> bool:
        return self._finished_at is not None

    def build_baseline(self) -> Optional[Baseline]:
        """未完成或无样本时返回 None"""
        if self._finished_at is None or self._samples <= 0:
            return None

        n = float(self._samples)
        gaze = self._sum_gaze / n
        pose = self._sum_pose / n
        return Baseline(
            gaze=GazePoint(float(gaze[0]), float(gaze[1])),
            blink_rate=self._sum_blink / n,
            head_pose=HeadPose(float(pose[0]), float(pose[1]), float(pose[2])),
            expressions=ExpressionMap(self._sum_expressions / n),
            samples=self._samples,
            started_at=self.started_at,
            finished_at=self._finished_at,
            degraded=self._samples < self.min_samples,
        )
