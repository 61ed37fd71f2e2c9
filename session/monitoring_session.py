"""监测会话：串联稳定器、校准器、分类器、平滑器、提醒策略与会话统计"""

import logging
from typing import Optional, Tuple

from calibration.baseline_calibrator import BaselineCalibrator
from display.metrics_smoother import MetricsSmoother
from evaluators.cognitive_classifier import CognitiveClassifier
from evaluators.thresholds import AttentionRules
from models.data_models import (
    Baseline,
    CalibrationProgress,
    FaceObservation,
    SessionSummary,
    SessionTick,
)
from session.nudge_policy import NudgePolicy
from session.session_recorder import SessionRecorder
from stabilizers.signal_stabilizer import SignalStabilizer
from utils.numeric import now_ms

logger = logging.getLogger(__name__)


class MonitoringSession:
    """
    单个监测会话的所有状态都归本对象所有，不与其他会话共享。

    数据流: 观测 → 稳定器 → 校准器（校准期间）→ 分类器 → 平滑器 → 提醒/统计。
    校准期间仍然输出指标，此时分类器使用默认阈值。
    """

    def __init__(
        self,
        screen_size: Tuple[int, int] = (1920, 1080),
        calibrate: bool = True,
        calibration_duration_ms: float = 12000.0,
        calibration_target_samples: int = 20,
        calibration_min_samples: int = 8,
        gap_reset_ms: float = 3000.0,
        rules: Optional[AttentionRules] = None,
        stabilizer: Optional[SignalStabilizer] = None,
        smoother: Optional[MetricsSmoother] = None,
        nudges: Optional[NudgePolicy] = None,
        recorder: Optional[SessionRecorder] = None,
        started_at: Optional[float] = None,
    ):
        if gap_reset_ms <= 0:
            raise ValueError(f"检测中断重置时长必须为正数: {gap_reset_ms}")
        started_at = now_ms() if started_at is None else started_at

        self.calibration_duration_ms = calibration_duration_ms
        self.calibration_target_samples = calibration_target_samples
        self.calibration_min_samples = calibration_min_samples
        self.gap_reset_ms = gap_reset_ms

        self.stabilizer = stabilizer if stabilizer is not None else SignalStabilizer()
        self.classifier = CognitiveClassifier(screen_size=screen_size, rules=rules)
        self.smoother = smoother if smoother is not None else MetricsSmoother()
        self.nudges = nudges if nudges is not None else NudgePolicy()
        self.recorder = recorder if recorder is not None else SessionRecorder(started_at=started_at)

        self.calibrator: Optional[BaselineCalibrator] = None
        self._last_face_at: Optional[float] = None
        self._gap_reset_done = False

        if calibrate:
            self.start_calibration(started_at)

    @property
    def is_calibrating(self) -> bool:
        return self.calibrator is not None and not self.calibrator.is_done()

    def is_calibrated(self) -> bool:
        return self.classifier.baseline is not None

    def start_calibration(self, now: Optional[float] = None):
        """开始（重新）校准，旧基线在新基线生成前继续生效"""
        self.calibrator = BaselineCalibrator(
            duration_ms=self.calibration_duration_ms,
            target_samples=self.calibration_target_samples,
            min_samples=self.calibration_min_samples,
            started_at=now_ms() if now is None else now,
        )

    def calibration_progress(self, now: Optional[float] = None) -> Optional[CalibrationProgress]:
        if self.calibrator is None:
            return None
        return self.calibrator.get_progress(now)

    def finish_calibration(self, now: Optional[float] = None, force: bool = False) -> Optional[Baseline]:
        """
        结束校准并替换分类器基线。

        Args:
            now: 当前时间（毫秒）
            force: 为 True 时即使样本不足下限也结束

        Returns:
            新基线；未满足结束条件或没有任何样本时返回 None
        """
        calibrator = self.calibrator
        if calibrator is None or calibrator.is_done():
            return None
        if not force and not calibrator.should_finish(now):
            return None

        calibrator.finish(now)
        baseline = calibrator.build_baseline()
        if baseline is None:
            logger.warning("校准结束但没有有效样本，继续使用默认阈值")
            return None
        if baseline.degraded:
            logger.warning("校准样本不足 (%d < %d)，基线可信度降低",
                           baseline.samples, calibrator.min_samples)
        self.classifier.update_baseline(baseline)
        return baseline

    def _check_gap(self, now: float):
        if self._last_face_at is None or self._gap_reset_done:
            return
        if now - self._last_face_at >= self.gap_reset_ms:
            logger.info("人脸丢失 %.0f ms，重置信号稳定器", now - self._last_face_at)
            self.stabilizer.reset()
            self._gap_reset_done = True

    def process(self, observation: Optional[FaceObservation], now: Optional[float] = None) -> Optional[SessionTick]:
        """
        处理一帧感知结果。

        Args:
            observation: 原始观测，None 表示本帧未检测到人脸
            now: 当前时间（毫秒），缺省取单调时钟

        Returns:
            SessionTick；未检测到人脸时返回 None
        """
        now = now_ms() if now is None else now
        self._check_gap(now)
        if observation is None:
            return None

        self._last_face_at = now
        self._gap_reset_done = False

        sample = self.stabilizer.stabilize(observation, now)

        calibrating = self.is_calibrating
        if calibrating:
            self.calibrator.add_sample(sample)
            if self.finish_calibration(now) is not None:
                calibrating = False

        metrics = self.classifier.calculate(sample, now)
        output = self.smoother.update(metrics)
        nudge = self.nudges.evaluate(metrics, now)
        self.recorder.record(metrics, now)

        return SessionTick(
            sample=sample,
            metrics=metrics,
            output=output,
            calibrating=calibrating,
            calibration=self.calibration_progress(now),
            nudges=[nudge] if nudge is not None else [],
        )

    def summary(self, now: Optional[float] = None) -> SessionSummary:
        return self.recorder.summary(now)
