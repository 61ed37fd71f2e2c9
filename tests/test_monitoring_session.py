"""MonitoringSession 集成测试"""

import logging

import pytest

from calibration.baseline_calibrator import LOW_DETECTIONS_MESSAGE
from models.data_models import (
    AttentionClassification,
    ExpressionMap,
    FaceObservation,
    GazePoint,
    HeadPose,
)
from session.monitoring_session import MonitoringSession


def _eye(ear):
    h = 1.5 * ear
    return [(0.0, 0.0), (1.0, h), (2.0, h), (3.0, 0.0), (2.0, -h), (1.0, -h)]


def _observation(neutral=0.8, x=960.0, y=540.0, yaw=0.0, ear=0.3, phone=None):
    return FaceObservation(
        expressions=ExpressionMap.from_dict({"neutral": neutral, "happy": 0.1}),
        gaze=GazePoint(x, y),
        head_pose=HeadPose(yaw, 0.0, 0.0),
        left_eye=_eye(ear),
        right_eye=_eye(ear),
        phone_in_frame=phone,
    )


class TestCalibrationFlow:
    def test_finishes_at_target_samples(self):
        session = MonitoringSession(started_at=0)
        ticks = [session.process(_observation(), t) for t in range(0, 4000, 200)]

        assert all(tick.calibrating for tick in ticks[:-1])
        assert ticks[-1].calibrating is False
        assert session.is_calibrated() is True
        assert session.is_calibrating is False
        assert session.classifier.baseline.samples == 20
        assert session.classifier.thresholds.focus_threshold == 60

    def test_metrics_available_while_calibrating(self):
        session = MonitoringSession(started_at=0)
        tick = session.process(_observation(), 0)
        assert tick.calibrating is True
        assert tick.calibration.samples == 1
        assert 0 <= tick.metrics.focus <= 100
        # 初值 50，单步最多变化 5
        assert tick.metrics.focus == 100
        assert tick.output.smoothed.focus == 55

    def test_low_detections_message_after_timeout(self):
        session = MonitoringSession(started_at=0)
        for t in (0, 200, 400):
            session.process(_observation(), t)
        progress = session.calibration_progress(12000)
        assert progress.time_elapsed is True
        assert progress.message == LOW_DETECTIONS_MESSAGE
        assert session.finish_calibration(12000) is None

    def test_force_finish_produces_degraded_baseline(self, caplog):
        session = MonitoringSession(started_at=0)
        for t in (0, 200, 400):
            session.process(_observation(), t)
        with caplog.at_level(logging.WARNING):
            baseline = session.finish_calibration(12000, force=True)
        assert baseline.degraded is True
        assert baseline.samples == 3
        assert session.is_calibrated() is True
        assert "样本不足" in caplog.text

    def test_timeout_with_floor(self):
        session = MonitoringSession(started_at=0)
        for t in range(0, 1600, 200):
            session.process(_observation(), t)
        assert session.is_calibrating is True
        tick = session.process(_observation(), 12000)
        assert tick.calibrating is False
        assert session.classifier.baseline.samples == 9

    def test_recalibration_replaces_baseline(self):
        session = MonitoringSession(started_at=0)
        for t in range(0, 4000, 200):
            session.process(_observation(), t)
        first = session.classifier.baseline

        session.start_calibration(10000)
        assert session.classifier.baseline is first
        for t in range(10000, 14000, 200):
            session.process(_observation(neutral=0.4), t)
        assert session.classifier.baseline is not first
        assert session.classifier.thresholds.focus_threshold == 70

    def test_no_calibration(self):
        session = MonitoringSession(calibrate=False, started_at=0)
        tick = session.process(_observation(), 0)
        assert tick.calibrating is False
        assert tick.calibration is None
        assert session.finish_calibration(0, force=True) is None


class TestDetectionGap:
    def test_no_face_returns_none(self):
        session = MonitoringSession(started_at=0)
        assert session.process(None, 0) is None

    def test_gap_resets_stabilizer(self):
        session = MonitoringSession(started_at=0)
        session.process(_observation(), 0)
        assert session.stabilizer.eye_analyzer.ear_baseline is not None

        session.process(None, 1000)
        assert session.stabilizer.eye_analyzer.ear_baseline is not None
        session.process(None, 3000)
        assert session.stabilizer.eye_analyzer.ear_baseline is None

    def test_late_face_after_gap_starts_cold(self):
        session = MonitoringSession(started_at=0)
        session.process(_observation(yaw=30.0), 0)
        tick = session.process(_observation(yaw=0.0), 5000)
        assert tick.sample.head_pose.yaw == 0.0

    def test_short_gap_keeps_smoothing(self):
        session = MonitoringSession(started_at=0)
        session.process(_observation(yaw=20.0), 0)
        tick = session.process(_observation(yaw=0.0), 1000)
        assert tick.sample.head_pose.yaw == pytest.approx(15.0)

    def test_invalid_gap(self):
        with pytest.raises(ValueError):
            MonitoringSession(gap_reset_ms=0, started_at=0)


class TestDownstream:
    def test_phone_nudge_and_summary(self):
        session = MonitoringSession(calibrate=False, started_at=0)
        ticks = [session.process(_observation(phone=True), t) for t in range(0, 3000, 200)]

        assert ticks[-1].metrics.attention.classification == AttentionClassification.PHONE_LIKE
        kinds = [nudge.kind for tick in ticks for nudge in tick.nudges]
        assert kinds == ["phone_like"]

        summary = session.summary()
        assert summary.duration_s == 2
        assert summary.avg_focus <= 65

    def test_summary_without_faces_raises(self):
        session = MonitoringSession(started_at=0)
        session.process(None, 0)
        with pytest.raises(ValueError):
            session.summary()
