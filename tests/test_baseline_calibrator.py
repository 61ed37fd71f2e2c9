"""BaselineCalibrator 单元测试"""

import math

import pytest

from calibration.baseline_calibrator import LOW_DETECTIONS_MESSAGE, BaselineCalibrator
from models.data_models import Emotion, ExpressionMap, FacialSample, GazePoint, HeadPose


def _sample(x=960.0, y=540.0, yaw=0.0, pitch=0.0, blink=15.0, neutral=0.8):
    return FacialSample(
        expressions=ExpressionMap.from_dict({"neutral": neutral, "happy": 0.1}),
        gaze=GazePoint(x, y),
        head_pose=HeadPose(yaw, pitch, 0.0),
        blink_rate=blink,
    )


class TestValidation:
    def test_non_positive_duration(self):
        with pytest.raises(ValueError, match="校准时长"):
            BaselineCalibrator(duration_ms=0, started_at=0)

    def test_min_above_target(self):
        with pytest.raises(ValueError, match="最少样本数"):
            BaselineCalibrator(target_samples=5, min_samples=8, started_at=0)


class TestProgress:
    def test_progress_midway(self):
        calibrator = BaselineCalibrator(duration_ms=12000, started_at=1000)
        progress = calibrator.get_progress(7000)
        assert progress.progress == pytest.approx(0.5)
        assert progress.seconds_remaining == 6
        assert progress.time_elapsed is False
        assert progress.message is None

    def test_progress_clamped_after_timeout(self):
        calibrator = BaselineCalibrator(duration_ms=12000, started_at=0)
        progress = calibrator.get_progress(30000)
        assert progress.progress == 1.0
        assert progress.seconds_remaining == 0
        assert progress.time_elapsed is True

    def test_low_detections_message(self):
        calibrator = BaselineCalibrator(started_at=0)
        for _ in range(3):
            calibrator.add_sample(_sample())
        progress = calibrator.get_progress(12000)
        assert progress.message == LOW_DETECTIONS_MESSAGE
        assert progress.samples == 3
        assert progress.target_samples == 20

    def test_no_message_with_enough_samples(self):
        calibrator = BaselineCalibrator(started_at=0)
        for _ in range(8):
            calibrator.add_sample(_sample())
        assert calibrator.get_progress(12000).message is None


class TestStoppingRule:
    def test_finish_at_target(self):
        calibrator = BaselineCalibrator(started_at=0)
        for _ in range(20):
            calibrator.add_sample(_sample())
        assert calibrator.should_finish(1000) is True

    def test_timeout_with_floor(self):
        calibrator = BaselineCalibrator(started_at=0)
        for _ in range(8):
            calibrator.add_sample(_sample())
        assert calibrator.should_finish(11999) is False
        assert calibrator.should_finish(12000) is True

    def test_timeout_below_floor(self):
        calibrator = BaselineCalibrator(started_at=0)
        for _ in range(7):
            calibrator.add_sample(_sample())
        assert calibrator.should_finish(20000) is False


class TestBuildBaseline:
    def test_none_before_finish(self):
        calibrator = BaselineCalibrator(started_at=0)
        calibrator.add_sample(_sample())
        assert calibrator.build_baseline() is None

    def test_none_with_zero_samples(self):
        calibrator = BaselineCalibrator(started_at=0)
        calibrator.finish(100)
        assert calibrator.is_done() is True
        assert calibrator.build_baseline() is None

    def test_averages(self):
        calibrator = BaselineCalibrator(started_at=0)
        calibrator.add_sample(_sample(x=900, y=500, yaw=4, pitch=-2, blink=10, neutral=0.6))
        calibrator.add_sample(_sample(x=1000, y=600, yaw=-2, pitch=4, blink=20, neutral=1.0))
        calibrator.finish(500)
        baseline = calibrator.build_baseline()

        assert baseline.gaze.x == pytest.approx(950)
        assert baseline.gaze.y == pytest.approx(550)
        assert baseline.head_pose.yaw == pytest.approx(1)
        assert baseline.head_pose.pitch == pytest.approx(1)
        assert baseline.blink_rate == pytest.approx(15)
        assert baseline.expressions[Emotion.NEUTRAL] == pytest.approx(0.8)
        assert baseline.samples == 2
        assert baseline.started_at == 0
        assert baseline.finished_at == 500
        assert baseline.degraded is True

    def test_add_sample_after_finish_is_noop(self):
        calibrator = BaselineCalibrator(started_at=0)
        for _ in range(8):
            calibrator.add_sample(_sample(blink=12))
        calibrator.finish(100)
        calibrator.add_sample(_sample(blink=60))
        baseline = calibrator.build_baseline()
        assert calibrator.get_samples() == 8
        assert baseline.blink_rate == pytest.approx(12)
        assert baseline.degraded is False

    def test_non_finite_samples_skipped(self):
        calibrator = BaselineCalibrator(started_at=0)
        calibrator.add_sample(_sample(yaw=4.0))
        calibrator.add_sample(_sample(yaw=math.nan))
        calibrator.add_sample(_sample(x=math.inf))
        calibrator.finish(100)
        baseline = calibrator.build_baseline()
        assert calibrator.get_samples() == 1
        assert baseline.head_pose.yaw == pytest.approx(4.0)
        assert baseline.gaze.x == pytest.approx(960)

    def test_baseline_is_frozen(self):
        calibrator = BaselineCalibrator(started_at=0)
        calibrator.add_sample(_sample())
        calibrator.finish(100)
        baseline = calibrator.build_baseline()
        with pytest.raises(AttributeError):
            baseline.blink_rate = 99
