"""认知评分函数单元测试"""

import pytest

from evaluators.cognitive_scoring import (
    blink_focus_penalty,
    calculate_confidence,
    calculate_focus,
    calculate_stress,
    classify_dominant_state,
    generate_alerts,
    instantaneous_fatigue,
    visual_penalty_factor,
)
from evaluators.thresholds import AttentionRules, compute_adaptive_thresholds
from models.data_models import (
    AttentionClassification,
    AttentionState,
    CognitiveState,
    DetectionQuality,
    ExpressionMap,
    EyeState,
    FacialSample,
    GazePoint,
    HeadPose,
)

SCREEN = (1920, 1080)
ZERO = HeadPose()


def _sample(expressions=None, xn=0.5, yn=0.5, yaw=0.0, pitch=0.0, blink=15.0,
            eye=None, quality=None, phone=None):
    if expressions is None:
        expressions = {"neutral": 0.8, "happy": 0.1}
    return FacialSample(
        expressions=ExpressionMap.from_dict(expressions),
        gaze=GazePoint(xn * SCREEN[0], yn * SCREEN[1]),
        head_pose=HeadPose(yaw, pitch, 0.0),
        blink_rate=blink,
        eye_state=eye if eye is not None else EyeState(ear_avg=0.3),
        quality=quality,
        phone_in_frame=phone,
    )


def _attention(**kwargs):
    kwargs.setdefault("quality_score", 1.0)
    return AttentionState(**kwargs)


class TestVisualPenaltyFactor:
    def test_uncertain(self):
        state = AttentionState(classification=AttentionClassification.UNCERTAIN)
        assert visual_penalty_factor(state) == 0.25

    def test_quality_scaled(self):
        assert visual_penalty_factor(AttentionState(quality_score=0.5)) == pytest.approx(0.8)


class TestFocus:
    def test_perfect_sample_with_deep_focus_blink(self):
        assert calculate_focus(_sample(blink=8), _attention(), ZERO, SCREEN) == 100

    def test_perfect_sample_optimal_blink(self):
        assert calculate_focus(_sample(blink=15), _attention(), ZERO, SCREEN) == 100

    def test_moderate_head_deviation(self):
        assert calculate_focus(_sample(yaw=30.0), _attention(), ZERO, SCREEN) == 75

    def test_gaze_outside_center_zone(self):
        assert calculate_focus(_sample(xn=0.15), _attention(), ZERO, SCREEN) == 85

    def test_uncertain_discounts_visual_penalties(self):
        uncertain = AttentionState(classification=AttentionClassification.UNCERTAIN, on_screen=False,
                                   reliable=False, quality_score=0.2)
        assert calculate_focus(_sample(xn=0.02), uncertain, ZERO, SCREEN) == 92

    def test_half_point_penalty_rounds_up(self):
        # 偏航 15° 扣 10 分，uncertain 系数 0.25 得 2.5，四舍五入为 3
        uncertain = AttentionState(classification=AttentionClassification.UNCERTAIN, on_screen=False,
                                   reliable=False, quality_score=0.2)
        assert calculate_focus(_sample(yaw=15.0), uncertain, ZERO, SCREEN) == 97

    def test_rules_default_when_none(self):
        attention = _attention(on_screen=False, classification=AttentionClassification.OFF_SCREEN,
                               off_screen_ms=8000)
        with_none = calculate_focus(_sample(), attention, ZERO, SCREEN, rules=None)
        assert with_none == calculate_focus(_sample(), attention, ZERO, SCREEN, AttentionRules())
        assert with_none < 100

    def test_negative_expressions(self):
        sample = _sample(expressions={"neutral": 0.5, "angry": 0.15, "fearful": 0.1})
        assert calculate_focus(sample, _attention(), ZERO, SCREEN) == 80

    def test_flat_low_neutral_low_happy(self):
        sample = _sample(expressions={"neutral": 0.2, "happy": 0.1, "surprised": 0.6})
        assert calculate_focus(sample, _attention(), ZERO, SCREEN) == 90

    def test_sustained_closure(self):
        eye = EyeState(eyes_closed=True, eye_closure_duration_ms=1000)
        assert calculate_focus(_sample(eye=eye), _attention(), ZERO, SCREEN) == 77

    def test_long_closure(self):
        eye = EyeState(eyes_closed=True, eye_closure_duration_ms=2500)
        assert calculate_focus(_sample(eye=eye), _attention(), ZERO, SCREEN) == 60

    def test_phone_in_frame_flat_penalty(self):
        assert calculate_focus(_sample(blink=8, phone=True), _attention(), ZERO, SCREEN) == 65

    def test_extreme_pitch(self):
        # 俯仰 25° 同时触发姿态 25 分与大幅俯仰 30 分
        assert calculate_focus(_sample(pitch=25.0), _attention(), ZERO, SCREEN) == 45

    def test_floor_at_zero(self):
        eye = EyeState(eyes_closed=True, eye_closure_duration_ms=5000, perclos=0.9)
        sample = _sample(expressions={"sad": 0.9, "neutral": 0.9}, xn=-1, yaw=90, pitch=60,
                         blink=40, eye=eye, quality=DetectionQuality(reliable=False, score=0.1), phone=True)
        assert calculate_focus(sample, _attention(), ZERO, SCREEN) == 0

    def test_blink_penalty_tiers(self):
        assert blink_focus_penalty(3) == 0
        assert blink_focus_penalty(15) == 0
        assert blink_focus_penalty(16) == 5
        assert blink_focus_penalty(20) == 10
        assert blink_focus_penalty(30) == 15


class TestStress:
    def test_calm(self):
        assert calculate_stress(_sample()) == 5

    def test_negative_capped_with_tiers(self):
        sample = _sample(expressions={"angry": 0.3, "sad": 0.2, "fearful": 0.1, "disgusted": 0.1,
                                      "surprised": 0.2}, blink=25)
        assert calculate_stress(sample) == 81

    def test_maximum(self):
        sample = _sample(expressions={"angry": 1.0, "surprised": 1.0}, blink=40)
        assert calculate_stress(sample) == 100


class TestInstantaneousFatigue:
    def test_rested(self):
        assert instantaneous_fatigue(_sample(), ZERO) == pytest.approx(10 / 3)

    def test_long_closure_immediate(self):
        eye = EyeState(eyes_closed=True, eye_closure_duration_ms=3500)
        sample = _sample(expressions={"neutral": 0.5}, eye=eye)
        assert instantaneous_fatigue(sample, ZERO) == pytest.approx(25)

    def test_microsleep_history_bonus(self):
        eye = EyeState(microsleep_count=3)
        sample = _sample(expressions={"neutral": 0.5}, eye=eye)
        assert instantaneous_fatigue(sample, ZERO) == pytest.approx(10)

    def test_blink_u_curve(self):
        low = instantaneous_fatigue(_sample(expressions={"neutral": 0.5}, blink=0), ZERO)
        high = instantaneous_fatigue(_sample(expressions={"neutral": 0.5}, blink=40), ZERO)
        assert low == pytest.approx(12)
        assert high == pytest.approx(15)

    def test_perclos_tiers(self):
        def fatigue_for(perclos):
            return instantaneous_fatigue(_sample(expressions={"neutral": 0.5}, eye=EyeState(perclos=perclos)), ZERO)

        assert fatigue_for(0.04) == pytest.approx(2.5)
        assert fatigue_for(0.15) == pytest.approx(15)
        assert fatigue_for(0.4) == pytest.approx(35)
        assert fatigue_for(1.0) == pytest.approx(35)

    def test_capped(self):
        eye = EyeState(eyes_closed=True, eye_closure_duration_ms=9000, perclos=1.0,
                       slow_blink_count=9, microsleep_count=9)
        sample = _sample(expressions={"neutral": 1.0}, pitch=40, blink=0, eye=eye)
        assert instantaneous_fatigue(sample, ZERO) == 100


class TestConfidence:
    def test_full_confidence(self):
        assert calculate_confidence(_sample(), ZERO) == 1.0

    def test_moderate_pose(self):
        assert calculate_confidence(_sample(yaw=30), ZERO) == pytest.approx(0.8)

    def test_thin_signal(self):
        sample = _sample(expressions={"neutral": 0.5})
        assert calculate_confidence(sample, ZERO) == pytest.approx(0.7)

    def test_quality_blend_and_unreliable(self):
        sample = _sample(yaw=30, quality=DetectionQuality(reliable=False, score=0.5))
        assert calculate_confidence(sample, ZERO) == pytest.approx((0.8 * 0.65 + 0.5 * 0.35) * 0.75)

    def test_worst_case_stays_above_floor(self):
        sample = _sample(expressions={}, yaw=90, quality=DetectionQuality(reliable=False, score=0.0))
        confidence = calculate_confidence(sample, ZERO)
        assert confidence == pytest.approx(0.6 * 0.7 * 0.65 * 0.75)
        assert confidence >= 0.2


class TestDominantState:
    thresholds = compute_adaptive_thresholds(None)

    @pytest.mark.parametrize("focus, stress, fatigue, expected", [
        (90, 90, 90, CognitiveState.DROWSY),
        (90, 90, 70, CognitiveState.TIRED),
        (90, 60, 10, CognitiveState.STRESSED),
        (30, 10, 10, CognitiveState.DISTRACTED),
        (85, 10, 10, CognitiveState.DEEP_FOCUS),
        (65, 10, 10, CognitiveState.FOCUS),
        (64, 10, 10, CognitiveState.NORMAL),
        (35, 10, 10, CognitiveState.NORMAL),
    ])
    def test_priority(self, focus, stress, fatigue, expected):
        assert classify_dominant_state(focus, stress, fatigue, self.thresholds) == expected


class TestAlerts:
    def test_no_alerts(self):
        alerts = generate_alerts(80, 10, 10, _sample(), _attention(), ZERO)
        assert alerts.active() == []

    def test_score_alerts(self):
        alerts = generate_alerts(20, 75, 70, _sample(), _attention(), ZERO)
        assert alerts.high_stress and alerts.high_fatigue and alerts.frequent_distraction

    def test_poor_posture_requires_reliable(self):
        sample = _sample(yaw=40)
        assert generate_alerts(80, 10, 10, sample, _attention(), ZERO).poor_posture is True
        unreliable = _attention(reliable=False)
        assert generate_alerts(80, 10, 10, sample, unreliable, ZERO).poor_posture is False

    def test_distraction_suppressed_when_uncertain(self):
        uncertain = _attention(classification=AttentionClassification.UNCERTAIN, reliable=False)
        assert generate_alerts(10, 10, 10, _sample(), uncertain, ZERO).frequent_distraction is False

    def test_eye_alerts(self):
        short = EyeState(eyes_closed=True, eye_closure_duration_ms=400)
        long = EyeState(eyes_closed=True, eye_closure_duration_ms=1600)
        assert generate_alerts(80, 10, 10, _sample(eye=short), _attention(), ZERO).eyes_closed is False
        alerts = generate_alerts(80, 10, 10, _sample(eye=long), _attention(), ZERO)
        assert alerts.eyes_closed is True
        assert alerts.microsleep is True
