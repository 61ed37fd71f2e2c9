"""眼睛状态分析模块，负责计算 EAR 值、闭眼状态机与 PERCLOS 统计"""

import math
from collections import deque
from typing import Deque, List, Optional, Tuple

from models.data_models import EyeState
from utils.numeric import EPSILON, check_alpha, smooth_value

# 闭合事件类别
BLINK = "blink"
SLOW_BLINK = "slow_blink"
MICROSLEEP = "microsleep"


def calculate_ear(eye_points: List[Tuple[float, float]]) -> float:
    """
    计算单只眼睛的 EAR 值。

    公式: EAR = (|p1-p5| + |p2-p4|) / (2 * |p0-p3|)

    Args:
        eye_points: 6 个眼睛轮廓关键点 [(x,y), ...]

    Returns:
        EAR 值；关键点不足 6 个时返回 0.0，分母使用 EPSILON 兜底
    """
    if len(eye_points) < 6:
        return 0.0
    p0, p1, p2, p3, p4, p5 = eye_points[:6]

    vertical_1 = math.dist(p1, p5)
    vertical_2 = math.dist(p2, p4)
    horizontal = math.dist(p0, p3)

    return (vertical_1 + vertical_2) / max(EPSILON, 2.0 * horizontal)


def classify_closure(duration_ms: float,
                     min_blink_ms: float = 60.0,
                     max_blink_ms: float = 400.0,
                     microsleep_min_ms: float = 1500.0) -> Optional[str]:
    """
    按闭合时长归类一次完整的闭眼事件。

    [60, 400] 为正常眨眼，(400, 1500) 为慢眨眼，>= 1500 为微睡眠，
    短于 60ms 视为噪声返回 None。
    """
    if duration_ms >= microsleep_min_ms:
        return MICROSLEEP
    if duration_ms > max_blink_ms:
        return SLOW_BLINK
    if duration_ms >= min_blink_ms:
        return BLINK
    return None


class EyeAnalyzer:
    """计算 EAR 值，维护自适应基线与闭眼状态机，输出眨眼频率、PERCLOS 等统计"""

    def __init__(
        self,
        ear_baseline_alpha: float = 0.03,
        close_ratio: float = 0.65,
        min_close_threshold: float = 0.08,
        open_hysteresis: float = 0.02,
        perclos_ratio: float = 0.70,
        min_blink_ms: float = 60.0,
        max_blink_ms: float = 400.0,
        microsleep_min_ms: float = 1500.0,
        blink_window_ms: float = 60000.0,
        perclos_window_ms: float = 60000.0,
        microsleep_window_ms: float = 300000.0,
        perclos_min_frames: int = 5,
    ):
        """初始化阈值与各时间窗口"""
        self.ear_baseline_alpha = check_alpha("ear_baseline_alpha", ear_baseline_alpha)
        self.close_ratio = close_ratio
        self.min_close_threshold = min_close_threshold
        self.open_hysteresis = open_hysteresis
        self.perclos_ratio = perclos_ratio
        self.min_blink_ms = min_blink_ms
        self.max_blink_ms = max_blink_ms
        self.microsleep_min_ms = microsleep_min_ms
        self.blink_window_ms = blink_window_ms
        self.perclos_window_ms = perclos_window_ms
        self.microsleep_window_ms = microsleep_window_ms
        self.perclos_min_frames = perclos_min_frames

        self._ear_baseline: Optional[float] = None
        self._last_ear = 0.0
        self._closed_since: Optional[float] = None
        self._blink_history: Deque[float] = deque()
        self._slow_blink_history: Deque[float] = deque()
        self._microsleep_history: Deque[float] = deque()
        self._perclos_frames: Deque[Tuple[float, bool]] = deque()

    @property
    def ear_baseline(self) -> Optional[float]:
        return self._ear_baseline

    def close_threshold(self) -> float:
        """当前闭眼阈值，基线未建立时返回下限"""
        baseline = self._ear_baseline if self._ear_baseline is not None else 0.0
        return max(self.min_close_threshold, baseline * self.close_ratio)

    def update(self, left_eye: List[Tuple[float, float]], right_eye: List[Tuple[float, float]],
               now: float) -> bool:
        """
        处理一帧双眼关键点，推进闭眼状态机。

        Args:
            left_eye: 左眼 6 个关键点
            right_eye: 右眼 6 个关键点
            now: 当前时间（毫秒）

        Returns:
            当前是否处于闭眼状态；轮廓缺失（不足 6 点）或 EAR 非有限值时
            本帧不参与状态机与 PERCLOS，沿用上一帧的结果
        """
        if len(left_eye) < 6 or len(right_eye) < 6:
            return self._closed_since is not None
        avg_ear = (calculate_ear(left_eye) + calculate_ear(right_eye)) / 2.0
        if not math.isfinite(avg_ear):
            return self._closed_since is not None
        self._last_ear = avg_ear

        # 闭眼期间冻结基线，避免闭眼值把阈值拉低
        if self._closed_since is None:
            if self._ear_baseline is None:
                self._ear_baseline = avg_ear
            else:
                self._ear_baseline = smooth_value(self._ear_baseline, avg_ear, self.ear_baseline_alpha)

        baseline = self._ear_baseline if self._ear_baseline is not None else avg_ear
        close_threshold = max(self.min_close_threshold, baseline * self.close_ratio)
        open_threshold = close_threshold + self.open_hysteresis

        # PERCLOS 使用更宽松的 P70 阈值，逐帧独立记录
        p70_threshold = max(self.min_close_threshold, baseline * self.perclos_ratio)
        self._perclos_frames.append((now, avg_ear < p70_threshold))
        self._prune(self._perclos_frames, now, self.perclos_window_ms, key=lambda f: f[0])

        if self._closed_since is None:
            if avg_ear < close_threshold:
                self._closed_since = now
        elif avg_ear > open_threshold:
            self._register_closure(now - self._closed_since, now)
            self._closed_since = None

        return self._closed_since is not None

    def _register_closure(self, duration_ms: float, now: float) -> None:
        kind = classify_closure(duration_ms, self.min_blink_ms, self.max_blink_ms, self.microsleep_min_ms)
        if kind == BLINK:
            self._blink_history.append(now)
        elif kind == SLOW_BLINK:
            self._slow_blink_history.append(now)
        elif kind == MICROSLEEP:
            self._microsleep_history.append(now)

    @staticmethod
    def _prune(history: Deque, now: float, window_ms: float, key=lambda t: t) -> None:
        while history and now - key(history[0]) >= window_ms:
            history.popleft()

    def blink_rate(self, now: float) -> int:
        """最近 60 秒内的正常眨眼次数（次/分钟）"""
        self._prune(self._blink_history, now, self.blink_window_ms)
        return len(self._blink_history)

    def eye_state(self, now: float) -> EyeState:
        """汇总当前眼部状态"""
        self._prune(self._slow_blink_history, now, self.blink_window_ms)
        self._prune(self._microsleep_history, now, self.microsleep_window_ms)
        self._prune(self._perclos_frames, now, self.perclos_window_ms, key=lambda f: f[0])

        perclos = 0.0
        if len(self._perclos_frames) >= self.perclos_min_frames:
            closed = sum(1 for _, is_closed in self._perclos_frames if is_closed)
            perclos = closed / len(self._perclos_frames)

        closure_ms = now - self._closed_since if self._closed_since is not None else 0.0

        return EyeState(
            ear_avg=self._last_ear,
            eyes_closed=self._closed_since is not None,
            eye_closure_duration_ms=max(0.0, closure_ms),
            perclos=perclos,
            slow_blink_count=len(self._slow_blink_history),
            microsleep_count=len(self._microsleep_history),
        )

    def reset(self):
        """清空基线、计时器与所有历史"""
        self._ear_baseline = None
        self._last_ear = 0.0
        self._closed_since = None
        self._blink_history.clear()
        self._slow_blink_history.clear()
        self._microsleep_history.clear()
        self._perclos_frames.clear()
