"""会话统计模块：周期采样认知指标，计算趋势与会话摘要（不做持久化）"""

import logging
from collections import Counter, deque
from typing import Dict, Optional

import numpy as np

from models.data_models import CognitiveMetrics, CognitiveState, SessionSummary
from utils.numeric import clamp

logger = logging.getLogger(__name__)

FOCUSED_STATES = (CognitiveState.FOCUS, CognitiveState.DEEP_FOCUS)
TIRED_STATES = (CognitiveState.TIRED, CognitiveState.DROWSY)

INCREASING = "increasing"
DECREASING = "decreasing"
STABLE = "stable"

# focus, stress, fatigue, distraction, confidence
_COLUMNS = 5


class SessionRecorder:
    """
    每 sample_interval_ms 最多记录一次指标。

    会话平均值用运行和累计整段会话；趋势只看最近 long_window_ms 内的样本。
    """

    def __init__(
        self,
        started_at: float = 0.0,
        sample_interval_ms: float = 1000.0,
        short_window_ms: float = 10000.0,
        long_window_ms: float = 60000.0,
        trend_threshold: float = 10.0,
        focus_period_ms: float = 30000.0,
    ):
        if sample_interval_ms < 0 or short_window_ms <= 0 or long_window_ms < short_window_ms:
            raise ValueError("采样间隔与趋势窗口参数无效")
        self.started_at = started_at
        self.sample_interval_ms = sample_interval_ms
        self.short_window_ms = short_window_ms
        self.long_window_ms = long_window_ms
        self.trend_threshold = trend_threshold
        self.focus_period_ms = focus_period_ms

        self._sums = np.zeros(_COLUMNS)
        self._count = 0
        self._states: Counter = Counter()
        self._recent: deque = deque()
        self._last_recorded: Optional[float] = None
        self._last_state: Optional[CognitiveState] = None
        self._focus_run_since: Optional[float] = None
        self._interruptions = 0
        self._focus_periods = 0
        self._last_time = started_at

    @property
    def count(self) -> int:
        return self._count

    def record(self, metrics: CognitiveMetrics, now: float) -> bool:
        """按采样间隔记录指标，返回本次是否被记录"""
        if self._last_recorded is not None and now - self._last_recorded < self.sample_interval_ms:
            return False
        self._last_recorded = now
        self._last_time = now

        row = np.array([metrics.focus, metrics.stress, metrics.fatigue,
                        metrics.distraction, metrics.confidence], dtype=np.float64)
        self._sums += row
        self._count += 1

        state = metrics.dominant_state
        self._states[state] += 1

        if self._last_state in FOCUSED_STATES and state == CognitiveState.DISTRACTED:
            self._interruptions += 1

        # 连续专注满 focus_period_ms 记一个专注时段，随后重新计时
        if state in FOCUSED_STATES:
            if self._focus_run_since is None:
                self._focus_run_since = now
            elif now - self._focus_run_since >= self.focus_period_ms:
                self._focus_periods += 1
                self._focus_run_since = now
        else:
            self._focus_run_since = None
        self._last_state = state

        self._recent.append((now, row))
        while self._recent and now - self._recent[0][0] > self.long_window_ms:
            self._recent.popleft()
        return True

    def trends(self, now: Optional[float] = None) -> Dict[str, str]:
        """
        短窗口（10 秒）均值相对长窗口（60 秒）均值的变化方向。

        差值超过 ±trend_threshold 判为 increasing / decreasing；
        短窗口不足 3 个或长窗口不足 10 个样本时一律 stable。
        """
        now = self._last_time if now is None else now
        names = ("focus", "stress", "fatigue")
        long_rows = [row for t, row in self._recent if now - t <= self.long_window_ms]
        short_rows = [row for t, row in self._recent if now - t <= self.short_window_ms]
        if len(short_rows) < 3 or len(long_rows) < 10:
            return {name: STABLE for name in names}

        short_avg = np.mean(short_rows, axis=0)
        long_avg = np.mean(long_rows, axis=0)
        result = {}
        for index, name in enumerate(names):
            diff = short_avg[index] - long_avg[index]
            if diff > self.trend_threshold:
                result[name] = INCREASING
            elif diff < -self.trend_threshold:
                result[name] = DECREASING
            else:
                result[name] = STABLE
        return result

    def summary(self, now: Optional[float] = None) -> SessionSummary:
        """
        生成会话摘要。

        Raises:
            ValueError: 尚未记录任何指标
        """
        if self._count == 0:
            raise ValueError("会话中没有记录任何指标")

        now = self._last_time if now is None else now
        total = float(self._count)
        avg_focus, avg_stress, avg_fatigue, avg_distraction, avg_confidence = self._sums / total

        def pct(*states):
            return sum(self._states[state] for state in states) / total * 100.0

        pct_focused = pct(*FOCUSED_STATES)
        # 出现次数相同时取先出现的状态
        dominant = self._states.most_common(1)[0][0]
        effectiveness = clamp(
            0.6 * pct_focused - min(3 * self._interruptions, 20) + 20.0 * avg_confidence,
            0.0, 100.0,
        )

        summary = SessionSummary(
            duration_s=int(max(0.0, now - self.started_at) // 1000),
            avg_focus=float(avg_focus),
            avg_stress=float(avg_stress),
            avg_fatigue=float(avg_fatigue),
            avg_distraction=float(avg_distraction),
            pct_focused=pct_focused,
            pct_distracted=pct(CognitiveState.DISTRACTED),
            pct_stressed=pct(CognitiveState.STRESSED),
            pct_tired=pct(*TIRED_STATES),
            interruptions=self._interruptions,
            focus_periods=self._focus_periods,
            dominant_state=dominant,
            avg_confidence=float(avg_confidence),
            effectiveness=float(effectiveness),
        )
        logger.info("会话摘要: 时长 %d 秒, 平均专注 %.1f, 有效性 %.1f",
                    summary.duration_s, summary.avg_focus, summary.effectiveness)
        return summary

