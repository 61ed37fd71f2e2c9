"""提醒决策模块：根据告警与注意力状态决定是否提醒（仅决策，不负责播放）"""

import logging
from typing import Dict, List, Optional

from models.data_models import AttentionClassification, CognitiveMetrics, Nudge

logger = logging.getLogger(__name__)

# 提醒种类 → (严重程度, 文案)
NUDGE_TEXTS = {
    "microsleep": ("danger", "检测到微睡眠，请立即休息"),
    "high_fatigue": ("warn", "疲劳度较高，建议起身活动几分钟"),
    "high_stress": ("warn", "压力偏高，试着做几次深呼吸"),
    "phone_like": ("warn", "似乎在看手机，回到当前任务吧"),
    "off_screen": ("info", "视线离开屏幕较久"),
    "low_focus": ("info", "专注度持续偏低，可以换个节奏"),
}

# 多个提醒同时满足时的优先顺序
_PRIORITY = ["microsleep", "high_fatigue", "high_stress", "phone_like", "off_screen", "low_focus"]


class NudgePolicy:
    """
    同种提醒之间至少间隔 cooldown_ms；每帧最多返回一条提醒。

    uncertain 状态下不会触发任何注意力类提醒。
    """

    def __init__(
        self,
        cooldown_ms: float = 15000.0,
        off_screen_ms: float = 8000.0,
        low_focus_threshold: float = 45.0,
        low_focus_hold_ms: float = 15000.0,
    ):
        if cooldown_ms < 0 or off_screen_ms < 0 or low_focus_hold_ms < 0:
            raise ValueError("提醒时长参数不能为负数")
        self.cooldown_ms = cooldown_ms
        self.off_screen_ms = off_screen_ms
        self.low_focus_threshold = low_focus_threshold
        self.low_focus_hold_ms = low_focus_hold_ms
        self._last_emitted: Dict[str, float] = {}
        self._low_focus_since: Optional[float] = None

    def _due_kinds(self, metrics: CognitiveMetrics, now: float) -> List[str]:
        alerts = metrics.alerts
        attention = metrics.attention
        uncertain = attention.classification == AttentionClassification.UNCERTAIN
        kinds = []

        if alerts.microsleep:
            kinds.append("microsleep")
        if alerts.high_fatigue:
            kinds.append("high_fatigue")
        if alerts.high_stress:
            kinds.append("high_stress")
        if not uncertain and attention.phone_looking:
            kinds.append("phone_like")
        if not uncertain and not attention.on_screen and attention.off_screen_ms >= self.off_screen_ms:
            kinds.append("off_screen")

        if uncertain or metrics.focus >= self.low_focus_threshold:
            self._low_focus_since = None
        elif self._low_focus_since is None:
            self._low_focus_since = now
        if self._low_focus_since is not None and now - self._low_focus_since >= self.low_focus_hold_ms:
            kinds.append("low_focus")

        return kinds

    def evaluate(self, metrics: CognitiveMetrics, now: float) -> Optional[Nudge]:
        """
        评估单帧指标。

        Args:
            metrics: 分类器输出
            now: 当前时间（毫秒）

        Returns:
            需要提醒时返回 Nudge，否则返回 None
        """
        due = set(self._due_kinds(metrics, now))
        for kind in _PRIORITY:
            if kind not in due:
                continue
            last = self._last_emitted.get(kind)
            if last is not None and now - last < self.cooldown_ms:
                continue
            self._last_emitted[kind] = now
            severity, text = NUDGE_TEXTS[kind]
            logger.debug("提醒: %s (%s)", kind, severity)
            return Nudge(kind=kind, severity=severity, text=text, at_ms=now)
        return None

    def reset(self):
        self._last_emitted.clear()
        self._low_focus_since = None
