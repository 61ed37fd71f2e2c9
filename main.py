"""认知状态监测回放入口：将 JSON Lines 格式的感知记录回放到监测会话"""

import argparse
import json
import logging
import sys
from dataclasses import asdict

from display.metrics_smoother import MetricsSmoother
from models.data_models import (
    DetectionQuality,
    ExpressionMap,
    FaceObservation,
    GazePoint,
    HeadPose,
)
from session.monitoring_session import MonitoringSession
from session.nudge_policy import NudgePolicy

logger = logging.getLogger(__name__)

# 默认参数
_DEFAULTS = {
    "screen_width": 1920,
    "screen_height": 1080,
    "calibrate": True,
    "calibration_duration_ms": 12000,
    "calibration_target_samples": 20,
    "calibration_min_samples": 8,
    "gap_reset_ms": 3000,
    "smoothing_alpha": 0.12,
    "smoothing_max_delta": 5,
    "asymmetric_fatigue": False,
    "nudge_cooldown_ms": 15000,
}


def parse_observation(face):
    """
    将一条记录中的 face 字段解析为 FaceObservation。

    gaze 可以是 [x, y] 或 {"x": .., "y": ..}；缺少眼部轮廓时视为空列表，
    该帧不参与眨眼与闭眼统计。
    """
    gaze = face.get("gaze") or [0.0, 0.0]
    if isinstance(gaze, dict):
        gaze = [gaze.get("x", 0.0), gaze.get("y", 0.0)]
    pose = face.get("head_pose") or {}
    quality = face.get("quality")

    return FaceObservation(
        expressions=ExpressionMap.from_dict(face.get("expressions") or {}),
        gaze=GazePoint(float(gaze[0]), float(gaze[1])),
        head_pose=HeadPose(
            yaw=float(pose.get("yaw", 0.0)),
            pitch=float(pose.get("pitch", 0.0)),
            roll=float(pose.get("roll", 0.0)),
        ),
        left_eye=[tuple(p) for p in face.get("left_eye") or []],
        right_eye=[tuple(p) for p in face.get("right_eye") or []],
        quality=DetectionQuality(**quality) if quality is not None else None,
        phone_in_frame=face.get("phone_in_frame"),
    )


class ReplaySystem:
    """回放主程序，逐条读取记录驱动 MonitoringSession。"""

    def __init__(self, config_path=None, every=0, out=None):
        config = self._load_config(config_path)
        self.every = every
        self.out = out if out is not None else sys.stdout
        self.config = config

        self.session = None
        self.ticks = 0
        self.skipped = 0

    @staticmethod
    def _load_config(config_path):
        """从 JSON 配置文件加载参数，缺失字段使用默认值。"""
        config = dict(_DEFAULTS)

        if config_path is None:
            return config

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            print(f"警告: 配置文件不存在 {config_path}，使用默认参数")
            return config
        except json.JSONDecodeError:
            print(f"警告: 配置文件格式错误 {config_path}，使用默认参数")
            return config

        # 用配置文件中的值覆盖默认值
        for key in _DEFAULTS:
            if key in data and data[key] is not None:
                config[key] = data[key]

        return config

    def _build_session(self, started_at):
        config = self.config
        return MonitoringSession(
            screen_size=(config["screen_width"], config["screen_height"]),
            calibrate=config["calibrate"],
            calibration_duration_ms=config["calibration_duration_ms"],
            calibration_target_samples=config["calibration_target_samples"],
            calibration_min_samples=config["calibration_min_samples"],
            gap_reset_ms=config["gap_reset_ms"],
            smoother=MetricsSmoother(
                alpha=config["smoothing_alpha"],
                max_delta=config["smoothing_max_delta"],
                asymmetric_fatigue=config["asymmetric_fatigue"],
            ),
            nudges=NudgePolicy(cooldown_ms=config["nudge_cooldown_ms"]),
            started_at=started_at,
        )

    def _emit_tick(self, now, tick):
        metrics = tick.metrics
        line = {
            "t": now,
            "calibrating": tick.calibrating,
            "focus": metrics.focus,
            "stress": metrics.stress,
            "fatigue": metrics.fatigue,
            "distraction": metrics.distraction,
            "state": metrics.dominant_state.value,
            "attention": metrics.attention.classification.value,
            "confidence": round(metrics.confidence, 3),
            "smoothed": asdict(tick.output.smoothed),
            "alerts": metrics.alerts.active(),
            "nudges": [nudge.text for nudge in tick.nudges],
        }
        print(json.dumps(line, ensure_ascii=False), file=self.out)

    def replay(self, lines):
        """
        回放记录行。

        Args:
            lines: 可迭代的文本行，每行一个 JSON 对象 {"t": 毫秒, "face": {...} | null}

        Returns:
            SessionSummary；没有任何有效人脸记录时返回 None
        """
        for number, raw in enumerate(lines, start=1):
            raw = raw.strip()
            if not raw:
                continue
            try:
                record = json.loads(raw)
                now = float(record["t"])
                face = record.get("face")
                observation = parse_observation(face) if face is not None else None
            except (ValueError, KeyError, TypeError, AttributeError) as e:
                logger.warning("跳过第 %d 行无效记录: %s", number, e)
                self.skipped += 1
                continue

            if self.session is None:
                self.session = self._build_session(now)

            tick = self.session.process(observation, now)
            if tick is None:
                continue
            self.ticks += 1
            if self.every and self.ticks % self.every == 0:
                self._emit_tick(now, tick)

        if self.session is None or self.session.recorder.count == 0:
            return None
        return self.session.summary()


def main(argv=None):
    parser = argparse.ArgumentParser(description="认知状态监测回放")
    parser.add_argument(
        "capture",
        type=str,
        help="JSON Lines 感知记录文件路径，- 表示标准输入",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="JSON 参数配置文件路径",
    )
    parser.add_argument(
        "--every",
        type=int,
        default=0,
        help="每 N 帧输出一次指标，0 表示只输出摘要",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="日志级别",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    system = ReplaySystem(config_path=args.config, every=args.every)
    if args.capture == "-":
        summary = system.replay(sys.stdin)
    else:
        try:
            with open(args.capture, "r", encoding="utf-8") as f:
                summary = system.replay(f)
        except FileNotFoundError:
            print(f"无法打开记录文件 {args.capture}")
            sys.exit(1)

    if summary is None:
        print("记录中没有检测到人脸")
        sys.exit(1)

    result = asdict(summary)
    result["dominant_state"] = summary.dominant_state.value
    print(json.dumps(result, ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
