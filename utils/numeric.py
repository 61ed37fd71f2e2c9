"""数值工具：NaN 安全的截断、取整与毫秒时钟"""

import math
import time

EPSILON = 1e-6


def clamp(value: float, low: float, high: float) -> float:
    """截断到 [low, high]，NaN 返回 low"""
    if value != value:
        return low
    return max(low, min(high, value))


def clamp01(value: float) -> float:
    return clamp(value, 0.0, 1.0)


def is_finite(*values: float) -> bool:
    """所有值均为有限数（排除 NaN 与 ±inf）"""
    return all(math.isfinite(v) for v in values)


def round_half_up(value: float) -> int:
    """四舍五入，.5 一律向上取整（内置 round 为银行家舍入）"""
    return int(math.floor(value + 0.5))


def smooth_value(prev: float, target: float, alpha: float) -> float:
    """指数移动平均的单步更新"""
    return prev + alpha * (target - prev)


def now_ms() -> float:
    """单调时钟，毫秒"""
    return time.monotonic() * 1000.0


def check_alpha(name: str, alpha: float) -> float:
    """校验平滑系数位于 (0, 1]"""
    if not 0.0 < alpha <= 1.0:
        raise ValueError(f"{name} 必须位于 (0, 1]: {alpha}")
    return alpha
