"""Bias space: 二维偏好坐标与距离。"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from loguru import logger

from balanced_news.core.domain.exceptions import ValidationError

BIAS_MIN = -1.0
BIAS_MAX = 1.0


def _clamp(value: float) -> float:
    return max(BIAS_MIN, min(BIAS_MAX, value))


def _as_axis(name: str, value: Any) -> float:
    # bool 是 int 的子类，需单独排除
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise ValidationError(f"Bias coordinate '{name}' must be a number")
    number = float(value)
    if not math.isfinite(number):
        raise ValidationError(f"Bias coordinate '{name}' must be finite")
    return number


@dataclass(frozen=True)
class BiasCoordinate:
    """偏好坐标 (x: 经济轴, y: 社会轴)，正常取值范围 [-1, 1]。"""

    x: float
    y: float

    def distance_to(self, other: BiasCoordinate) -> float:
        """欧氏距离。"""
        return math.hypot(self.x - other.x, self.y - other.y)

    def mirrored(self) -> BiasCoordinate:
        """关于原点的对称点，用于挑选对立观点信源。"""
        return BiasCoordinate(-self.x + 0.0, -self.y + 0.0)

    def clamped(self) -> BiasCoordinate:
        return BiasCoordinate(_clamp(self.x), _clamp(self.y))

    def is_in_range(self) -> bool:
        return BIAS_MIN <= self.x <= BIAS_MAX and BIAS_MIN <= self.y <= BIAS_MAX

    @classmethod
    def from_input(cls, x: Any, y: Any, *, strict: bool = True) -> BiasCoordinate:
        """从外部输入构造坐标。

        Args:
            x: 经济轴
            y: 社会轴
            strict: True 时超出范围直接拒绝；False 时记录日志并截断到 [-1, 1]

        Raises:
            ValidationError: 非数值、NaN/Inf，或 strict 模式下超出范围
        """
        coordinate = cls(_as_axis("x", x), _as_axis("y", y))
        if coordinate.is_in_range():
            return coordinate
        if strict:
            raise ValidationError(
                f"Bias coordinates must be within [{BIAS_MIN:g}, {BIAS_MAX:g}], "
                f"got ({coordinate.x}, {coordinate.y})"
            )
        logger.warning(
            f"Bias coordinate out of range ({coordinate.x}, {coordinate.y}), clamping"
        )
        return coordinate.clamped()


ORIGIN = BiasCoordinate(0.0, 0.0)
