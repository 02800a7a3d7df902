"""Cache key 命名规范。

Redis / 内存缓存用于：
- Feed: 按偏好坐标缓存卡片列表
- Rate Limit: 速率限制计数器
"""


def _normalize_axis(value: float, precision: int) -> float:
    # round() 可能得到 -0.0，加 0.0 消除负零，保证 key 稳定
    return round(value, precision) + 0.0


class RedisKeys:
    """Cache key 命名空间管理。"""

    # feed:{x}:{y}
    FEED_PREFIX = "feed"

    # ratelimit:{resource}:{identifier}:{window}
    RATE_LIMIT_PREFIX = "ratelimit"

    # health_check_{ts}
    HEALTH_CHECK_PREFIX = "health_check_"

    @classmethod
    def feed(cls, x: float, y: float, precision: int = 3) -> str:
        """生成 feed 缓存 key。

        坐标按固定精度取整，相近坐标共享同一条缓存。

        Args:
            x: 经济轴坐标
            y: 社会轴坐标
            precision: 小数位数

        Returns:
            形如 feed:0.100:-0.250 的 key
        """
        nx = _normalize_axis(x, precision)
        ny = _normalize_axis(y, precision)
        return f"{cls.FEED_PREFIX}:{nx:.{precision}f}:{ny:.{precision}f}"

    @classmethod
    def rate_limit(cls, resource: str, identifier: str, window: str) -> str:
        """生成速率限制 key。

        Args:
            resource: 资源类型（如 feed）
            identifier: 标识符（如客户端 IP）
            window: 时间窗口起点

        Returns:
            格式化的 Redis key
        """
        return f"{cls.RATE_LIMIT_PREFIX}:{resource}:{identifier}:{window}"

    @classmethod
    def health_check(cls, ts_ms: int) -> str:
        return f"{cls.HEALTH_CHECK_PREFIX}{ts_ms}"
