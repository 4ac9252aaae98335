from __future__ import annotations

"""
后端调用节流（最小版本）。

为什么需要这个模块：
- 逐 chunk review 会在短时间内打出大量模型请求，容易触发网关限流
- 这里把“两次派发之间至少间隔 N 秒”做成显式组件，而不是散落在循环里的 sleep

并发上限由调用方用 `anyio.CapacityLimiter` 控制；pacer 只负责派发间隔。
"""

import anyio


class DispatchPacer:
    """保证相邻两次 `wait_turn()` 返回之间至少间隔 `min_interval_s` 秒。"""

    def __init__(self, min_interval_s: float) -> None:
        if min_interval_s < 0:
            raise ValueError("min_interval_s must be >= 0")
        self._min_interval_s = min_interval_s
        self._lock = anyio.Lock()
        self._last_dispatch: float | None = None

    @property
    def min_interval_s(self) -> float:
        return self._min_interval_s

    async def wait_turn(self) -> None:
        """阻塞直到允许下一次派发；多个任务并发调用时按获取锁的顺序依次放行。"""
        async with self._lock:
            if self._last_dispatch is not None:
                remaining = self._last_dispatch + self._min_interval_s - anyio.current_time()
                if remaining > 0:
                    await anyio.sleep(remaining)
            self._last_dispatch = anyio.current_time()
