"""后台任务调度器。

进程内所有周期性 / 常驻后台循环（缓存过期清理、Redis 重连、catalog 文件监听）
都由同一个 BackgroundScheduler 持有，随应用 lifespan 启停，共享一个停止信号。
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from loguru import logger

StopAwareTask = Callable[[asyncio.Event], Awaitable[None]]
PeriodicJob = Callable[[], Awaitable[object] | object]


async def sleep_or_stop(stop_event: asyncio.Event, delay: float) -> bool:
    """等待 delay 秒，期间收到停止信号则提前返回。

    Returns:
        收到停止信号返回 True，正常超时返回 False
    """
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=delay)
        return True
    except TimeoutError:
        return False


@dataclass
class _Registration:
    name: str
    factory: StopAwareTask


class BackgroundScheduler:
    """持有后台任务生命周期的调度器。"""

    def __init__(self, shutdown_timeout: float = 5.0):
        self._registrations: list[_Registration] = []
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._stop_event: asyncio.Event | None = None
        self._shutdown_timeout = shutdown_timeout

    @property
    def running(self) -> bool:
        return self._stop_event is not None and not self._stop_event.is_set()

    @property
    def task_names(self) -> list[str]:
        return [r.name for r in self._registrations]

    def add_task(self, name: str, factory: StopAwareTask) -> None:
        """注册常驻任务，factory 接收停止信号并自行决定何时退出。"""
        if any(r.name == name for r in self._registrations):
            raise ValueError(f"Background task '{name}' already registered")
        self._registrations.append(_Registration(name=name, factory=factory))
        if self._stop_event is not None and not self._stop_event.is_set():
            self._spawn(self._registrations[-1], self._stop_event)

    def add_periodic(self, name: str, interval_sec: float, job: PeriodicJob) -> None:
        """注册周期任务；单次执行异常只记录日志，不会终止循环。"""

        async def _loop(stop_event: asyncio.Event) -> None:
            while not await sleep_or_stop(stop_event, interval_sec):
                try:
                    result = job()
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    logger.exception(f"Periodic job '{name}' failed: {e}")

        self.add_task(name, _loop)

    def start(self) -> None:
        if self.running:
            return
        stop_event = self._stop_event = asyncio.Event()
        for registration in self._registrations:
            self._spawn(registration, stop_event)
        logger.info(f"Background scheduler started with tasks: {self.task_names}")

    def _spawn(self, registration: _Registration, stop_event: asyncio.Event) -> None:
        task = asyncio.create_task(
            registration.factory(stop_event),
            name=f"bg:{registration.name}",
        )
        task.add_done_callback(self._on_task_done)
        self._tasks[registration.name] = task

    @staticmethod
    def _on_task_done(task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error(f"Background task {task.get_name()} crashed")

    async def stop(self) -> None:
        """发送停止信号并等待所有任务退出，超时后取消。"""
        if self._stop_event is None:
            return
        self._stop_event.set()
        tasks = list(self._tasks.values())
        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=self._shutdown_timeout)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
        self._tasks.clear()
        self._stop_event = None
        logger.info("Background scheduler stopped")
