"""
异步任务管理

- CancellationToken：贯穿所有任务组的共享取消信号
- AsyncTaskManager：并发执行互不依赖的任务，全部完成后汇合
- BuildQueue：单并发工作队列，同一 target 的构建按提交顺序逐个执行
"""

import asyncio
from typing import Any, Awaitable, Callable, List, Optional

from ..utils.logging import debug
from .build_context import BuildCancelledError, BuildError

TaskFactory = Callable[[], Awaitable[Any]]


class CancellationToken:
    """共享取消信号"""

    def __init__(self):
        self._cancelled = False
        self._reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "构建已取消") -> None:
        self._cancelled = True
        self._reason = reason

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise BuildCancelledError(self._reason or "构建已取消")


def _first_error(results: List[Any]) -> Optional[BaseException]:
    for result in results:
        if isinstance(result, BaseException):
            return result
    return None


class AsyncTaskManager:
    """并发任务组

    任务之间不共享可变状态；每个任务返回独立的结果，由调用方在汇合后按固定顺序合并。
    取消后不再调度新任务，await_tasks 抛出 BuildCancelledError。
    """

    def __init__(self, cancellation_token: CancellationToken):
        self.cancellation_token = cancellation_token
        self._tasks: List["asyncio.Future[Any]"] = []

    def add(self, factory: TaskFactory) -> None:
        if self.cancellation_token.cancelled:
            return
        self._tasks.append(asyncio.ensure_future(factory()))

    async def await_tasks(self) -> List[Any]:
        """等待全部任务完成，按添加顺序返回结果"""
        tasks, self._tasks = self._tasks, []
        results = await asyncio.gather(*tasks, return_exceptions=True)
        self.cancellation_token.raise_if_cancelled()
        error = _first_error(results)
        if error is not None:
            raise error
        return list(results)


class BuildQueue:
    """单并发工作队列

    同一 target 的所有 BuildUnit 都经过这里，卸载器子构建（会启动外部进程并等待）
    因此不会在同一 target 内互相竞争。某个任务失败后，尚未开始的任务直接跳过。
    """

    def __init__(self, cancellation_token: CancellationToken):
        self.cancellation_token = cancellation_token
        self._lock: Optional[asyncio.Lock] = None
        self._pending: List["asyncio.Future[Any]"] = []
        self._failed = False

    def _get_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    def add(self, factory: TaskFactory) -> "asyncio.Future[Any]":
        self.cancellation_token.raise_if_cancelled()
        task = asyncio.ensure_future(self._run(factory))
        self._pending.append(task)
        return task

    async def _run(self, factory: TaskFactory) -> Any:
        async with self._get_lock():
            self.cancellation_token.raise_if_cancelled()
            if self._failed:
                raise BuildError("队列中之前的构建已失败，跳过")
            try:
                return await factory()
            except BaseException:
                self._failed = True
                raise

    async def await_tasks(self) -> List[Any]:
        """等待队列清空，抛出第一个失败"""
        pending, self._pending = self._pending, []
        if not pending:
            return []
        debug(f"等待构建队列中的 {len(pending)} 个任务")
        results = await asyncio.gather(*pending, return_exceptions=True)
        error = _first_error(results)
        if error is not None:
            raise error
        return list(results)
