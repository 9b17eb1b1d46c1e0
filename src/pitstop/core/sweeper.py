from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

from pitstop.util.logger import setup_logger

if TYPE_CHECKING:
    from datetime import datetime
    from types import TracebackType

    from pitstop.core.ops import TaskStore

logger = setup_logger("pitstop", is_stream=True, is_file=True)

DEFAULT_INTERVAL_SECONDS = 60.0


class OverdueSweeper:
    """期限切れタスクを定期的に delayed へ遷移させるループ。

    start() で即座に1回実行し、その後 interval_seconds ごとに実行する。
    1回の実行 (tick) は同期処理で完結するため、同じイベントループ上の
    他の TaskStore 操作と交差しない。stop() / aclose() でループを確実に止める。

        async with OverdueSweeper(store, interval_seconds=60) as sweeper:
            ...
    """

    def __init__(self, store: TaskStore, *, interval_seconds: float = DEFAULT_INTERVAL_SECONDS) -> None:
        if interval_seconds <= 0:
            _msg = f"interval_seconds must be positive (got {interval_seconds})"
            raise ValueError(_msg)
        self.store = store
        self.interval_seconds = float(interval_seconds)
        self.ticks = 0
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def tick(self, now: datetime | None = None) -> bool:
        """1回分の検出を実行する。変更があれば True。"""
        self.ticks += 1
        try:
            return self.store.apply_sweep(now)
        except Exception:
            logger.exception("Overdue sweep failed")
            return False

    async def _run(self) -> None:
        while True:
            self.tick()
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> asyncio.Task[None]:
        """実行中のイベントループ上でループを開始する。二重起動はしない。"""
        if self._task is not None and not self._task.done():
            return self._task
        self._task = asyncio.get_running_loop().create_task(self._run(), name="pitstop-overdue-sweeper")
        logger.debug("Overdue sweeper started (interval=%ss)", self.interval_seconds)
        return self._task

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            logger.debug("Overdue sweeper stopped")

    async def aclose(self) -> None:
        task = self._task
        self.stop()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._task = None

    async def __aenter__(self) -> OverdueSweeper:
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
