# inventory/refresh.py
# Фоновое обновление индекса: стартовая сборка, таймер с джиттером, ручной запуск.
from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, Set

from inventory.index import SkuIndex
from inventory.store import IndexStore

logger = logging.getLogger("inventory.refresh")

BuildFn = Callable[[], Awaitable[SkuIndex]]
DoneFn = Callable[[Optional[BaseException]], Awaitable[None]]
SleepFn = Callable[[float], Awaitable[None]]


class RefreshInProgress(RuntimeError):
    """single_flight: сборка уже идёт, новая не запускается."""


def effective_interval(minutes, floor: int = 5, default: int = 20) -> int:
    try:
        value = int(minutes)
    except (TypeError, ValueError):
        value = default
    return max(floor, value)


class RefreshScheduler:
    """
    Два независимых источника сборок — таймер и ручной запуск — пишут в один IndexStore.

    По умолчанию сборки не исключают друг друга: каждая доходит до конца
    и делает replace(), в сторе остаётся та, что закончилась последней.
    single_flight=True — пока идёт сборка, новые пропускаются.
    """

    def __init__(
        self,
        store: IndexStore,
        build: BuildFn,
        interval_min: int = 20,
        jitter_max_sec: int = 30,
        single_flight: bool = False,
        on_failure: Optional[Callable[[], Awaitable[object]]] = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._store = store
        self._build = build
        self.interval_min = effective_interval(interval_min)
        self._jitter_max_sec = max(0, int(jitter_max_sec))
        self.jitter_sec = 0
        self._single_flight = single_flight
        self._on_failure = on_failure
        self._sleep = sleep
        self._in_flight = 0
        self._tasks: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return self._in_flight

    async def refresh_once(self, reason: str = "manual") -> SkuIndex:
        """
        Собрать и опубликовать новый снимок.
        При ошибке стор не трогаем, исключение уходит вызывающему.
        """
        if self._single_flight and self._in_flight:
            raise RefreshInProgress(f"refresh already running, {reason} skipped")

        self._in_flight += 1
        try:
            index = await self._build()
        except Exception:
            await self._run_failure_diagnostics()
            raise
        finally:
            self._in_flight -= 1

        self._store.replace(index)
        logger.info(
            "SKU index refreshed (%s): %d types, %d cars total",
            reason, len(index.categories), index.total_subcategories,
        )
        return index

    async def _run_failure_diagnostics(self) -> None:
        if self._on_failure is None:
            return
        try:
            await self._on_failure()
        except Exception:
            logger.exception("Failure diagnostics raised")

    async def _refresh_logged(self, reason: str) -> None:
        try:
            await self.refresh_once(reason)
        except RefreshInProgress as e:
            logger.info("%s", e)
        except Exception:
            # ошибка сборки не должна останавливать фоновый цикл
            logger.exception("%s refresh failed, previous snapshot kept", reason.capitalize())

    async def _periodic(self) -> None:
        await self._sleep(self.jitter_sec)
        while True:
            await self._sleep(self.interval_min * 60)
            # сборка идёт своей задачей: долгая сборка не сдвигает следующий тик
            self._spawn(self._refresh_logged("scheduled"))

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def start(self) -> None:
        self.jitter_sec = random.randint(0, self._jitter_max_sec)
        self._spawn(self._refresh_logged("initial"))
        self._spawn(self._periodic())
        logger.info("Background refresh every %d min (jitter %ds)", self.interval_min, self.jitter_sec)

    def trigger(self, on_done: Optional[DoneFn] = None) -> asyncio.Task:
        """
        Ручной запуск: возвращается сразу, сборка идёт отдельной задачей.
        on_done(None) — успех, on_done(exc) — ошибка.
        """

        async def _run() -> None:
            error: Optional[BaseException] = None
            try:
                await self.refresh_once("manual")
            except RefreshInProgress as e:
                logger.info("%s", e)
                error = e
            except Exception as e:
                logger.exception("Manual refresh failed, previous snapshot kept")
                error = e

            if on_done is not None:
                try:
                    await on_done(error)
                except Exception:
                    logger.exception("Could not deliver refresh result notice")

        return self._spawn(_run())

    async def stop(self) -> None:
        tasks = list(self._tasks)
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
