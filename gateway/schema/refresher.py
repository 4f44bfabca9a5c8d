from __future__ import annotations
import asyncio
from enum import Enum
from logging import getLogger
from gateway.interfaces.operation import Executor
from gateway.schema.registry import SchemaRegistry, canonical_sdl, introspect


logger = getLogger(__name__)


class RefresherState(str, Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"


class SchemaRefresher:
    """Re-introspects the upstream every `interval` seconds.

    The registry is only touched when the canonical SDL differs from the active
    schema. A failed tick is logged and the current schema keeps serving.
    """

    def __init__(self, registry: SchemaRegistry, executor: Executor, interval: float = 5.0):
        self.registry = registry
        self.executor = executor
        self.interval = interval
        self.state = RefresherState.IDLE
        self._stopping: asyncio.Event | None = None
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def refresh(self) -> bool:
        self.state = RefresherState.REFRESHING
        # Any failure, from introspection through the swap, leaves the registry as it was
        try:
            new_schema = await introspect(self.executor)
            current = self.registry.get() if self.registry.loaded else None
            if current is not None and canonical_sdl(new_schema) == canonical_sdl(current):
                logger.info("schema unchanged", extra={"event": "schema-unchanged"})
                return False
            self.registry.set(new_schema)
        except Exception as e:  # pylint: disable=broad-except
            logger.error(
                "schema refresh failed: %s",
                e,
                exc_info=True,
                extra={"event": "refresh-error"},
            )
            return False
        finally:
            self.state = RefresherState.IDLE
        logger.info("schema refreshed", extra={"event": "schema-refreshed"})
        return True

    async def _tick(self, stopping: asyncio.Event) -> None:
        while True:
            try:
                await asyncio.wait_for(stopping.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                await self.refresh()
            else:
                return

    def start(self) -> None:
        if self.running:
            return
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._tick(self._stopping), name="schema-refresh")

    async def stop(self) -> None:
        # A refresh already talking to upstream is allowed to finish; no new tick fires
        if self._task is None or self._stopping is None:
            return
        self._stopping.set()
        await self._task
        self._task = None
        self._stopping = None
