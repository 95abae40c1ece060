"""Process-wide serialization of sync tasks.

Only one sync task (orders, sends, menu) runs at a time. The gate is a plain
object created by the composition root and handed to whoever starts syncs;
it is cooperative and does not lock the stores themselves.
"""

from __future__ import annotations

import asyncio
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Deque, Dict, Literal, Optional

from intermediator.json_logger import JsonLogger, log_event

GatePolicy = Literal["wait", "reject"]


@dataclass(frozen=True)
class SyncTask:
    id: str
    label: str


class SyncAlreadyInProgress(RuntimeError):
    def __init__(self, task: SyncTask, current: Optional[SyncTask]) -> None:
        running = current.label if current else "outra sincronização"
        super().__init__(f"Sincronização já em andamento: {running}")
        self.task = task
        self.current = current


class SyncGate:
    def __init__(self, *, logger: JsonLogger | None = None) -> None:
        self.logger = logger
        self.current: Optional[SyncTask] = None
        self.backlog: Deque[SyncTask] = deque()
        self._turns: Dict[SyncTask, asyncio.Event] = {}

    @property
    def is_active(self) -> bool:
        return self.current is not None

    def start(self, task: SyncTask) -> bool:
        """Claim the gate, or queue ``task`` and return ``False`` when busy."""

        if self.current is None:
            self.current = task
            self._log("sync started", task)
            return True
        self.backlog.append(task)
        self._turns[task] = asyncio.Event()
        self._log("sync queued", task, backlog=len(self.backlog))
        return False

    def finish(self) -> Optional[SyncTask]:
        """Release the current task and promote the next queued one, if any."""

        if self.current is not None:
            self._log("sync finished", self.current)
        if not self.backlog:
            self.current = None
            return None
        promoted = self.backlog.popleft()
        self.current = promoted
        turn = self._turns.pop(promoted, None)
        if turn is not None:
            turn.set()
        return promoted

    def withdraw(self, task: SyncTask) -> bool:
        self._turns.pop(task, None)
        try:
            self.backlog.remove(task)
        except ValueError:
            return False
        return True

    async def wait_for_turn(self, task: SyncTask) -> None:
        if self.current == task:
            return
        turn = self._turns.get(task)
        if turn is None:
            raise RuntimeError(f"task {task.id} is neither running nor queued")
        await turn.wait()

    @asynccontextmanager
    async def hold(self, task: SyncTask, *, policy: GatePolicy = "wait") -> AsyncIterator[SyncTask]:
        if not self.start(task):
            if policy == "reject":
                self.withdraw(task)
                raise SyncAlreadyInProgress(task, self.current)
            try:
                await self.wait_for_turn(task)
            except asyncio.CancelledError:
                if self.current == task:
                    self.finish()
                else:
                    self.withdraw(task)
                raise
        try:
            yield task
        finally:
            self.finish()

    def _log(self, message: str, task: SyncTask, **fields: object) -> None:
        if self.logger is None:
            return
        log_event(
            logger=self.logger,
            phase="gate",
            message=message,
            task_id=task.id,
            task_label=task.label,
            **fields,
        )
