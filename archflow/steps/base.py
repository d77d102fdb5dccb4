"""Abstractions shared by the five wizard step controllers."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Protocol

from ..utils.run_logger import RunLogger


class StepController(Protocol):
    """A unit of work owning one wizard step."""

    name: str

    def view(self) -> Any:
        ...


class StepJob:
    """One-shot handle for the background work a controller launches.

    The first ``schedule`` call creates the task; later calls hand back that same
    task, so re-activating a controller never fans out a second time.
    """

    def __init__(self) -> None:
        self._task: Optional[asyncio.Task] = None

    @property
    def started(self) -> bool:
        return self._task is not None

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def schedule(self, work: Callable[[], Awaitable[None]]) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(work())
        return self._task


@dataclass(slots=True)
class BaseStep:
    """Convenience base for controllers needing run logging."""

    name: str
    run_id: str
    logger: RunLogger

    def log_prompt(self, prompt: str) -> None:
        """Persist the prompt."""
        self.logger.log_prompt(self.run_id, self.name, prompt)

    def log_response(self, response: object) -> None:
        """Persist the response."""
        self.logger.log_response(self.run_id, self.name, response)
