from __future__ import annotations

import enum
import threading
from typing import Callable, List, Optional


class TaskStatus(enum.Enum):
    WAITING = "waiting"
    PROCESSING = "processing"
    FINISHED = "finished"
    CANCELED = "canceled"
    ERROR = "error"


class TaskCancelled(RuntimeError):
    def __init__(self, message: str = "Cancelled"):
        super().__init__(message)


class AbstractTask:
    """Base for work executed on the host thread pool.

    Subclasses implement :meth:`run` and report through :meth:`set_status`
    and :meth:`set_progress`. Progress never moves backwards.
    """

    def __init__(self):
        self._status = TaskStatus.WAITING
        self._progress = 0.0
        self._cancelled = threading.Event()
        self.error_message: Optional[str] = None
        self._listeners: List[Callable[["AbstractTask"], None]] = []

    @property
    def description(self) -> str:
        return type(self).__name__

    @property
    def status(self) -> TaskStatus:
        return self._status

    def add_listener(self, listener: Callable[["AbstractTask"], None]) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def set_status(self, status: TaskStatus) -> None:
        self._status = status
        self._notify()

    @property
    def progress(self) -> float:
        return self._progress

    def set_progress(self, value: float) -> None:
        self._progress = min(1.0, max(self._progress, float(value)))
        self._notify()

    def cancel(self) -> None:
        self._cancelled.set()
        if self._status in (TaskStatus.WAITING, TaskStatus.PROCESSING):
            self.set_status(TaskStatus.CANCELED)

    def is_canceled(self) -> bool:
        return self._cancelled.is_set()

    def run(self) -> None:
        raise NotImplementedError
