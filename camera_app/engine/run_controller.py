from PyQt6.QtCore import QObject, pyqtSignal, QThreadPool, QRunnable
from typing import Dict, Optional

from camera_app.engine.task_control import AbstractTask, TaskStatus

class JobSignals(QObject):
    progress = pyqtSignal(int)
    message = pyqtSignal(str)
    finished = pyqtSignal(object)  # the finished AbstractTask

class TaskRunnable(QRunnable):
    def __init__(self, task: AbstractTask):
        super().__init__()
        self.task = task
        self.signals = JobSignals()
        self._last_percent = -1
        self._last_status: Optional[TaskStatus] = None
        task.add_listener(self._on_task_changed)

    def run(self):
        self._emit_message(f"Started: {self.task.description}")
        try:
            self.task.run()
        except Exception as e:
            self.task.error_message = str(e)
            self.task.set_status(TaskStatus.ERROR)
        self.signals.finished.emit(self.task)

    def cancel(self):
        self.task.cancel()
        self._emit_message("Cancellation requested")

    def _on_task_changed(self, task: AbstractTask):
        percent = int(round(task.progress * 100))
        if percent != self._last_percent:
            self._last_percent = percent
            self.signals.progress.emit(percent)
        if task.status is not self._last_status:
            self._last_status = task.status
            text = f"{task.description}: {task.status.value}"
            if task.status is TaskStatus.ERROR and task.error_message:
                text += f" ({task.error_message})"
            self._emit_message(text)

    def _emit_message(self, message: str):
        self.signals.message.emit(message)

class RunController(QObject):
    job_started = pyqtSignal(object)
    job_finished = pyqtSignal(object)
    job_progress = pyqtSignal(int)
    job_message = pyqtSignal(str)

    def __init__(self, parent=None, pool: Optional[QThreadPool] = None, appctx=None):
        super().__init__(parent)
        self.appctx = appctx
        self.pool = pool or QThreadPool.globalInstance()
        self._runnables: Dict[int, TaskRunnable] = {}

    def start(self, task: AbstractTask) -> TaskRunnable:
        runnable = TaskRunnable(task)
        runnable.signals.finished.connect(self._on_finished)
        runnable.signals.progress.connect(self.job_progress)
        runnable.signals.message.connect(self.job_message)
        self._runnables[id(task)] = runnable
        if self.appctx is not None:
            self.appctx.set_job_running(True)
        self.job_started.emit(task)
        self.pool.start(runnable)
        return runnable

    def cancel(self, task: Optional[AbstractTask] = None) -> bool:
        if task is not None:
            runnable = self._runnables.get(id(task))
            if runnable is None:
                return False
            runnable.cancel()
            return True
        if not self._runnables:
            return False
        for runnable in list(self._runnables.values()):
            runnable.cancel()
        return True

    def _on_finished(self, task):
        self._runnables.pop(id(task), None)
        if self.appctx is not None:
            self.appctx.set_job_running(self.is_running())
        self.job_finished.emit(task)

    def is_running(self) -> bool:
        return bool(self._runnables)
