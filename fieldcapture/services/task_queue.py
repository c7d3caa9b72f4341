"""
Field Capture Orders
In-process task queue.

Runs follow-up pipeline stages (TriggerExtraction → IngestResult) off the
request thread. Tasks run in daemon threads inside a fresh app context, so
they get their own database session.

Pending and running tasks stay in the registry until they finish; only the
newest MAX_FINISHED_TASKS finished entries are kept for status lookups.

With TASK_QUEUE_ASYNC = False (testing) tasks run inline on the calling
thread and share its app context.
"""

import logging
import threading
import uuid
from collections import deque
from datetime import datetime, timezone

from flask import current_app

logger = logging.getLogger(__name__)

# task_id → {"name", "status", "submitted_at", "finished_at", "error"}
_tasks: dict[str, dict] = {}
_finished: deque = deque()  # finished task ids, oldest first
_lock = threading.Lock()

MAX_FINISHED_TASKS = 200


class TaskQueue:
    """Submits callables for background execution and tracks their state."""

    def enqueue(self, name: str, fn, *args, **kwargs) -> str:
        """
        Submit fn(*args, **kwargs).

        Returns:
            task id (str). Failures are logged and recorded on the task,
            never raised to the caller.
        """
        task_id = str(uuid.uuid4())
        with _lock:
            _tasks[task_id] = {
                "id": task_id,
                "name": name,
                "status": "pending",
                "submitted_at": datetime.now(timezone.utc).isoformat(),
                "finished_at": None,
                "error": None,
            }

        if not current_app.config.get("TASK_QUEUE_ASYNC", True):
            self._run(task_id, fn, args, kwargs)
            return task_id

        app = current_app._get_current_object()
        t = threading.Thread(
            target=self._execute_in_background,
            args=(app, task_id, fn, args, kwargs),
            daemon=True,
            name=f"task-{name}",
        )
        t.start()
        return task_id

    def get_status(self, task_id: str) -> dict | None:
        with _lock:
            task = _tasks.get(task_id)
            return dict(task) if task else None

    def clear(self) -> None:
        with _lock:
            _tasks.clear()
            _finished.clear()

    # ── Internal ──────────────────────────────────────────────────────────

    def _execute_in_background(self, app, task_id, fn, args, kwargs):
        with app.app_context():
            self._run(task_id, fn, args, kwargs)

    def _run(self, task_id, fn, args, kwargs):
        self._set(task_id, status="running")
        try:
            fn(*args, **kwargs)
        except Exception as exc:
            logger.exception("Task %s failed", task_id)
            self._finish(task_id, status="failed", error=str(exc))
            return
        self._finish(task_id, status="completed")

    def _finish(self, task_id, **fields):
        fields["finished_at"] = datetime.now(timezone.utc).isoformat()
        with _lock:
            if task_id not in _tasks:
                return
            _tasks[task_id].update(fields)
            _finished.append(task_id)
            while len(_finished) > MAX_FINISHED_TASKS:
                _tasks.pop(_finished.popleft(), None)

    def _set(self, task_id, **fields):
        with _lock:
            if task_id in _tasks:
                _tasks[task_id].update(fields)


task_queue = TaskQueue()
