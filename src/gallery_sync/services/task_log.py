from __future__ import annotations

from threading import Lock
from typing import Iterator

from gallery_sync.models import Outcome, TaskResult


class TaskResultLog:
    """Append-only record of the units a job processed, in processing order."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._results: list[TaskResult] = []

    def append(self, result: TaskResult) -> None:
        with self._lock:
            self._results.append(result)

    def snapshot(self) -> tuple[TaskResult, ...]:
        with self._lock:
            return tuple(self._results)

    def count(self, outcome: Outcome) -> int:
        with self._lock:
            return sum(1 for result in self._results if result.outcome is outcome)

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)

    def __iter__(self) -> Iterator[TaskResult]:
        return iter(self.snapshot())
