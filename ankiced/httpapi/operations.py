"""Bounded in-memory history of asynchronous cleaner operations."""

from __future__ import annotations

import dataclasses
import enum
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from ankiced.httpapi.errors import ErrorPayload, build_error_payload, map_error_code
from ankiced.models import CleanerProgress, DryRunSummary, to_json_dict
from ankiced.presentation import format_debug_error, format_error

# Capacity of the history; the oldest finished operations are evicted first.
DEFAULT_OPERATION_STORE_CAPACITY = 256


def _utc_timestamp() -> str:
    now = datetime.now(timezone.utc)
    text = now.strftime("%Y-%m-%dT%H:%M:%S")
    if now.microsecond:
        text += f".{now.microsecond:06d}".rstrip("0")
    return text + "Z"


class OperationStatus(str, enum.Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class OperationState:
    """The state of one asynchronous operation."""

    id: str
    kind: str
    status: OperationStatus = OperationStatus.RUNNING
    started_at: str = ""
    finished_at: str = ""
    progress: CleanerProgress = field(default_factory=CleanerProgress)
    summary: DryRunSummary = field(default_factory=DryRunSummary)
    output: str = ""
    error: Optional[ErrorPayload] = None

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON form, leaving out empty optional members."""
        data: dict[str, Any] = {
            "operation_id": self.id,
            "kind": self.kind,
            "status": self.status.value,
            "started_at": self.started_at,
        }
        if self.finished_at:
            data["finished_at"] = self.finished_at
        data["progress"] = to_json_dict(self.progress)
        data["summary"] = to_json_dict(self.summary)
        if self.output:
            data["output"] = self.output
        if self.error is not None:
            data["error"] = self.error.to_dict()
        return data


class OperationStore:
    """Thread-safe operation history with bounded size."""

    def __init__(self, capacity: int = DEFAULT_OPERATION_STORE_CAPACITY) -> None:
        self._lock = threading.Lock()
        self._items: OrderedDict[str, OperationState] = OrderedDict()
        self._capacity = capacity

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def create(self, op_id: str, kind: str) -> OperationState:
        """Start tracking a running operation, replacing any with the same id."""
        op = OperationState(id=op_id, kind=kind, started_at=_utc_timestamp())
        with self._lock:
            existed = op_id in self._items
            self._items[op_id] = op
            self._items.move_to_end(op_id)
            if not existed:
                self._evict_excess()
            return dataclasses.replace(op)

    def get(self, op_id: str) -> Optional[OperationState]:
        """Return a copy of the operation, or ``None`` when unknown."""
        with self._lock:
            op = self._items.get(op_id)
            return None if op is None else dataclasses.replace(op)

    def succeed(self, op_id: str, output: str, summary: DryRunSummary) -> None:
        """Mark an operation finished with its output and summary."""
        with self._lock:
            op = self._items.get(op_id)
            if op is None:
                return
            self._items[op_id] = dataclasses.replace(
                op,
                status=OperationStatus.SUCCEEDED,
                finished_at=_utc_timestamp(),
                output=output,
                summary=summary,
                progress=CleanerProgress(
                    total=op.progress.total,
                    processed=summary.processed,
                    changed=summary.changed,
                    skipped=summary.skipped,
                    errors=summary.errors,
                    stage="finished",
                    summary=summary,
                ),
            )
            self._evict_excess()

    def fail(self, op_id: str, err: BaseException) -> None:
        """Mark an operation failed and attach the API error payload."""
        code = map_error_code(err)
        with self._lock:
            op = self._items.get(op_id)
            if op is None:
                return
            self._items[op_id] = dataclasses.replace(
                op,
                status=OperationStatus.FAILED,
                finished_at=_utc_timestamp(),
                progress=dataclasses.replace(
                    op.progress, stage="failed", errors=op.progress.errors + 1
                ),
                error=build_error_payload(
                    format_error(err), code, format_debug_error(err), op_id
                ),
            )
            self._evict_excess()

    def progress(self, op_id: str, progress: CleanerProgress) -> None:
        """Record the latest progress of a tracked operation."""
        with self._lock:
            op = self._items.get(op_id)
            if op is None:
                return
            self._items[op_id] = dataclasses.replace(op, progress=progress)

    def _evict_excess(self) -> None:
        # Running operations are never evicted so their progress stays pollable.
        if self._capacity <= 0:
            return
        while len(self._items) > self._capacity:
            victim = next(
                (
                    key
                    for key, op in self._items.items()
                    if op.status is not OperationStatus.RUNNING
                ),
                None,
            )
            if victim is None:
                return
            del self._items[victim]