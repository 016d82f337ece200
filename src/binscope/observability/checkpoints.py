"""Bounded, append-only checkpoint timeline with synchronous trigger dispatch."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from dataclasses import replace
from typing import Final

from binscope.constants import CHECKPOINT_CAPACITY, CHECKPOINT_CONTEXT_MAX, CHECKPOINT_ID_MAX
from binscope.domain.models import Checkpoint, CheckpointCategory, JSONValue
from binscope.observability.clock import Clock, SystemClock, format_wallclock
from binscope.observability.triggers import TriggerRegistry, pattern_matches

UNKNOWN_ID: Final[str] = "UNKNOWN"
INIT_ID: Final[str] = "SYSTEM: checkpoint_system_initialized"
CLEANUP_ID: Final[str] = "SYSTEM: checkpoint_system_cleanup"
OVERFLOW_ID: Final[str] = "LOG: overflow"
TRIGGER_ERROR_ID: Final[str] = "TRIGGER: error"


class CheckpointLog:
    """Run timeline of categorized checkpoints.

    Capacity bounds ordinary entries. The ``LOG: overflow`` meta-record and the cleanup
    record are always stored, so at most ``capacity + 2`` records exist. Triggers run on
    the appending thread before :meth:`log` returns; a trigger that calls back into
    :meth:`log` has that nested entry dropped. The cleanup record is terminal and is not
    dispatched.
    """

    def __init__(
        self,
        *,
        registry: TriggerRegistry | None = None,
        clock: Clock | None = None,
        capacity: int = CHECKPOINT_CAPACITY,
        id_max: int = CHECKPOINT_ID_MAX,
        context_max: int = CHECKPOINT_CONTEXT_MAX,
    ) -> None:
        _validate_positive_int(capacity, "capacity")
        _validate_positive_int(id_max, "id_max")
        _validate_positive_int(context_max, "context_max")

        self._registry = registry if registry is not None else TriggerRegistry()
        self._clock = clock if clock is not None else SystemClock()
        self._capacity = capacity
        self._id_max = id_max
        self._context_max = context_max
        self._lock = threading.RLock()
        self._dispatching = threading.local()
        self._entries: list[Checkpoint] = []
        self._ordinary_count = 0
        self._dropped = 0
        self._dropped_reentrant = 0
        self._overflowed = False
        self._closed = False
        self._t0 = self._clock.monotonic()

    @property
    def registry(self) -> TriggerRegistry:
        return self._registry

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def overflowed(self) -> bool:
        with self._lock:
            return self._overflowed

    @property
    def dropped_count(self) -> int:
        """Entries dropped because the log was full or closed."""

        with self._lock:
            return self._dropped

    @property
    def dropped_reentrant_count(self) -> int:
        with self._lock:
            return self._dropped_reentrant

    def init(self) -> Checkpoint | None:
        """Reset the timeline, restart the offset origin, and record initialization."""

        with self._lock:
            self._entries.clear()
            self._ordinary_count = 0
            self._dropped = 0
            self._dropped_reentrant = 0
            self._overflowed = False
            self._closed = False
            self._t0 = self._clock.monotonic()
        return self.log(INIT_ID, CheckpointCategory.LOAD, "checkpoint system ready")

    def log(
        self,
        checkpoint_id: str | None,
        category: CheckpointCategory | str | None = CheckpointCategory.MISC,
        context: str | None = None,
    ) -> Checkpoint | None:
        """Append a checkpoint and dispatch it. Returns the stored record, if any."""

        if getattr(self._dispatching, "active", False):
            with self._lock:
                self._dropped_reentrant += 1
            return None
        return self._append(
            _normalize_text(checkpoint_id, self._id_max) or UNKNOWN_ID,
            CheckpointCategory.coerce(category),
            _normalize_text(context, self._context_max),
            reserved=False,
        )

    def cleanup(self) -> Checkpoint | None:
        """Record the terminal cleanup entry and close the log to further appends."""

        with self._lock:
            if self._closed:
                return self._entries[-1] if self._entries else None
        stored = self._append(
            CLEANUP_ID,
            CheckpointCategory.EXIT,
            f"{self.count()} checkpoints recorded",
            reserved=True,
            dispatch=False,
        )
        with self._lock:
            self._closed = True
        return stored

    def count(self) -> int:
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        return self.count()

    def get(self, index: int) -> Checkpoint:
        with self._lock:
            return self._entries[index]

    def __iter__(self) -> Iterator[Checkpoint]:
        return iter(self.entries())

    def entries(self) -> tuple[Checkpoint, ...]:
        """Snapshot of stored checkpoints in append order."""

        with self._lock:
            return tuple(self._entries)

    def matching(self, pattern: str) -> tuple[Checkpoint, ...]:
        """Return stored checkpoints whose id matches a trigger-style pattern."""

        return tuple(entry for entry in self.entries() if pattern_matches(pattern, entry.id))

    def by_category(self, category: CheckpointCategory | str) -> tuple[Checkpoint, ...]:
        wanted = CheckpointCategory.coerce(category)
        return tuple(entry for entry in self.entries() if entry.category is wanted)

    def to_json_records(self) -> list[JSONValue]:
        return [entry.to_dict() for entry in self.entries()]

    def _append(
        self,
        checkpoint_id: str,
        category: CheckpointCategory,
        context: str,
        *,
        reserved: bool,
        dispatch: bool = True,
    ) -> Checkpoint | None:
        overflow_record: Checkpoint | None = None
        with self._lock:
            if self._closed:
                self._dropped += 1
                return None
            if not reserved and self._ordinary_count >= self._capacity:
                self._dropped += 1
                if self._overflowed:
                    return None
                self._overflowed = True
                overflow_record = self._store_locked(
                    OVERFLOW_ID,
                    CheckpointCategory.MISC,
                    f"capacity {self._capacity} reached; further checkpoints dropped",
                )
            else:
                entry = self._store_locked(checkpoint_id, category, context)
                if not reserved:
                    self._ordinary_count += 1

        if overflow_record is not None:
            self._dispatch(overflow_record)
            return None
        if not dispatch:
            return entry
        return self._dispatch(entry)

    def _store_locked(
        self,
        checkpoint_id: str,
        category: CheckpointCategory,
        context: str,
    ) -> Checkpoint:
        offset = max(0.0, self._clock.monotonic() - self._t0)
        if self._entries and offset < self._entries[-1].offset_seconds:
            offset = self._entries[-1].offset_seconds
        entry = Checkpoint(
            index=len(self._entries),
            id=checkpoint_id,
            category=category,
            context=context,
            offset_seconds=offset,
            wallclock=format_wallclock(self._clock.now()),
        )
        self._entries.append(entry)
        return entry

    def _dispatch(self, entry: Checkpoint) -> Checkpoint:
        self._dispatching.active = True
        try:
            outcome = self._registry.dispatch(entry)
        finally:
            self._dispatching.active = False

        stored = entry
        if outcome.any_fired:
            stored = replace(entry, trigger_fired=True)
            with self._lock:
                if entry.index < len(self._entries) and self._entries[entry.index] is entry:
                    self._entries[entry.index] = stored

        for fault in outcome.faults:
            self._append(
                TRIGGER_ERROR_ID,
                CheckpointCategory.MISC,
                _normalize_text(fault.describe(), self._context_max),
                reserved=False,
                dispatch=False,
            )
        return stored


def _normalize_text(value: str | None, limit: int) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        value = str(value)
    text = value.strip()
    if len(text) > limit:
        return text[:limit]
    return text


def _validate_positive_int(value: int, field_name: str) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"{field_name} must be an integer, got {type(value).__name__}")
    if value <= 0:
        raise ValueError(f"{field_name} must be > 0")


__all__ = [
    "CLEANUP_ID",
    "INIT_ID",
    "OVERFLOW_ID",
    "TRIGGER_ERROR_ID",
    "UNKNOWN_ID",
    "CheckpointLog",
]
