"""Pattern-keyed reactive callbacks fired synchronously on every new checkpoint."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass

from binscope.constants import TRIGGER_CAPACITY
from binscope.domain.models import Checkpoint

TriggerCallback = Callable[[Checkpoint], object]

WILDCARD = "*"


class DuplicateTriggerError(ValueError):
    """Raised when a trigger name is registered twice."""


@dataclass(slots=True)
class Trigger:
    pattern: str
    name: str
    callback: TriggerCallback
    enabled: bool = True

    def matches(self, checkpoint_id: str) -> bool:
        return pattern_matches(self.pattern, checkpoint_id)


@dataclass(frozen=True, slots=True)
class TriggerFault:
    """Callback failure captured without interrupting the checkpoint producer."""

    trigger_name: str
    checkpoint_id: str
    error_type: str
    message: str

    def describe(self) -> str:
        detail = self.message or self.error_type
        return f"{self.trigger_name}: {self.error_type}: {detail}"


@dataclass(frozen=True, slots=True)
class TriggerDispatch:
    fired: tuple[str, ...] = ()
    faults: tuple[TriggerFault, ...] = ()

    @property
    def any_fired(self) -> bool:
        return bool(self.fired)


def pattern_matches(pattern: str, checkpoint_id: str) -> bool:
    """Match ``*``, ``PREFIX*`` or an exact id. No backtracking, no regex."""

    if pattern == WILDCARD:
        return True
    if pattern.endswith(WILDCARD):
        return checkpoint_id.startswith(pattern[:-1])
    return pattern == checkpoint_id


class TriggerRegistry:
    """Ordered set of named triggers; dispatch follows registration order."""

    def __init__(self, *, capacity: int = TRIGGER_CAPACITY) -> None:
        if not isinstance(capacity, int) or isinstance(capacity, bool):
            raise ValueError(f"capacity must be an integer, got {type(capacity).__name__}")
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        self._capacity = capacity
        self._triggers: dict[str, Trigger] = {}
        self._lock = threading.RLock()

    def register(self, pattern: str, name: str, callback: TriggerCallback) -> Trigger:
        """Add a trigger. Names are unique within the registry."""

        if not isinstance(pattern, str) or not pattern:
            raise ValueError("pattern must be a non-empty string")
        if not isinstance(name, str) or not name.strip():
            raise ValueError("name must be a non-empty string")
        if not callable(callback):
            raise ValueError("callback must be callable")

        with self._lock:
            if name in self._triggers:
                raise DuplicateTriggerError(f"trigger already registered: {name!r}")
            if len(self._triggers) >= self._capacity:
                raise ValueError(f"trigger registry is full ({self._capacity} triggers)")
            trigger = Trigger(pattern=pattern, name=name, callback=callback)
            self._triggers[name] = trigger
        return trigger

    def enable(self, name: str) -> bool:
        """Enable a trigger. Returns ``True`` when the name exists."""

        return self._set_enabled(name, True)

    def disable(self, name: str) -> bool:
        """Disable a trigger without removing it. Returns ``True`` when the name exists."""

        return self._set_enabled(name, False)

    def is_enabled(self, name: str) -> bool:
        with self._lock:
            trigger = self._triggers.get(name)
            return trigger is not None and trigger.enabled

    def get(self, name: str) -> Trigger | None:
        with self._lock:
            return self._triggers.get(name)

    def names(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._triggers)

    def __len__(self) -> int:
        with self._lock:
            return len(self._triggers)

    def dispatch(self, checkpoint: Checkpoint) -> TriggerDispatch:
        """Invoke every enabled matching trigger in registration order."""

        with self._lock:
            triggers = tuple(self._triggers.values())

        fired: list[str] = []
        faults: list[TriggerFault] = []
        for trigger in triggers:
            if not trigger.enabled or not trigger.matches(checkpoint.id):
                continue
            fired.append(trigger.name)
            try:
                trigger.callback(checkpoint)
            except Exception as exc:  # noqa: BLE001 - callback faults are recorded, never raised.
                faults.append(
                    TriggerFault(
                        trigger_name=trigger.name,
                        checkpoint_id=checkpoint.id,
                        error_type=type(exc).__name__,
                        message=str(exc),
                    )
                )
        return TriggerDispatch(fired=tuple(fired), faults=tuple(faults))

    def _set_enabled(self, name: str, enabled: bool) -> bool:
        with self._lock:
            trigger = self._triggers.get(name)
            if trigger is None:
                return False
            trigger.enabled = enabled
            return True


__all__ = [
    "WILDCARD",
    "DuplicateTriggerError",
    "Trigger",
    "TriggerCallback",
    "TriggerDispatch",
    "TriggerFault",
    "TriggerRegistry",
    "pattern_matches",
]
