from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable


@dataclass(frozen=True)
class GuidanceEvent:
    event_type: str
    details: dict[str, Any] = field(default_factory=dict)
    user_id: str | None = None
    session_key: str | None = None


EventHook = Callable[[GuidanceEvent], None]


class HookRunner:
    def __init__(self) -> None:
        self._hooks: list[EventHook] = []

    def add(self, hook: EventHook) -> None:
        self._hooks.append(hook)

    def emit(self, event: GuidanceEvent) -> None:
        for hook in self._hooks:
            try:
                hook(event)
            except Exception as exc:
                # Audit sinks must not break a user-facing reply.
                print(f"guidance hook failed ({event.event_type}): {exc}")  # noqa: T201
