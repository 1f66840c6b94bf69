from __future__ import annotations

from typing import Any, Callable, List, Optional, Sequence


class FakeProvider:
    """Scripted stand-in for a model provider.

    Each call consumes the next scripted reply; the last one repeats. A reply
    that is an exception instance is raised instead of returned. ``on_call``
    runs before each reply, e.g. to sleep or advance a fake clock.
    """

    def __init__(self, *replies: Any, name: str = "fake", on_call: Optional[Callable[[], None]] = None) -> None:
        self.name = name
        self.replies: List[Any] = list(replies) or [""]
        self.calls: List[dict[str, Any]] = []
        self.on_call = on_call

    def complete(
        self,
        system_prompt: str,
        messages: Sequence[dict[str, str]],
        *,
        temperature: float,
        max_tokens: int,
    ) -> str:
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "messages": list(messages),
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        if self.on_call is not None:
            self.on_call()
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, BaseException):
            raise reply
        return reply
