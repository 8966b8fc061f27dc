# =============================================================================
# WS Connector -- Broadcast Registry
# =============================================================================

from __future__ import annotations

from collections import defaultdict

from .types import BroadcastCallback


class BroadcastRegistry:
    """Subject -> subscribers, in registration order.

    Append-only for the life of one connection cycle. Subscribers are not
    carried over to the next cycle.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[BroadcastCallback]] = defaultdict(list)

    def subscribe(self, subject: str, callback: BroadcastCallback) -> None:
        self._subscribers[subject].append(callback)

    def subscribers(self, subject: str | int | None) -> tuple[BroadcastCallback, ...]:
        """Snapshot of the subscribers for *subject* (empty if none)."""
        if subject not in self._subscribers:
            return ()
        return tuple(self._subscribers[subject])

    @property
    def subjects(self) -> set[str]:
        return set(self._subscribers)

    def __len__(self) -> int:
        return sum(len(subs) for subs in self._subscribers.values())
