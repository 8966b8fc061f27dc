# =============================================================================
# WS Connector -- Request Correlation Table
# =============================================================================

from __future__ import annotations

import time
from dataclasses import dataclass, field

from .types import Action, ResponseCallback


@dataclass(slots=True)
class PendingRequest:
    """A correlated request waiting for its response."""

    package_id: int
    action: Action
    request: str | int | None
    callback: ResponseCallback
    created_at: float = field(default_factory=time.monotonic)


class CorrelationTable:
    """Maps correlation ids to pending callbacks for one connection cycle.

    Ids start at 0 and only advance when a callback is registered, so a
    package sent without a callback carries the id the next correlated
    request will use. An entry leaves the table exactly once, through
    :meth:`resolve` or :meth:`drain`.
    """

    def __init__(self) -> None:
        self._pending: dict[int, PendingRequest] = {}
        self._next_id = 0

    @property
    def next_id(self) -> int:
        return self._next_id

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, package_id: object) -> bool:
        return package_id in self._pending

    def register(
        self,
        action: Action,
        request: str | int | None,
        callback: ResponseCallback,
    ) -> int:
        """Store *callback* under the current id and advance the counter."""
        package_id = self._next_id
        self._pending[package_id] = PendingRequest(
            package_id=package_id,
            action=action,
            request=request,
            callback=callback,
        )
        self._next_id += 1
        return package_id

    def resolve(self, package_id: int | None) -> PendingRequest | None:
        """Remove and return the entry for *package_id*, if still pending."""
        if package_id is None:
            return None
        return self._pending.pop(package_id, None)

    def drain(self) -> list[PendingRequest]:
        """Remove and return every pending entry, oldest first."""
        pending = sorted(self._pending.values(), key=lambda p: p.package_id)
        self._pending.clear()
        return pending
