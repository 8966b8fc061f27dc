# =============================================================================
# WS Connector -- Connection-Scoped State
# =============================================================================
#
# Everything that must not outlive one transport: the session, pending
# correlations (and their id counter), broadcast subscribers. The connector
# swaps in a new ConnectionContext on every cycle instead of clearing fields.
# =============================================================================

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from .broadcast import BroadcastRegistry
from .correlation import CorrelationTable


@dataclass
class ConnectionContext:
    """Per-cycle state owned by the connector."""

    session: Any = None
    correlations: CorrelationTable = field(default_factory=CorrelationTable)
    broadcasts: BroadcastRegistry = field(default_factory=BroadcastRegistry)
    created_at: float = field(default_factory=time.monotonic)

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None
