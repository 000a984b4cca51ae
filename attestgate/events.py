"""
Attestation Gateway - Notifications

Events are for observability only. They are published after the unit
of work that produced them commits, so a rejected call emits nothing.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Optional

from .state import StateDB

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Authorized:
    identity: str


@dataclass(frozen=True)
class Deauthorized:
    identity: str


@dataclass(frozen=True)
class OwnershipTransferred:
    previous_owner: str
    new_owner: str


@dataclass(frozen=True)
class LedgerChanged:
    ledger: str


@dataclass(frozen=True)
class BatchSubmitted:
    """A batch was written to the record store."""
    submitter: str
    count: int
    uids: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class BatchRevoked:
    revoker: str
    count: int


@dataclass(frozen=True)
class EnvelopeVerified:
    """A signed envelope was accepted and its nonce consumed."""
    recipient: str
    nonce: int
    fee_paid: int
    count: int


@dataclass(frozen=True)
class FeesWithdrawn:
    owner: str
    amount: int


Subscriber = Callable[[object], None]


class EventBus:
    """
    Collects gateway events and fans them out to subscribers.

    The most recent `history_limit` published events are kept in
    `history`, oldest first. Subscribers see every event.
    """

    def __init__(self, db: Optional[StateDB] = None, history_limit: int = 1000):
        self.db = db
        self.history: deque = deque(maxlen=history_limit)
        self._subscribers: list[Subscriber] = []

    def subscribe(self, subscriber: Subscriber):
        self._subscribers.append(subscriber)

    def emit(self, event):
        """Publish `event` once the current transaction (if any) commits."""
        if self.db is None:
            self._publish(event)
        else:
            self.db.after_commit(lambda: self._publish(event))

    def _publish(self, event):
        logger.debug("event %s", event)
        self.history.append(event)
        for subscriber in self._subscribers:
            subscriber(event)

    def of_type(self, event_type) -> list:
        return [e for e in self.history if isinstance(e, event_type)]
