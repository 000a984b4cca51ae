"""
Attestation Gateway - Record Store Adapter

Thin facade over the external append-only attestation ledger. It holds
no state beyond the delegation check: allow-listed identities may write,
allow-listed identities and the owner may revoke.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import logging
from typing import Optional, Protocol, Sequence

from .allowlist import AllowListGate, Ownership
from .errors import IncompleteWrite, Unauthorized
from .events import BatchRevoked, BatchSubmitted, EventBus, LedgerChanged
from .models import RecordGroup, RevocationGroup, to_identity, total_entries
from .state import StateDB

logger = logging.getLogger(__name__)


class AttestationLedgerProtocol(Protocol):
    """The narrow interface consumed from the external ledger."""

    def multi_attest(self, groups: Sequence[RecordGroup], attester: str) -> list[str]:
        ...

    def multi_revoke(self, groups: Sequence[RevocationGroup], revoker: str) -> None:
        ...


class RecordStoreAdapter:
    """
    Forwards batched writes and revocations to the ledger.

    `address` is the identity the ledger sees as attester for every
    record written through this adapter.
    """

    def __init__(
        self,
        db: StateDB,
        gate: AllowListGate,
        ledger: AttestationLedgerProtocol,
        address: str,
        events: Optional[EventBus] = None,
    ):
        self.db = db
        self.gate = gate
        self.ownership: Ownership = gate.ownership
        self.ledger = ledger
        self.address = to_identity(address)
        self.events = events or gate.events

    def set_ledger(self, caller: str, ledger: AttestationLedgerProtocol):
        """Point the adapter at another ledger deployment. Owner only."""
        self.ownership.require_owner(caller)
        self.ledger = ledger
        self.events.emit(LedgerChanged(ledger=type(ledger).__name__))
        logger.info("Record store ledger set to %r", ledger)

    def write_batch(self, caller: str, groups: Sequence[RecordGroup]) -> list[str]:
        """
        Write all entries of `groups` and return their record ids.

        Ids come back in submission order, one per entry. The allow-list
        check and the write happen under one lock.
        """
        groups = list(groups)
        expected = total_entries(groups)

        with self.db.transaction():
            if not self.gate.is_authorized(caller):
                raise Unauthorized(caller, "submit attestations")

            uids = list(self.ledger.multi_attest(groups, self.address))
            if len(uids) != expected:
                logger.error(
                    "Ledger returned %d ids for %d records submitted by %s",
                    len(uids), expected, caller,
                )
                raise IncompleteWrite(expected, len(uids))
            self.events.emit(
                BatchSubmitted(submitter=to_identity(caller), count=len(uids), uids=tuple(uids))
            )

        logger.info("Wrote %d records for %s", len(uids), caller)
        return uids

    def revoke_batch(self, caller: str, groups: Sequence[RevocationGroup]):
        groups = list(groups)
        count = sum(len(group.entries) for group in groups)

        with self.db.transaction():
            if not (self.gate.is_authorized(caller) or self.ownership.is_owner(caller)):
                raise Unauthorized(caller, "revoke attestations")

            self.ledger.multi_revoke(groups, self.address)
            self.events.emit(BatchRevoked(revoker=to_identity(caller), count=count))

        logger.info("Revoked %d records for %s", count, caller)
