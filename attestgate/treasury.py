"""
Attestation Gateway - Fee Treasury

Accumulates the value attached to accepted envelopes and pays it out to
the owner on request. Every credit and withdrawal is also appended to a
journal that cannot be deleted or rewritten (a withdrawal only gains its
payout confirmation, once), so the balance can always be reconciled
against its history.

Amounts are integers in the smallest native unit, stored as text so they
are not bounded by SQLite's 64-bit integers.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .allowlist import Ownership
from .errors import TransferFailed, Unauthorized
from .events import EventBus, FeesWithdrawn
from .models import to_amount, to_identity
from .state import StateDB

logger = logging.getLogger(__name__)


# (recipient, amount) -> (success, confirmation)
Payout = Callable[[str, int], tuple[bool, str]]


class EntryKind(str, Enum):
    CREDIT = "credit"
    WITHDRAWAL = "withdrawal"


@dataclass
class TreasuryEntry:
    """One journal line."""
    kind: EntryKind
    amount: int
    counterparty: str
    confirmation: Optional[str] = None


class NativeBalances:
    """
    In-process native value accounts.

    Stands in for the chain's balance book; `transfer` matches the
    `Payout` signature.
    """

    def __init__(self):
        self._balances: dict[str, int] = {}

    def balance_of(self, identity: str) -> int:
        return self._balances.get(to_identity(identity), 0)

    def fund(self, identity: str, amount: int):
        identity = to_identity(identity)
        self._balances[identity] = self._balances.get(identity, 0) + amount

    def transfer(self, recipient: str, amount: int) -> tuple[bool, str]:
        self.fund(recipient, amount)
        return True, f"paid:{to_identity(recipient)}:{amount}"


class FeeTreasury:
    """
    Native-value balance owned by the gateway owner.

    Only the bound collector (the verifier) may credit it; only the owner
    may withdraw.
    """

    def __init__(
        self,
        db: StateDB,
        ownership: Ownership,
        collector: str,
        payout: Payout,
        events: Optional[EventBus] = None,
    ):
        self.db = db
        self.ownership = ownership
        self.collector = to_identity(collector)
        self.payout = payout
        self.events = events or ownership.events
        self._init_db()

    def _init_db(self):
        self.db.executescript("""
            CREATE TABLE IF NOT EXISTS treasury_state (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                balance TEXT NOT NULL
            );

            INSERT OR IGNORE INTO treasury_state (id, balance) VALUES (1, '0');

            CREATE TABLE IF NOT EXISTS treasury_entries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                kind TEXT NOT NULL,
                amount TEXT NOT NULL,
                counterparty TEXT NOT NULL,
                confirmation TEXT,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TRIGGER IF NOT EXISTS prevent_treasury_entry_update
            BEFORE UPDATE OF id, kind, amount, counterparty, created_at
            ON treasury_entries
            BEGIN
                SELECT RAISE(ABORT, 'UPDATE not permitted on treasury journal');
            END;

            -- A withdrawal's confirmation is filled in once, after the payout
            CREATE TRIGGER IF NOT EXISTS confirmation_set_once
            BEFORE UPDATE OF confirmation ON treasury_entries
            WHEN OLD.kind != 'withdrawal'
                OR OLD.confirmation IS NOT NULL
                OR NEW.confirmation IS NULL
            BEGIN
                SELECT RAISE(ABORT, 'Confirmation already recorded');
            END;

            CREATE TRIGGER IF NOT EXISTS prevent_treasury_entry_delete
            BEFORE DELETE ON treasury_entries
            BEGIN
                SELECT RAISE(ABORT, 'DELETE not permitted on treasury journal');
            END;
        """)

    def balance(self) -> int:
        row = self.db.fetchone("SELECT balance FROM treasury_state WHERE id = 1")
        return int(row["balance"])

    def _append(self, conn, entry: TreasuryEntry) -> int:
        cursor = conn.execute(
            """
            INSERT INTO treasury_entries (kind, amount, counterparty, confirmation)
            VALUES (?, ?, ?, ?)
            """,
            (entry.kind.value, str(entry.amount), entry.counterparty, entry.confirmation),
        )
        return cursor.lastrowid

    def _set_balance(self, conn, balance: int):
        conn.execute("UPDATE treasury_state SET balance = ? WHERE id = 1", (str(balance),))

    def credit(self, caller: str, amount: int, payer: str):
        """Add `amount` paid on behalf of `payer`. Collector only."""
        if to_identity(caller) != self.collector:
            raise Unauthorized(caller, "credit the treasury")
        amount = to_amount(amount, "amount")

        with self.db.transaction() as conn:
            self._set_balance(conn, self.balance() + amount)
            self._append(conn, TreasuryEntry(EntryKind.CREDIT, amount, to_identity(payer)))

    def withdraw_fees(self, caller: str) -> int:
        """
        Pay the whole balance to the owner. Returns the amount paid.

        The balance is zeroed and journaled before the payout runs; a
        failed payout rolls the withdrawal back and raises TransferFailed.
        The payout's confirmation is recorded on the journal line afterwards.
        """
        with self.db.transaction() as conn:
            self.ownership.require_owner(caller)
            owner = self.ownership.owner()
            amount = self.balance()

            self._set_balance(conn, 0)
            entry_id = self._append(conn, TreasuryEntry(EntryKind.WITHDRAWAL, amount, owner))

            success, confirmation = self.payout(owner, amount)
            if not success:
                logger.error("Fee withdrawal of %s to %s failed: %s", amount, owner, confirmation)
                raise TransferFailed(owner, amount, confirmation)

            if confirmation is not None:
                conn.execute(
                    "UPDATE treasury_entries SET confirmation = ? WHERE id = ?",
                    (confirmation, entry_id),
                )
            self.events.emit(FeesWithdrawn(owner=owner, amount=amount))

        logger.info("Withdrew %s to %s", amount, owner)
        return amount

    def journal(self) -> list[TreasuryEntry]:
        rows = self.db.fetchall("SELECT * FROM treasury_entries ORDER BY id")
        return [
            TreasuryEntry(
                kind=EntryKind(row["kind"]),
                amount=int(row["amount"]),
                counterparty=row["counterparty"],
                confirmation=row["confirmation"],
            )
            for row in rows
        ]

    def reconcile(self) -> dict:
        """Compare the balance with the journal totals."""
        entries = self.journal()
        credited = sum(e.amount for e in entries if e.kind == EntryKind.CREDIT)
        withdrawn = sum(e.amount for e in entries if e.kind == EntryKind.WITHDRAWAL)
        balance = self.balance()
        return {
            "credited": credited,
            "withdrawn": withdrawn,
            "balance": balance,
            "consistent": credited - withdrawn == balance,
        }
