"""
Attestation Gateway - Ownership and Allow-List Gate

One administrative identity owns the gateway. It alone mutates the
allow-list of identities that may submit or revoke batches.

Allow-list mutations are strict: adding a present identity and removing
an absent one are both errors.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import logging
from typing import Optional

from .errors import AlreadyAuthorized, InvalidOwner, NotAuthorized, NotOwner
from .events import Authorized, Deauthorized, EventBus, OwnershipTransferred
from .models import ZERO_ADDRESS, to_identity
from .state import StateDB

logger = logging.getLogger(__name__)


class Ownership:
    """
    Single-owner administrative context.

    The owner is stored in the state database. On an existing database
    the stored owner wins over `initial_owner`.
    """

    def __init__(self, db: StateDB, initial_owner: str, events: Optional[EventBus] = None):
        self.db = db
        self.events = events or EventBus(db)
        self._init_db(to_identity(initial_owner))

    def _init_db(self, initial_owner: str):
        self.db.executescript("""
            CREATE TABLE IF NOT EXISTS owner_state (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                owner TEXT NOT NULL
            );

            -- The owner row is never removed
            CREATE TRIGGER IF NOT EXISTS prevent_owner_delete
            BEFORE DELETE ON owner_state
            BEGIN
                SELECT RAISE(ABORT, 'DELETE not permitted on owner_state');
            END;
        """)
        with self.db.transaction() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO owner_state (id, owner) VALUES (1, ?)",
                (initial_owner,),
            )

    def owner(self) -> str:
        row = self.db.fetchone("SELECT owner FROM owner_state WHERE id = 1")
        return row["owner"]

    def is_owner(self, identity: str) -> bool:
        return to_identity(identity) == self.owner()

    def require_owner(self, caller: str):
        """Raise NotOwner unless `caller` is the current owner."""
        if not self.is_owner(caller):
            raise NotOwner(caller)

    def transfer_ownership(self, caller: str, new_owner: str):
        """
        Hand ownership to `new_owner` in one step.

        Effective immediately; there is no acceptance handshake.
        """
        new_owner = to_identity(new_owner)
        if new_owner == to_identity(ZERO_ADDRESS):
            raise InvalidOwner("New owner is the zero address")

        with self.db.transaction() as conn:
            self.require_owner(caller)
            previous = self.owner()
            conn.execute("UPDATE owner_state SET owner = ? WHERE id = 1", (new_owner,))
            self.events.emit(OwnershipTransferred(previous_owner=previous, new_owner=new_owner))

        logger.info("Ownership transferred from %s to %s", previous, new_owner)


class AllowListGate:
    """Identities permitted to submit or revoke batched records."""

    def __init__(self, db: StateDB, ownership: Ownership, events: Optional[EventBus] = None):
        self.db = db
        self.ownership = ownership
        self.events = events or ownership.events
        self._init_db()

    def _init_db(self):
        self.db.executescript("""
            CREATE TABLE IF NOT EXISTS allow_list (
                identity TEXT PRIMARY KEY,
                added_at TEXT DEFAULT CURRENT_TIMESTAMP
            );
        """)

    def is_authorized(self, identity: str) -> bool:
        row = self.db.fetchone(
            "SELECT 1 FROM allow_list WHERE identity = ?",
            (to_identity(identity),),
        )
        return row is not None

    def authorized(self) -> list[str]:
        """All allow-listed identities, oldest first."""
        rows = self.db.fetchall("SELECT identity FROM allow_list ORDER BY rowid")
        return [row["identity"] for row in rows]

    def add_authorized(self, caller: str, identity: str):
        identity = to_identity(identity)

        with self.db.transaction() as conn:
            self.ownership.require_owner(caller)
            if self.is_authorized(identity):
                raise AlreadyAuthorized(identity)
            conn.execute("INSERT INTO allow_list (identity) VALUES (?)", (identity,))
            self.events.emit(Authorized(identity=identity))

        logger.info("Authorized %s", identity)

    def remove_authorized(self, caller: str, identity: str):
        identity = to_identity(identity)

        with self.db.transaction() as conn:
            self.ownership.require_owner(caller)
            if not self.is_authorized(identity):
                raise NotAuthorized(identity)
            conn.execute("DELETE FROM allow_list WHERE identity = ?", (identity,))
            self.events.emit(Deauthorized(identity=identity))

        logger.info("Deauthorized %s", identity)
