"""
Attestation Gateway - Replay Protection

One counter per recipient. A signed envelope names the counter value it
was issued for; consuming it advances the counter by exactly one, so each
signature can be used once.

Counters start at zero implicitly and are never decremented or removed.
A trigger rejects any update that is not a single increment.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import logging

from .errors import InvalidNonce
from .models import to_identity
from .state import StateDB

logger = logging.getLogger(__name__)


class ReplayProtectionLedger:
    """Per-recipient monotonically increasing nonces."""

    def __init__(self, db: StateDB):
        self.db = db
        self._init_db()

    def _init_db(self):
        self.db.executescript("""
            CREATE TABLE IF NOT EXISTS recipient_nonces (
                identity TEXT PRIMARY KEY,
                nonce INTEGER NOT NULL CHECK (nonce >= 0)
            );

            CREATE TRIGGER IF NOT EXISTS nonce_increment_only
            BEFORE UPDATE ON recipient_nonces
            WHEN NEW.nonce != OLD.nonce + 1 OR NEW.identity != OLD.identity
            BEGIN
                SELECT RAISE(ABORT, 'Nonces only advance by one');
            END;

            CREATE TRIGGER IF NOT EXISTS prevent_nonce_delete
            BEFORE DELETE ON recipient_nonces
            BEGIN
                SELECT RAISE(ABORT, 'DELETE not permitted on recipient_nonces');
            END;
        """)

    def current_nonce(self, identity: str) -> int:
        row = self.db.fetchone(
            "SELECT nonce FROM recipient_nonces WHERE identity = ?",
            (to_identity(identity),),
        )
        return row["nonce"] if row else 0

    def consume(self, identity: str, presented_nonce: int) -> int:
        """
        Check `presented_nonce` against the counter and advance it.

        Returns the new counter value. Raises InvalidNonce on mismatch,
        leaving the counter untouched.
        """
        identity = to_identity(identity)

        with self.db.transaction() as conn:
            current = self.current_nonce(identity)
            if presented_nonce != current:
                logger.warning(
                    "Rejected nonce %s for %s (current %s)",
                    presented_nonce, identity, current,
                )
                raise InvalidNonce(identity, current, presented_nonce)

            conn.execute(
                """
                INSERT INTO recipient_nonces (identity, nonce) VALUES (?, 1)
                ON CONFLICT(identity) DO UPDATE SET nonce = nonce + 1
                """,
                (identity,),
            )

        return current + 1
