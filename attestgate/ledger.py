"""
Attestation Gateway - Append-Only Attestation Ledger

An in-process reference implementation of the external ledger the
record store adapter writes to: a schema registry plus an append-only
attestation table in SQLite.

No DELETE, no overwrite. The only permitted change to a stored
attestation is setting its revocation time, once.

When given the gateway's StateDB, ledger writes join the caller's unit
of work and roll back with it.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import logging
import time
from typing import Callable, Optional, Sequence

from .canonical import compute_uid
from .models import (
    ZERO_UID,
    Attestation,
    RecordGroup,
    RevocationGroup,
    to_identity,
    to_uid,
)
from .state import StateDB

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class UnknownSchema(LedgerError):
    """Raised when a request references an unregistered schema."""
    pass


class InvalidExpiration(LedgerError):
    """Raised when an attestation would already be expired when written."""
    pass


class Irrevocable(LedgerError):
    """Raised when revocability conflicts with the schema or the record."""
    pass


class AttestationNotFound(LedgerError):
    """Raised when a referenced attestation does not exist."""
    pass


class AlreadyRevoked(LedgerError):
    """Raised when revoking an attestation twice."""
    pass


class AccessDenied(LedgerError):
    """Raised when someone other than the attester revokes a record."""
    pass


class AttestationLedger:
    """
    Append-only attestation ledger with a schema registry.

    Uses SQLite triggers to enforce immutability.
    """

    def __init__(
        self,
        db: Optional[StateDB] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.db = db or StateDB(":memory:")
        self.clock = clock or (lambda: int(time.time()))
        self._init_db()

    def _init_db(self):
        """Initialize the ledger schema with append-only constraints."""
        self.db.executescript("""
            CREATE TABLE IF NOT EXISTS schemas (
                uid TEXT PRIMARY KEY,
                definition TEXT NOT NULL,
                revocable INTEGER NOT NULL,
                registered_at TEXT DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS attestations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                uid TEXT UNIQUE NOT NULL,
                schema_uid TEXT NOT NULL REFERENCES schemas(uid),
                recipient TEXT NOT NULL,
                attester TEXT NOT NULL,
                time INTEGER NOT NULL,
                expiration_time TEXT NOT NULL,  -- uint64, kept as text
                revocation_time INTEGER NOT NULL DEFAULT 0,
                ref_uid TEXT NOT NULL,
                revocable INTEGER NOT NULL,
                data BLOB NOT NULL,
                value TEXT NOT NULL
            );

            CREATE TRIGGER IF NOT EXISTS prevent_schema_update
            BEFORE UPDATE ON schemas
            BEGIN
                SELECT RAISE(ABORT, 'UPDATE not permitted on schema registry');
            END;

            CREATE TRIGGER IF NOT EXISTS prevent_schema_delete
            BEFORE DELETE ON schemas
            BEGIN
                SELECT RAISE(ABORT, 'DELETE not permitted on schema registry');
            END;

            -- Everything but revocation_time is immutable
            CREATE TRIGGER IF NOT EXISTS prevent_attestation_update
            BEFORE UPDATE OF uid, schema_uid, recipient, attester, time,
                expiration_time, ref_uid, revocable, data, value
            ON attestations
            BEGIN
                SELECT RAISE(ABORT, 'UPDATE not permitted on append-only ledger');
            END;

            -- revocation_time is set at most once
            CREATE TRIGGER IF NOT EXISTS prevent_double_revocation
            BEFORE UPDATE OF revocation_time ON attestations
            WHEN OLD.revocation_time != 0
            BEGIN
                SELECT RAISE(ABORT, 'Attestation already revoked');
            END;

            CREATE TRIGGER IF NOT EXISTS prevent_attestation_delete
            BEFORE DELETE ON attestations
            BEGIN
                SELECT RAISE(ABORT, 'DELETE not permitted on append-only ledger');
            END;

            CREATE INDEX IF NOT EXISTS idx_att_recipient ON attestations(recipient);
            CREATE INDEX IF NOT EXISTS idx_att_schema ON attestations(schema_uid);
        """)

    def register_schema(self, definition: str, revocable: bool = True) -> str:
        """Register a schema and return its id. Registering twice is a no-op."""
        uid = compute_uid({"definition": definition, "revocable": revocable})
        with self.db.transaction() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO schemas (uid, definition, revocable) VALUES (?, ?, ?)",
                (uid, definition, 1 if revocable else 0),
            )
        return uid

    def get_schema(self, schema_uid: str) -> Optional[dict]:
        row = self.db.fetchone("SELECT * FROM schemas WHERE uid = ?", (to_uid(schema_uid),))
        if not row:
            return None
        return {
            "uid": row["uid"],
            "definition": row["definition"],
            "revocable": bool(row["revocable"]),
        }

    def multi_attest(self, groups: Sequence[RecordGroup], attester: str) -> list[str]:
        """
        Write every entry of every group; returns ids in submission order.

        All-or-nothing: any rejected entry rolls back the whole batch.
        """
        attester = to_identity(attester)
        now = self.clock()
        uids = []

        with self.db.transaction() as conn:
            row = conn.execute("SELECT COALESCE(MAX(id), 0) AS last FROM attestations").fetchone()
            bump = row["last"]

            for group in groups:
                schema = self.get_schema(group.schema)
                if schema is None:
                    raise UnknownSchema(f"Schema not registered: {group.schema}")

                for entry in group.entries:
                    if entry.expiration_time != 0 and entry.expiration_time <= now:
                        raise InvalidExpiration(
                            f"Expiration {entry.expiration_time} is not after {now}"
                        )
                    if entry.revocable and not schema["revocable"]:
                        raise Irrevocable(f"Schema {group.schema} is irrevocable")
                    if entry.ref_uid != ZERO_UID and self.get_attestation(entry.ref_uid) is None:
                        raise AttestationNotFound(f"Referenced attestation {entry.ref_uid} not found")

                    bump += 1
                    uid = compute_uid({
                        "schema": group.schema,
                        "recipient": entry.recipient,
                        "attester": attester,
                        "time": now,
                        "expiration_time": entry.expiration_time,
                        "revocable": entry.revocable,
                        "ref_uid": entry.ref_uid,
                        "data": entry.data,
                        "bump": bump,
                    })

                    conn.execute(
                        """
                        INSERT INTO attestations (
                            uid, schema_uid, recipient, attester, time,
                            expiration_time, ref_uid, revocable, data, value
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            uid,
                            group.schema,
                            entry.recipient,
                            attester,
                            now,
                            str(entry.expiration_time),
                            entry.ref_uid,
                            1 if entry.revocable else 0,
                            entry.data,
                            str(entry.value),
                        ),
                    )
                    uids.append(uid)

        logger.debug("Attested %d records as %s", len(uids), attester)
        return uids

    def multi_revoke(self, groups: Sequence[RevocationGroup], revoker: str):
        """Revoke every listed attestation, all-or-nothing."""
        revoker = to_identity(revoker)
        now = self.clock()

        with self.db.transaction() as conn:
            for group in groups:
                for entry in group.entries:
                    attestation = self.get_attestation(entry.uid)
                    if attestation is None or attestation.schema != group.schema:
                        raise AttestationNotFound(
                            f"No attestation {entry.uid} under schema {group.schema}"
                        )
                    if attestation.attester != revoker:
                        raise AccessDenied(f"{revoker} did not attest {entry.uid}")
                    if not attestation.revocable:
                        raise Irrevocable(f"Attestation {entry.uid} is irrevocable")
                    if attestation.revoked:
                        raise AlreadyRevoked(f"Attestation {entry.uid} already revoked")

                    conn.execute(
                        "UPDATE attestations SET revocation_time = ? WHERE uid = ?",
                        (now, entry.uid),
                    )

    def get_attestation(self, uid: str) -> Optional[Attestation]:
        row = self.db.fetchone("SELECT * FROM attestations WHERE uid = ?", (to_uid(uid),))
        if not row:
            return None
        return self._row_to_attestation(row)

    def is_revoked(self, uid: str) -> bool:
        attestation = self.get_attestation(uid)
        return attestation is not None and attestation.revoked

    def attestations_for(self, recipient: str) -> list[Attestation]:
        rows = self.db.fetchall(
            "SELECT * FROM attestations WHERE recipient = ? ORDER BY id",
            (to_identity(recipient),),
        )
        return [self._row_to_attestation(row) for row in rows]

    def count(self) -> int:
        row = self.db.fetchone("SELECT COUNT(*) AS n FROM attestations")
        return row["n"]

    def _row_to_attestation(self, row) -> Attestation:
        return Attestation(
            uid=row["uid"],
            schema=row["schema_uid"],
            recipient=row["recipient"],
            attester=row["attester"],
            time=row["time"],
            expiration_time=int(row["expiration_time"]),
            revocation_time=row["revocation_time"],
            ref_uid=row["ref_uid"],
            revocable=bool(row["revocable"]),
            data=bytes(row["data"]),
            value=int(row["value"]),
        )
