"""
Attestation Gateway - Record Types

Batch requests, authorization envelopes and revocation requests as
carried through the gateway. Identities are normalized to checksum
addresses and 32-byte ids to 0x-prefixed lowercase hex on construction.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional, Union

from eth_utils import is_address, to_bytes, to_checksum_address


ZERO_ADDRESS = "0x" + "00" * 20
ZERO_UID = "0x" + "00" * 32
NO_EXPIRATION = 0

UIDLike = Union[str, bytes]


def to_identity(address: str) -> str:
    """Return the checksum form of an address. Raises ValueError if malformed."""
    if not isinstance(address, str) or not is_address(address):
        raise ValueError(f"Not an address: {address!r}")
    return to_checksum_address(address)


def to_uid(value: UIDLike) -> str:
    """Normalize a 32-byte id given as bytes or hex string."""
    raw = value if isinstance(value, bytes) else to_bytes(hexstr=value)
    if len(raw) != 32:
        raise ValueError(f"Expected 32 bytes, got {len(raw)}: {value!r}")
    return "0x" + raw.hex()


def uid_bytes(uid: str) -> bytes:
    return to_bytes(hexstr=uid)


def to_amount(value: int, name: str) -> int:
    """Check that `value` is a non-negative integer. Raises ValueError otherwise."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise ValueError(f"{name} cannot be negative")
    return value


@dataclass(frozen=True)
class RecordEntry:
    """One attestation to be written on behalf of `recipient`."""
    recipient: str
    expiration_time: int = NO_EXPIRATION
    revocable: bool = True
    ref_uid: str = ZERO_UID
    data: bytes = b""
    value: int = 0

    def __post_init__(self):
        object.__setattr__(self, "recipient", to_identity(self.recipient))
        object.__setattr__(self, "ref_uid", to_uid(self.ref_uid))
        object.__setattr__(self, "expiration_time", to_amount(self.expiration_time, "expiration_time"))
        object.__setattr__(self, "value", to_amount(self.value, "value"))
        if isinstance(self.data, str):
            object.__setattr__(self, "data", to_bytes(hexstr=self.data))


@dataclass(frozen=True)
class RecordGroup:
    """Entries sharing one schema."""
    schema: str
    entries: tuple[RecordEntry, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "schema", to_uid(self.schema))
        object.__setattr__(self, "entries", tuple(self.entries))


def total_entries(groups: Iterable[RecordGroup]) -> int:
    """Number of RecordEntry items across all groups."""
    return sum(len(group.entries) for group in groups)


@dataclass(frozen=True)
class AuthorizationEnvelope:
    """
    The structured message the trusted issuer signs.

    `nonce` must equal the recipient's counter at verification time;
    `fee` is the payment the issuer expects to be attached.
    """
    batch: tuple[RecordGroup, ...]
    nonce: int
    fee: int

    def __post_init__(self):
        object.__setattr__(self, "batch", tuple(self.batch))
        object.__setattr__(self, "nonce", to_amount(self.nonce, "nonce"))
        object.__setattr__(self, "fee", to_amount(self.fee, "fee"))

    @property
    def recipient(self) -> Optional[str]:
        """Recipient of the first entry, or None for an empty batch."""
        for group in self.batch:
            for entry in group.entries:
                return entry.recipient
        return None

    @property
    def record_count(self) -> int:
        return total_entries(self.batch)


@dataclass(frozen=True)
class RevocationEntry:
    uid: str
    value: int = 0

    def __post_init__(self):
        object.__setattr__(self, "uid", to_uid(self.uid))
        object.__setattr__(self, "value", to_amount(self.value, "value"))


@dataclass(frozen=True)
class RevocationGroup:
    schema: str
    entries: tuple[RevocationEntry, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "schema", to_uid(self.schema))
        object.__setattr__(self, "entries", tuple(self.entries))


def build_revocation_groups(
    records: Iterable[tuple[UIDLike, UIDLike]],
    value: int = 0,
) -> list[RevocationGroup]:
    """
    Build revocation groups from previously emitted (schema, uid) pairs.

    All uids of one schema land in a single group. Groups keep the order
    in which their schema was first seen; entries keep input order.
    """
    grouped: dict[str, list[RevocationEntry]] = {}
    for schema, uid in records:
        grouped.setdefault(to_uid(schema), []).append(RevocationEntry(uid=uid, value=value))
    return [RevocationGroup(schema=s, entries=tuple(e)) for s, e in grouped.items()]


@dataclass(frozen=True)
class Attestation:
    """A record as stored by the attestation ledger."""
    uid: str
    schema: str
    recipient: str
    attester: str
    time: int
    expiration_time: int
    revocation_time: int
    ref_uid: str
    revocable: bool
    data: bytes
    value: int

    @property
    def revoked(self) -> bool:
        return self.revocation_time != 0
