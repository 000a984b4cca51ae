"""
Attestation Gateway - Envelope Signatures

EIP-712 typed structured data signing and secp256k1 signer recovery for
authorization envelopes. The domain (name, version, chain id, verifier
address) is part of every signed message, so a signature produced for
one deployment cannot be replayed against another.

Type and field names follow the passport attestation request format
(PassportAttestationRequest / MultiAttestationRequest /
AttestationRequestData). They are part of the type hash, so existing
issuer tooling signing that format produces signatures accepted here.

All functions here are pure.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

from dataclasses import dataclass
from typing import Optional, Union

from eth_account import Account
from eth_account.messages import SignableMessage, encode_typed_data
from eth_utils import keccak, to_bytes

from .models import AuthorizationEnvelope, RecordEntry, RecordGroup, to_identity, uid_bytes


SignatureLike = Union[bytes, str]

EIP712_TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "AttestationRequestData": [
        {"name": "recipient", "type": "address"},
        {"name": "expirationTime", "type": "uint64"},
        {"name": "revocable", "type": "bool"},
        {"name": "refUID", "type": "bytes32"},
        {"name": "data", "type": "bytes"},
        {"name": "value", "type": "uint256"},
    ],
    "MultiAttestationRequest": [
        {"name": "schema", "type": "bytes32"},
        {"name": "data", "type": "AttestationRequestData[]"},
    ],
    "PassportAttestationRequest": [
        {"name": "multiAttestationRequest", "type": "MultiAttestationRequest[]"},
        {"name": "nonce", "type": "uint256"},
        {"name": "fee", "type": "uint256"},
    ],
}

PRIMARY_TYPE = "PassportAttestationRequest"


@dataclass(frozen=True)
class SigningDomain:
    """EIP-712 domain separator parameters, fixed per verifier instance."""
    name: str
    version: str
    chain_id: int
    verifying_contract: str

    def __post_init__(self):
        object.__setattr__(self, "verifying_contract", to_identity(self.verifying_contract))

    def as_dict(self) -> dict:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chain_id,
            "verifyingContract": self.verifying_contract,
        }


def _entry_message(entry: RecordEntry) -> dict:
    return {
        "recipient": entry.recipient,
        "expirationTime": entry.expiration_time,
        "revocable": entry.revocable,
        "refUID": uid_bytes(entry.ref_uid),
        "data": entry.data,
        "value": entry.value,
    }


def _group_message(group: RecordGroup) -> dict:
    return {
        "schema": uid_bytes(group.schema),
        "data": [_entry_message(e) for e in group.entries],
    }


def envelope_message(envelope: AuthorizationEnvelope) -> dict:
    """The `message` part of the typed data document."""
    return {
        "multiAttestationRequest": [_group_message(g) for g in envelope.batch],
        "nonce": envelope.nonce,
        "fee": envelope.fee,
    }


def typed_data(domain: SigningDomain, envelope: AuthorizationEnvelope) -> dict:
    """Full EIP-712 document for `envelope` under `domain`."""
    return {
        "types": EIP712_TYPES,
        "primaryType": PRIMARY_TYPE,
        "domain": domain.as_dict(),
        "message": envelope_message(envelope),
    }


def encode_type(primary_type: str = PRIMARY_TYPE) -> str:
    """
    The EIP-712 `encodeType` string for `primary_type`.

    The primary type comes first, followed by every struct type it
    references, sorted by name.
    """
    found = set()
    pending = [primary_type]
    while pending:
        name = pending.pop()
        if name in found:
            continue
        found.add(name)
        for member in EIP712_TYPES[name]:
            base = member["type"].rstrip("[]")
            if base in EIP712_TYPES:
                pending.append(base)

    ordered = [primary_type] + sorted(found - {primary_type})
    return "".join(
        name + "(" + ",".join(f"{m['type']} {m['name']}" for m in EIP712_TYPES[name]) + ")"
        for name in ordered
    )


def type_hash(primary_type: str = PRIMARY_TYPE) -> bytes:
    return keccak(text=encode_type(primary_type))


def encode_envelope(domain: SigningDomain, envelope: AuthorizationEnvelope) -> SignableMessage:
    return encode_typed_data(full_message=typed_data(domain, envelope))


def envelope_digest(domain: SigningDomain, envelope: AuthorizationEnvelope) -> bytes:
    """The 32-byte hash that is actually signed."""
    signable = encode_envelope(domain, envelope)
    return keccak(b"\x19" + signable.version + signable.header + signable.body)


def _signature_bytes(signature: SignatureLike) -> bytes:
    if isinstance(signature, str):
        return to_bytes(hexstr=signature)
    return bytes(signature)


def sign_envelope(
    domain: SigningDomain,
    envelope: AuthorizationEnvelope,
    private_key,
) -> bytes:
    """Sign `envelope` and return the 65-byte r || s || v signature."""
    signed = Account.sign_message(encode_envelope(domain, envelope), private_key)
    return bytes(signed.signature)


def recover_signer(
    domain: SigningDomain,
    envelope: AuthorizationEnvelope,
    signature: SignatureLike,
) -> Optional[str]:
    """
    Recover the address that signed `envelope` under `domain`.

    Returns None when the signature is malformed or recovery fails.
    """
    try:
        return Account.recover_message(
            encode_envelope(domain, envelope),
            signature=_signature_bytes(signature),
        )
    except Exception:
        return None


def verify_signature(
    domain: SigningDomain,
    envelope: AuthorizationEnvelope,
    signature: SignatureLike,
    expected_signer: str,
) -> bool:
    """True if `signature` over `envelope` was produced by `expected_signer`."""
    recovered = recover_signer(domain, envelope, signature)
    return recovered is not None and recovered == to_identity(expected_signer)


def split_signature(signature: SignatureLike) -> tuple[int, bytes, bytes]:
    """Split a 65-byte signature into (v, r, s) with v in {27, 28}."""
    raw = _signature_bytes(signature)
    if len(raw) != 65:
        raise ValueError(f"Expected a 65-byte signature, got {len(raw)} bytes")
    v = raw[64]
    if v < 27:
        v += 27
    return v, raw[:32], raw[32:64]


def join_signature(v: int, r: Union[bytes, int], s: Union[bytes, int]) -> bytes:
    """Inverse of `split_signature`."""
    if isinstance(r, int):
        r = r.to_bytes(32, "big")
    if isinstance(s, int):
        s = s.to_bytes(32, "big")
    if len(r) != 32 or len(s) != 32:
        raise ValueError("r and s must be 32 bytes each")
    if v < 27:
        v += 27
    return bytes(r) + bytes(s) + bytes([v])
