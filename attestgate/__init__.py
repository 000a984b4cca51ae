"""
Attestation Gateway - Reference Implementation

Authorization layer in front of an append-only attestation ledger:

- Allow-list of identities that may submit or revoke batches
- EIP-712 signed envelopes from a single trusted issuer
- Per-recipient nonces against replay
- Fee collection into an owner-withdrawable treasury

SPDX-License-Identifier: AGPL-3.0-or-later
"""

__version__ = "0.1.0"

from .models import (
    AuthorizationEnvelope,
    RecordEntry,
    RecordGroup,
    RevocationEntry,
    RevocationGroup,
    build_revocation_groups,
)
from .signatures import SigningDomain, sign_envelope, recover_signer
from .verifier import SignedBatchVerifier
from .gateway import Gateway

__all__ = [
    "AuthorizationEnvelope",
    "RecordEntry",
    "RecordGroup",
    "RevocationEntry",
    "RevocationGroup",
    "build_revocation_groups",
    "SigningDomain",
    "sign_envelope",
    "recover_signer",
    "SignedBatchVerifier",
    "Gateway",
]
