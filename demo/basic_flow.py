#!/usr/bin/env python3
"""
Attestation Gateway - Basic Flow Demo

Demonstrates the complete flow of:
1. Configuring a gateway with one trusted issuer
2. Signing an authorization envelope for a recipient
3. Submitting it with the fee and writing the batch
4. Replaying the same envelope (rejected)
5. Revoking the records and withdrawing collected fees

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from eth_account import Account

from attestgate.config import GatewaySettings, configure_logging
from attestgate.errors import InvalidNonce
from attestgate.gateway import Gateway
from attestgate.models import (
    AuthorizationEnvelope,
    RecordEntry,
    RecordGroup,
    build_revocation_groups,
)
from attestgate.signatures import sign_envelope


FEE = 10**15


def main():
    print("=" * 60)
    print("Attestation Gateway - Basic Flow Demo")
    print("=" * 60)
    print()

    # Step 1: Accounts
    print("[1] Creating owner, issuer and recipient accounts...")
    owner = Account.create()
    issuer = Account.create()
    recipient = Account.create()
    print(f"    Owner: {owner.address}")
    print(f"    Issuer: {issuer.address}")
    print(f"    Recipient: {recipient.address}")
    print()

    # Step 2: Gateway
    print("[2] Building the gateway...")
    settings = GatewaySettings(_env_file=None, issuer_address=issuer.address, chain_id=31337)
    configure_logging(settings)
    gateway = Gateway.from_settings(settings, owner.address)
    print(f"    Verifier: {gateway.verifier.address}")
    print(f"    Attester: {gateway.store.address}")
    print(f"    Allow-list: {gateway.gate.authorized()}")
    print()

    # Step 3: Schemas on the reference ledger
    print("[3] Registering schemas...")
    stamp = gateway.ledger.register_schema("string provider,bytes32 hash")
    score = gateway.ledger.register_schema("uint32 score,uint32 scorer_id")
    print(f"    Stamp schema: {stamp}")
    print(f"    Score schema: {score}")
    print()

    # Step 4: Envelope
    print("[4] Issuer signs an envelope of 3 records...")
    envelope = AuthorizationEnvelope(
        batch=[
            RecordGroup(schema=stamp, entries=[
                RecordEntry(recipient=recipient.address, data=b"github"),
                RecordEntry(recipient=recipient.address, data=b"twitter"),
            ]),
            RecordGroup(schema=score, entries=[
                RecordEntry(recipient=recipient.address, data=(42).to_bytes(4, "big")),
            ]),
        ],
        nonce=gateway.verifier.recipient_nonce(recipient.address),
        fee=FEE,
    )
    signature = sign_envelope(settings.signing_domain(), envelope, issuer.key)
    print(f"    Nonce: {envelope.nonce}")
    print(f"    Fee: {envelope.fee} wei")
    print(f"    Signature: 0x{signature.hex()[:16]}...")
    print()

    # Step 5: Submit
    print("[5] Submitting the envelope...")
    uids = gateway.verifier.verify_and_submit(envelope, signature, value=FEE)
    print(f"    Records written: {len(uids)}")
    for uid in uids:
        print(f"    - {uid}")
    print(f"    Next nonce: {gateway.verifier.recipient_nonce(recipient.address)}")
    print()

    # Step 6: Replay
    print("[6] Replaying the same envelope...")
    try:
        gateway.verifier.verify_and_submit(envelope, signature, value=FEE)
        print("    Result: ACCEPTED")
    except InvalidNonce as e:
        print(f"    Result: REJECTED ({e})")
        print("    This is correct behavior - each envelope is single use")
    print()

    # Step 7: Revoke
    print("[7] Owner revokes the stamp records...")
    revocations = build_revocation_groups((stamp, uid) for uid in uids[:2])
    gateway.store.revoke_batch(owner.address, revocations)
    for uid in uids:
        state = "REVOKED" if gateway.ledger.is_revoked(uid) else "VALID"
        print(f"    - {uid[:18]}... [{state}]")
    print()

    # Step 8: Withdraw
    print("[8] Owner withdraws collected fees...")
    print(f"    Treasury balance: {gateway.treasury.balance()} wei")
    amount = gateway.verifier.withdraw_fees(owner.address)
    print(f"    Withdrawn: {amount} wei")
    print(f"    Owner balance: {gateway.balances.balance_of(owner.address)} wei")
    print(f"    Reconciliation: {gateway.treasury.reconcile()}")
    print()

    print("=" * 60)
    print("Demo completed successfully!")
    print()
    print("Key principles demonstrated:")
    print("  - Only issuer-signed batches are written")
    print("  - Per-recipient nonces make envelopes single use")
    print("  - Fees accumulate until the owner withdraws them")
    print("  - Revocation through the allow-listed store adapter")
    print("=" * 60)


if __name__ == "__main__":
    main()
