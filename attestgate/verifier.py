"""
Attestation Gateway - Signed Batch Verification

Implements verify_and_submit(): a batch of records is written on behalf
of a recipient only when the trusted issuer has signed the exact batch,
the recipient's current nonce and the fee.

Verification is:
- Binary: the whole batch is written or nothing is
- Single use: each accepted envelope consumes its nonce
- Paid: the attached value is credited to the treasury, overpayment included

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import logging
from typing import Optional

from .allowlist import AllowListGate
from .errors import IncompleteWrite, InsufficientFee, InvalidRequest, InvalidSignature
from .events import EnvelopeVerified, EventBus
from .models import AuthorizationEnvelope, to_amount, to_identity
from .nonces import ReplayProtectionLedger
from .signatures import SignatureLike, SigningDomain, recover_signer
from .state import StateDB
from .store import RecordStoreAdapter
from .treasury import FeeTreasury

logger = logging.getLogger(__name__)


class SignedBatchVerifier:
    """
    Orchestrates signature, nonce and fee checks in front of the store.

    The verifier's identity is `domain.verifying_contract`. It is put on
    the allow-list once, here, by `admin` (who must be the owner) unless
    it is already there.
    """

    def __init__(
        self,
        db: StateDB,
        domain: SigningDomain,
        issuer: str,
        gate: AllowListGate,
        store: RecordStoreAdapter,
        nonces: ReplayProtectionLedger,
        treasury: FeeTreasury,
        admin: str,
        minimum_fee: int = 0,
        events: Optional[EventBus] = None,
    ):
        """
        Args:
            db: Shared state database; one transaction per call
            domain: EIP-712 domain every signature is checked under
            issuer: The single trusted signer
            gate: Allow-list the verifier registers itself on
            store: Record store adapter batches are forwarded to
            nonces: Per-recipient replay protection
            treasury: Fee treasury; must be bound to this verifier as collector
            admin: Owner identity performing the one-time registration
            minimum_fee: Floor applied on top of the signed fee
        """
        self.db = db
        self.domain = domain
        self.issuer = to_identity(issuer)
        self.gate = gate
        self.store = store
        self.nonces = nonces
        self.treasury = treasury
        self.minimum_fee = minimum_fee
        self.events = events or gate.events

        if treasury.collector != self.address:
            raise ValueError("Treasury collector must be the verifier address")

        if not gate.is_authorized(self.address):
            gate.add_authorized(admin, self.address)

    @property
    def address(self) -> str:
        return self.domain.verifying_contract

    def recipient_nonce(self, identity: str) -> int:
        return self.nonces.current_nonce(identity)

    def required_fee(self, envelope: AuthorizationEnvelope) -> int:
        return max(envelope.fee, self.minimum_fee)

    def verify_and_submit(
        self,
        envelope: AuthorizationEnvelope,
        signature: SignatureLike,
        value: int,
    ) -> list[str]:
        """
        Verify `envelope` and write its batch. Returns the new record ids.

        Steps:
        1. Recover the signer under this instance's domain
        2. Consume the recipient's nonce
        3. Check the attached value against the fee
        4. Credit the attached value to the treasury
        5. Forward the batch to the record store
        6. Check one id came back per entry

        Steps 2-6 run as one unit of work; any failure undoes all of them.
        """
        value = to_amount(value, "value")

        recovered = recover_signer(self.domain, envelope, signature)
        if recovered != self.issuer:
            logger.warning("Rejected envelope signed by %s", recovered)
            raise InvalidSignature(recovered)

        recipient = envelope.recipient
        if recipient is None:
            raise InvalidRequest("Envelope contains no records")

        expected = envelope.record_count

        with self.db.transaction():
            self.nonces.consume(recipient, envelope.nonce)

            required = self.required_fee(envelope)
            if value < required:
                logger.warning(
                    "Rejected envelope for %s: fee %s below %s",
                    recipient, value, required,
                )
                raise InsufficientFee(required, value)

            self.treasury.credit(self.address, value, recipient)

            uids = self.store.write_batch(self.address, envelope.batch)
            if len(uids) != expected:
                raise IncompleteWrite(expected, len(uids))

            self.events.emit(
                EnvelopeVerified(
                    recipient=recipient,
                    nonce=envelope.nonce,
                    fee_paid=value,
                    count=len(uids),
                )
            )

        logger.info(
            "Accepted envelope for %s at nonce %s: %d records, fee %s",
            recipient, envelope.nonce, len(uids), value,
        )
        return uids

    def withdraw_fees(self, caller: str) -> int:
        return self.treasury.withdraw_fees(caller)
