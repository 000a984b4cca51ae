"""
Attestation Gateway - Composition

Wires the gateway's components around one state database and one owner.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .allowlist import AllowListGate, Ownership
from .config import GatewaySettings
from .events import EventBus
from .ledger import AttestationLedger
from .nonces import ReplayProtectionLedger
from .state import StateDB
from .store import AttestationLedgerProtocol, RecordStoreAdapter
from .treasury import FeeTreasury, NativeBalances, Payout
from .verifier import SignedBatchVerifier

logger = logging.getLogger(__name__)


@dataclass
class Gateway:
    settings: GatewaySettings
    db: StateDB
    events: EventBus
    ownership: Ownership
    gate: AllowListGate
    nonces: ReplayProtectionLedger
    treasury: FeeTreasury
    store: RecordStoreAdapter
    verifier: SignedBatchVerifier
    ledger: AttestationLedgerProtocol
    balances: Optional[NativeBalances] = None

    @classmethod
    def from_settings(
        cls,
        settings: GatewaySettings,
        owner: str,
        ledger: Optional[AttestationLedgerProtocol] = None,
        payout: Optional[Payout] = None,
    ) -> "Gateway":
        """
        Build a gateway owned by `owner`.

        Without a ledger, a reference AttestationLedger sharing the state
        database is used, so ledger writes roll back with the gateway's
        unit of work. Without a payout, fees are paid into an in-process
        NativeBalances book.
        """
        db = StateDB(settings.db_path)
        events = EventBus(db, history_limit=settings.event_history_limit)
        ownership = Ownership(db, owner, events)
        gate = AllowListGate(db, ownership, events)
        nonces = ReplayProtectionLedger(db)

        if ledger is None:
            ledger = AttestationLedger(db)

        balances = None
        if payout is None:
            balances = NativeBalances()
            payout = balances.transfer

        treasury = FeeTreasury(db, ownership, settings.verifier_address, payout, events)
        store = RecordStoreAdapter(db, gate, ledger, settings.attester_address, events)
        verifier = SignedBatchVerifier(
            db,
            settings.signing_domain(),
            settings.issuer_address,
            gate,
            store,
            nonces,
            treasury,
            admin=owner,
            minimum_fee=settings.minimum_fee,
            events=events,
        )

        logger.info(
            "Gateway %s v%s on chain %s: verifier %s, issuer %s",
            settings.domain_name,
            settings.domain_version,
            settings.chain_id,
            verifier.address,
            verifier.issuer,
        )

        return cls(
            settings=settings,
            db=db,
            events=events,
            ownership=ownership,
            gate=gate,
            nonces=nonces,
            treasury=treasury,
            store=store,
            verifier=verifier,
            ledger=ledger,
            balances=balances,
        )
