"""
Pytest configuration and shared fixtures.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import sys
from pathlib import Path

import pytest
from eth_account import Account

# Add the repository root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from attestgate.config import GatewaySettings
from attestgate.gateway import Gateway
from attestgate.models import AuthorizationEnvelope, RecordEntry, RecordGroup
from attestgate.signatures import sign_envelope


# 0.001 ether in wei
FEE = 10**15


@pytest.fixture
def owner():
    return Account.from_key("0x" + "11" * 32)


@pytest.fixture
def issuer():
    return Account.from_key("0x" + "22" * 32)


@pytest.fixture
def recipient():
    return Account.from_key("0x" + "33" * 32)


@pytest.fixture
def outsider():
    return Account.from_key("0x" + "44" * 32)


@pytest.fixture
def settings(issuer):
    return GatewaySettings(
        _env_file=None,
        issuer_address=issuer.address,
        chain_id=31337,
    )


@pytest.fixture
def gateway(settings, owner):
    """A gateway over an in-memory reference ledger."""
    return Gateway.from_settings(settings, owner.address)


@pytest.fixture
def schemas(gateway):
    """(stamp_schema, score_schema) registered on the gateway's ledger."""
    stamp = gateway.ledger.register_schema("string provider,bytes32 hash")
    score = gateway.ledger.register_schema("uint32 score,uint32 scorer_id")
    return stamp, score


@pytest.fixture
def make_envelope(gateway, schemas, recipient):
    """Factory for envelopes with one group per size, at the current nonce."""

    def _make(sizes=(2, 3), fee=FEE, nonce=None, to=None):
        to = to or recipient.address
        groups = []
        for index, size in enumerate(sizes):
            schema = schemas[index % len(schemas)]
            entries = [
                RecordEntry(recipient=to, data=bytes([index, n]))
                for n in range(size)
            ]
            groups.append(RecordGroup(schema=schema, entries=entries))
        if nonce is None:
            nonce = gateway.verifier.recipient_nonce(to)
        return AuthorizationEnvelope(batch=groups, nonce=nonce, fee=fee)

    return _make


@pytest.fixture
def sign(gateway, issuer):
    """Sign an envelope as the trusted issuer under the gateway's domain."""

    def _sign(envelope, key=None):
        return sign_envelope(gateway.verifier.domain, envelope, key or issuer.key)

    return _sign
