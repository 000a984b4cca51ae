"""
Tests for gateway settings.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import pytest
from pydantic import ValidationError

from attestgate.config import GatewaySettings, derive_address
from attestgate.gateway import Gateway


class TestSettings:

    def test_defaults_and_derived_addresses(self, issuer):
        settings = GatewaySettings(_env_file=None, issuer_address=issuer.address.lower())

        assert settings.issuer_address == issuer.address
        assert settings.verifier_address == derive_address("AttestationGateway:1:1:verifier")
        assert settings.attester_address == derive_address("AttestationGateway:1:1:attester")
        assert settings.verifier_address != settings.attester_address
        assert settings.minimum_fee == 0

    def test_read_from_environment(self, monkeypatch, issuer):
        monkeypatch.setenv("ATTESTGATE_ISSUER_ADDRESS", issuer.address)
        monkeypatch.setenv("ATTESTGATE_CHAIN_ID", "11155111")
        monkeypatch.setenv("ATTESTGATE_MINIMUM_FEE", "1000")
        monkeypatch.setenv("ATTESTGATE_LOG_LEVEL", "debug")

        settings = GatewaySettings(_env_file=None)

        assert settings.chain_id == 11155111
        assert settings.minimum_fee == 1000
        assert settings.log_level == "DEBUG"
        assert settings.signing_domain().chain_id == 11155111

    def test_issuer_required(self, monkeypatch):
        monkeypatch.delenv("ATTESTGATE_ISSUER_ADDRESS", raising=False)
        with pytest.raises(ValidationError):
            GatewaySettings(_env_file=None)

    def test_bad_address_rejected(self):
        with pytest.raises(ValidationError):
            GatewaySettings(_env_file=None, issuer_address="0x123")

    def test_negative_fee_rejected(self, issuer):
        with pytest.raises(ValidationError):
            GatewaySettings(_env_file=None, issuer_address=issuer.address, minimum_fee=-1)

    def test_domain_changes_with_chain(self, issuer):
        one = GatewaySettings(_env_file=None, issuer_address=issuer.address, chain_id=1)
        two = GatewaySettings(_env_file=None, issuer_address=issuer.address, chain_id=2)

        assert one.signing_domain() != two.signing_domain()


class TestGatewayComposition:

    def test_gateway_from_settings(self, settings, owner):
        gateway = Gateway.from_settings(settings, owner.address)

        assert gateway.ownership.owner() == owner.address
        assert gateway.verifier.address == settings.verifier_address
        assert gateway.store.address == settings.attester_address
        assert gateway.gate.authorized() == [settings.verifier_address]
        assert gateway.treasury.balance() == 0

    def test_persistent_state_reused(self, tmp_path, settings, owner, outsider):
        """Reopening a database keeps owner and registration."""
        path = tmp_path / "gateway.db"
        persistent = settings.model_copy(update={"db_path": str(path)})

        first = Gateway.from_settings(persistent, owner.address)
        first.db.close()

        second = Gateway.from_settings(persistent, outsider.address)
        assert second.ownership.owner() == owner.address
        assert second.gate.authorized() == [settings.verifier_address]
