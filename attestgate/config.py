"""
Attestation Gateway - Configuration

Typed settings read from the environment (prefix ATTESTGATE_) or a .env
file using pydantic-settings.

Usage:

    from attestgate.config import get_settings

    settings = get_settings()
    domain = settings.signing_domain()

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import logging
from functools import lru_cache
from typing import Optional

from eth_utils import keccak, to_checksum_address
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import to_identity
from .signatures import SigningDomain


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def derive_address(label: str) -> str:
    """Deterministic placeholder identity for a named gateway role."""
    return to_checksum_address(keccak(text=label)[-20:])


class GatewaySettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ATTESTGATE_",
        env_file=".env",
        extra="ignore",
    )

    domain_name: str = Field(
        default="AttestationGateway",
        description="EIP-712 domain name.",
    )
    domain_version: str = Field(
        default="1",
        description="EIP-712 domain version.",
    )
    chain_id: int = Field(
        default=1,
        ge=0,
        description="Chain / network identifier bound into every signature.",
    )
    issuer_address: str = Field(
        description="The single trusted signer whose envelopes are accepted.",
    )
    verifier_address: Optional[str] = Field(
        default=None,
        description="Verifier identity (EIP-712 verifyingContract). Derived when unset.",
    )
    attester_address: Optional[str] = Field(
        default=None,
        description="Identity the ledger records as attester. Derived when unset.",
    )
    minimum_fee: int = Field(
        default=0,
        ge=0,
        description="Fee floor in the smallest native unit, applied on top of the signed fee.",
    )
    db_path: str = Field(
        default=":memory:",
        description="SQLite path for gateway state.",
    )
    event_history_limit: int = Field(
        default=1000,
        ge=1,
        description="Number of recent events kept in memory for inspection.",
    )
    log_level: str = Field(default="INFO")

    @field_validator("issuer_address", "verifier_address", "attester_address")
    @classmethod
    def _checksum(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return to_identity(v)

    @field_validator("log_level")
    @classmethod
    def _level(cls, v: str) -> str:
        v = v.upper()
        if v not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {v}")
        return v

    @model_validator(mode="after")
    def _derive_addresses(self):
        label = f"{self.domain_name}:{self.domain_version}:{self.chain_id}"
        if self.verifier_address is None:
            self.verifier_address = derive_address(f"{label}:verifier")
        if self.attester_address is None:
            self.attester_address = derive_address(f"{label}:attester")
        return self

    def signing_domain(self) -> SigningDomain:
        return SigningDomain(
            name=self.domain_name,
            version=self.domain_version,
            chain_id=self.chain_id,
            verifying_contract=self.verifier_address,
        )


@lru_cache()
def get_settings() -> GatewaySettings:
    return GatewaySettings()


def configure_logging(settings: GatewaySettings):
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
