"""
Tests for ownership and the allow-list gate.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import pytest

from attestgate.allowlist import AllowListGate, Ownership
from attestgate.errors import AlreadyAuthorized, InvalidOwner, NotAuthorized, NotOwner
from attestgate.events import Authorized, Deauthorized, EventBus, OwnershipTransferred
from attestgate.models import ZERO_ADDRESS
from attestgate.state import StateDB


@pytest.fixture
def db():
    return StateDB(":memory:")


@pytest.fixture
def events(db):
    return EventBus(db)


@pytest.fixture
def ownership(db, events, owner):
    return Ownership(db, owner.address, events)


@pytest.fixture
def gate(db, ownership, events):
    return AllowListGate(db, ownership, events)


class TestAllowList:
    """Tests for adding and removing authorized identities."""

    def test_add_and_remove(self, gate, owner, recipient):
        """The owner can add and then remove an identity."""
        gate.add_authorized(owner.address, recipient.address)
        assert gate.is_authorized(recipient.address)

        gate.remove_authorized(owner.address, recipient.address)
        assert not gate.is_authorized(recipient.address)

    def test_duplicate_add_rejected(self, gate, owner, recipient):
        """Adding an identity twice fails with AlreadyAuthorized."""
        gate.add_authorized(owner.address, recipient.address)

        with pytest.raises(AlreadyAuthorized):
            gate.add_authorized(owner.address, recipient.address)

    def test_remove_absent_rejected(self, gate, owner, outsider):
        """Removing an identity never added fails with NotAuthorized."""
        with pytest.raises(NotAuthorized):
            gate.remove_authorized(owner.address, outsider.address)

    def test_non_owner_cannot_add(self, gate, outsider, recipient):
        with pytest.raises(NotOwner):
            gate.add_authorized(outsider.address, recipient.address)
        assert not gate.is_authorized(recipient.address)

    def test_non_owner_cannot_remove(self, gate, owner, outsider, recipient):
        gate.add_authorized(owner.address, recipient.address)

        with pytest.raises(NotOwner):
            gate.remove_authorized(outsider.address, recipient.address)
        assert gate.is_authorized(recipient.address)

    def test_lowercase_address_is_same_identity(self, gate, owner, recipient):
        """Identities are compared in checksum form."""
        gate.add_authorized(owner.address, recipient.address.lower())

        assert gate.is_authorized(recipient.address)
        with pytest.raises(AlreadyAuthorized):
            gate.add_authorized(owner.address, recipient.address)

    def test_authorized_lists_in_insertion_order(self, gate, owner, recipient, outsider):
        gate.add_authorized(owner.address, recipient.address)
        gate.add_authorized(owner.address, outsider.address)

        assert gate.authorized() == [recipient.address, outsider.address]

    def test_events(self, gate, events, owner, recipient):
        """Successful mutations emit notifications; failed ones do not."""
        gate.add_authorized(owner.address, recipient.address)
        with pytest.raises(AlreadyAuthorized):
            gate.add_authorized(owner.address, recipient.address)
        gate.remove_authorized(owner.address, recipient.address)

        assert list(events.history) == [
            Authorized(identity=recipient.address),
            Deauthorized(identity=recipient.address),
        ]

    def test_malformed_identity_rejected(self, gate, owner):
        with pytest.raises(ValueError):
            gate.add_authorized(owner.address, "not-an-address")


class TestOwnership:
    """Tests for single-step ownership transfer."""

    def test_initial_owner(self, ownership, owner):
        assert ownership.owner() == owner.address

    def test_transfer(self, ownership, gate, events, owner, recipient):
        """The new owner takes over immediately; the old one loses rights."""
        ownership.transfer_ownership(owner.address, recipient.address)

        assert ownership.owner() == recipient.address
        assert events.of_type(OwnershipTransferred) == [
            OwnershipTransferred(previous_owner=owner.address, new_owner=recipient.address)
        ]

        with pytest.raises(NotOwner):
            gate.add_authorized(owner.address, owner.address)
        gate.add_authorized(recipient.address, owner.address)

    def test_non_owner_cannot_transfer(self, ownership, owner, outsider):
        with pytest.raises(NotOwner):
            ownership.transfer_ownership(outsider.address, outsider.address)
        assert ownership.owner() == owner.address

    def test_zero_address_rejected(self, ownership, owner):
        with pytest.raises(InvalidOwner):
            ownership.transfer_ownership(owner.address, ZERO_ADDRESS)

    def test_stored_owner_survives_reinitialization(self, db, owner, outsider):
        """An existing database keeps its owner."""
        Ownership(db, owner.address)
        again = Ownership(db, outsider.address)

        assert again.owner() == owner.address
