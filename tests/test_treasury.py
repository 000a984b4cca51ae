"""
Tests for fee collection and withdrawal.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import sqlite3

import pytest

from attestgate.allowlist import Ownership
from attestgate.errors import NotOwner, TransferFailed, Unauthorized
from attestgate.events import FeesWithdrawn
from attestgate.state import StateDB
from attestgate.treasury import EntryKind, FeeTreasury, NativeBalances, TreasuryEntry


FEE = 10**15  # 0.001 ether
COLLECTOR = "0x" + "cc" * 20


@pytest.fixture
def db():
    return StateDB(":memory:")


@pytest.fixture
def ownership(db, owner):
    return Ownership(db, owner.address)


@pytest.fixture
def balances():
    return NativeBalances()


@pytest.fixture
def treasury(db, ownership, balances):
    return FeeTreasury(db, ownership, COLLECTOR, balances.transfer)


class TestCredit:

    def test_collector_credits(self, treasury, recipient):
        treasury.credit(COLLECTOR, FEE, recipient.address)
        treasury.credit(COLLECTOR, 2 * FEE, recipient.address)

        assert treasury.balance() == 3 * FEE

    def test_only_collector_credits(self, treasury, outsider, recipient):
        """No writer other than the verifier may add to the balance."""
        with pytest.raises(Unauthorized):
            treasury.credit(outsider.address, FEE, recipient.address)
        assert treasury.balance() == 0

    def test_amount_must_be_a_non_negative_integer(self, treasury, recipient):
        for bad in (1.5, "10", -1):
            with pytest.raises(ValueError):
                treasury.credit(COLLECTOR, bad, recipient.address)

        assert treasury.balance() == 0
        assert treasury.journal() == []

    def test_large_amounts_are_exact(self, treasury, recipient):
        """Balances beyond 64-bit integers are kept exactly."""
        huge = 10**30 + 7
        treasury.credit(COLLECTOR, huge, recipient.address)
        treasury.credit(COLLECTOR, huge, recipient.address)

        assert treasury.balance() == 2 * huge


class TestWithdrawal:

    def test_owner_withdraws_everything(self, treasury, balances, owner, recipient):
        """Balance goes to zero and the owner's external balance rises by it."""
        treasury.credit(COLLECTOR, FEE, recipient.address)
        treasury.credit(COLLECTOR, 2 * FEE, recipient.address)
        before = balances.balance_of(owner.address)

        paid = treasury.withdraw_fees(owner.address)

        assert paid == 3 * FEE
        assert treasury.balance() == 0
        assert balances.balance_of(owner.address) == before + 3 * FEE

    def test_balance_equals_fees_minus_prior_withdrawals(self, treasury, owner, recipient):
        treasury.credit(COLLECTOR, FEE, recipient.address)
        treasury.withdraw_fees(owner.address)
        treasury.credit(COLLECTOR, 5 * FEE, recipient.address)

        report = treasury.reconcile()
        assert report["credited"] == 6 * FEE
        assert report["withdrawn"] == FEE
        assert report["balance"] == 5 * FEE
        assert report["consistent"]

    def test_non_owner_cannot_withdraw(self, treasury, outsider, recipient):
        treasury.credit(COLLECTOR, FEE, recipient.address)

        with pytest.raises(NotOwner):
            treasury.withdraw_fees(outsider.address)
        assert treasury.balance() == FEE

    def test_failed_transfer_rolls_back(self, db, ownership, owner, recipient):
        """A refused payout leaves the balance and journal untouched."""
        treasury = FeeTreasury(db, ownership, COLLECTOR, lambda to, amount: (False, "rejected"))
        treasury.credit(COLLECTOR, FEE, recipient.address)

        with pytest.raises(TransferFailed):
            treasury.withdraw_fees(owner.address)

        assert treasury.balance() == FEE
        assert [e.kind for e in treasury.journal()] == [EntryKind.CREDIT]

    def test_reentrant_withdrawal_sees_zero(self, db, ownership, owner, recipient):
        """A payout that calls back into withdraw finds the balance already zeroed."""
        paid = []

        def payout(to, amount):
            paid.append(amount)
            if len(paid) == 1:
                treasury.withdraw_fees(owner.address)
            return True, "ok"

        treasury = FeeTreasury(db, ownership, COLLECTOR, payout)
        treasury.credit(COLLECTOR, FEE, recipient.address)

        treasury.withdraw_fees(owner.address)

        assert paid == [FEE, 0]
        assert treasury.balance() == 0

    def test_withdrawal_event(self, treasury, ownership, owner, recipient):
        treasury.credit(COLLECTOR, FEE, recipient.address)
        treasury.withdraw_fees(owner.address)

        assert ownership.events.of_type(FeesWithdrawn) == [
            FeesWithdrawn(owner=owner.address, amount=FEE)
        ]

    def test_journal_is_append_only(self, db, treasury, recipient):
        treasury.credit(COLLECTOR, FEE, recipient.address)

        with pytest.raises(sqlite3.IntegrityError):
            with db.transaction() as conn:
                conn.execute("DELETE FROM treasury_entries")

    def test_withdrawal_journaled_before_payout(self, db, ownership, owner, recipient):
        """The payout sees the withdrawal already on the journal."""
        seen = []

        def payout(to, amount):
            seen.append(treasury.journal()[-1])
            return True, "tx-1"

        treasury = FeeTreasury(db, ownership, COLLECTOR, payout)
        treasury.credit(COLLECTOR, FEE, recipient.address)

        treasury.withdraw_fees(owner.address)

        assert seen == [TreasuryEntry(EntryKind.WITHDRAWAL, FEE, owner.address)]
        assert treasury.journal()[-1].confirmation == "tx-1"

    def test_confirmation_recorded_once(self, db, treasury, owner, recipient):
        treasury.credit(COLLECTOR, FEE, recipient.address)
        treasury.withdraw_fees(owner.address)

        with pytest.raises(sqlite3.IntegrityError):
            with db.transaction() as conn:
                conn.execute("UPDATE treasury_entries SET confirmation = 'forged' WHERE kind = 'withdrawal'")
        with pytest.raises(sqlite3.IntegrityError):
            with db.transaction() as conn:
                conn.execute("UPDATE treasury_entries SET confirmation = 'forged' WHERE kind = 'credit'")
        with pytest.raises(sqlite3.IntegrityError):
            with db.transaction() as conn:
                conn.execute("UPDATE treasury_entries SET amount = '0'")
