"""
test_handlers_accounts.py - Unit tests for handler operations and account definitions

Tests:
- Operands (CALLER, SELF, VALUE, ARG, negation)
- Operation construction and validation
- handler() / guarded() builders
- Account variants, entry-point resolution and fallback
"""

import dataclasses
import pytest

from callsim import (
    Account, AccountKind, passive, programmable,
    Operand, CALLER, SELF, VALUE, ARG,
    CheckBalance, ReturnUnless, AdjustBalance, ExternalCall, GuardEnter, GuardExit,
    handler, guarded, FailurePolicy, LOW_BUDGET,
)


class TestOperands:
    """Tests for symbolic operands."""

    def test_account_refs(self):
        assert repr(CALLER) == "CALLER"
        assert repr(SELF) == "SELF"
        assert CALLER != SELF

    def test_arg_operand(self):
        amount = ARG("amount")
        assert amount == Operand("arg", "amount")
        assert repr(amount) == "ARG('amount')"

    def test_negation(self):
        assert (-ARG("amount")).sign == -1
        assert -(-ARG("amount")) == ARG("amount")
        assert repr(-VALUE) == "-VALUE"

    def test_invalid_operands(self):
        with pytest.raises(ValueError):
            Operand("storage")
        with pytest.raises(ValueError):
            Operand("arg")
        with pytest.raises(ValueError):
            Operand("value", sign=2)


class TestOperations:
    """Tests for handler operation records."""

    def test_operations_are_frozen(self):
        op = AdjustBalance(CALLER, VALUE)
        with pytest.raises(dataclasses.FrozenInstanceError):
            op.delta = 5

    def test_check_balance_defaults_to_value_ledger(self):
        assert CheckBalance(CALLER, 1).book is False
        assert ReturnUnless("bank", 1).book is False

    def test_external_call_defaults(self):
        op = ExternalCall("bank")
        assert op.entry_point is None
        assert op.value == 0
        assert op.gas is None
        assert op.on_failure is FailurePolicy.PROPAGATE
        assert op.arg_map() == {}

    def test_external_call_args_mapping_is_frozen_to_tuple(self):
        op = ExternalCall("bank", "transfer", args={"to": "eve", "amount": 3})
        assert op.args == (("amount", 3), ("to", "eve"))
        assert op.arg_map() == {"amount": 3, "to": "eve"}
        hash(op)

    def test_external_call_equal_regardless_of_arg_order(self):
        a = ExternalCall("bank", "transfer", args={"to": "eve", "amount": 3})
        b = ExternalCall("bank", "transfer", args={"amount": 3, "to": "eve"})
        assert a == b

    def test_external_call_gas_variants(self):
        assert ExternalCall("bank", gas=LOW_BUDGET).gas is LOW_BUDGET
        assert ExternalCall("bank", gas=5000).gas == 5000

    @pytest.mark.parametrize("gas", ["lots", 1.5, True])
    def test_external_call_rejects_bad_gas_type(self, gas):
        with pytest.raises(TypeError):
            ExternalCall("bank", gas=gas)

    def test_external_call_rejects_negative_gas(self):
        with pytest.raises(ValueError):
            ExternalCall("bank", gas=-1)


class TestHandlerBuilders:
    """Tests for handler() and guarded()."""

    def test_handler_is_tuple(self):
        h = handler(CheckBalance(CALLER, 1), AdjustBalance(CALLER, -1))
        assert isinstance(h, tuple)
        assert len(h) == 2

    def test_handler_rejects_non_operations(self):
        with pytest.raises(TypeError):
            handler(CheckBalance(CALLER, 1), "transfer")

    def test_guarded_wraps_operations(self):
        h = guarded(AdjustBalance(CALLER, VALUE))
        assert h[0] == GuardEnter(None)
        assert h[-1] == GuardExit(None)

    def test_guarded_with_shared_name(self):
        h = guarded(AdjustBalance(CALLER, VALUE), name="lock")
        assert h[0].name == "lock"
        assert h[-1].name == "lock"


class TestAccounts:
    """Tests for account definitions."""

    def test_passive_account(self):
        account = passive("alice")
        assert account.kind is AccountKind.PASSIVE
        assert not account.is_programmable
        assert account.resolve(None) is None
        assert account.resolve("anything") is None
        assert account.accepts("anything")

    def test_passive_account_cannot_have_handlers(self):
        with pytest.raises(ValueError):
            Account("alice", AccountKind.PASSIVE, {"x": handler()})
        with pytest.raises(ValueError):
            Account("alice", AccountKind.PASSIVE, fallback=handler())

    def test_empty_id_raises(self):
        with pytest.raises(ValueError):
            passive("")

    def test_empty_entry_point_name_raises(self):
        with pytest.raises(ValueError):
            programmable("bank", {"": handler()})

    def test_entry_point_resolution(self):
        deposit = handler(AdjustBalance(CALLER, VALUE))
        fallback = handler(CheckBalance(CALLER, 1))
        account = programmable("bank", {"deposit": deposit}, fallback)
        assert account.resolve("deposit") == deposit
        assert account.resolve(None) == fallback
        assert account.resolve("unknown") == fallback
        assert account.accepts("unknown")

    def test_unknown_entry_point_without_fallback(self):
        account = programmable("bank", {"deposit": handler()})
        assert not account.accepts("withdraw")
        assert account.accepts(None)
        assert account.resolve(None) is None

    def test_entry_points_are_read_only(self):
        account = programmable("bank", {"deposit": handler()})
        with pytest.raises(TypeError):
            account.entry_points["withdraw"] = handler()

    def test_source_mapping_changes_do_not_leak(self):
        table = {"deposit": handler()}
        account = programmable("bank", table)
        table["withdraw"] = handler()
        assert "withdraw" not in account.entry_points

    def test_accounts_are_hashable(self):
        bank = programmable("bank", {"deposit": handler(AdjustBalance(CALLER, VALUE))})
        same = programmable("bank", {"deposit": handler(AdjustBalance(CALLER, VALUE))})
        assert bank == same
        assert hash(bank) == hash(same)
        assert len({bank, same, passive("alice")}) == 2

    def test_repr(self):
        account = programmable("bank", {"withdraw": handler(), "deposit": handler()}, handler())
        assert repr(account) == "Account(bank, programmable: [deposit, withdraw], fallback)"
        assert repr(passive("alice")) == "Account(alice, passive)"
