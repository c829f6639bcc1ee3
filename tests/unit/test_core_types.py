"""
test_core_types.py - Unit tests for core data types

Tests:
- SimulatorConfig defaults and validation
- LOW_BUDGET marker
- Exception hierarchy
- FrameInfo / FrameEvent formatting
- TransactionResult helpers
"""

import dataclasses
import pytest

from callsim import (
    SimulatorConfig, FrameInfo, FrameEvent, TransactionResult,
    TxStatus, EventKind, AccountKind, FailurePolicy,
    SimulationError, ExecutionError, InsufficientFunds, ReentrancyDetected,
    StackOverflow, OutOfBudget, HandlerAssertionFailed,
    AccountNotFound, TransactionFinalized,
    LOW_BUDGET,
)
from callsim.core import _LowBudget


class TestSimulatorConfig:
    """Tests for SimulatorConfig."""

    def test_defaults(self):
        config = SimulatorConfig()
        assert config.max_stack_depth == 1024
        assert config.low_budget_amount == 2300
        assert config.min_call_budget == 2301
        assert config.default_gas_budget == 30_000_000

    def test_low_budget_cannot_afford_a_call(self):
        config = SimulatorConfig()
        assert config.low_budget_amount < config.min_call_budget

    def test_frozen(self):
        config = SimulatorConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.max_stack_depth = 5

    @pytest.mark.parametrize("kwargs", [
        {"max_stack_depth": 0},
        {"low_budget_amount": -1},
        {"min_call_budget": -1},
        {"default_gas_budget": -1},
    ])
    def test_invalid_values_raise(self, kwargs):
        with pytest.raises(ValueError):
            SimulatorConfig(**kwargs)


class TestLowBudgetMarker:
    """Tests for the LOW_BUDGET singleton."""

    def test_singleton(self):
        assert _LowBudget() is LOW_BUDGET

    def test_repr(self):
        assert repr(LOW_BUDGET) == "LOW_BUDGET"


class TestExceptions:
    """Tests for the exception hierarchy."""

    @pytest.mark.parametrize("exc_type", [
        InsufficientFunds, ReentrancyDetected, StackOverflow,
        OutOfBudget, HandlerAssertionFailed,
    ])
    def test_execution_errors(self, exc_type):
        error = exc_type("boom")
        assert isinstance(error, ExecutionError)
        assert isinstance(error, SimulationError)
        assert error.origin is None
        assert str(error) == "boom"

    @pytest.mark.parametrize("exc_type", [AccountNotFound, TransactionFinalized])
    def test_programming_errors_are_not_execution_errors(self, exc_type):
        assert issubclass(exc_type, SimulationError)
        assert not issubclass(exc_type, ExecutionError)


class TestEnums:
    """Tests for enum values."""

    def test_account_kind_from_value(self):
        assert AccountKind("passive") is AccountKind.PASSIVE
        assert AccountKind("programmable") is AccountKind.PROGRAMMABLE

    def test_failure_policy_values(self):
        assert {p.value for p in FailurePolicy} == {"propagate", "ignore"}

    def test_tx_status_values(self):
        assert [s.value for s in TxStatus] == ["idle", "running", "committed", "reverted"]


class TestTraceRecords:
    """Tests for FrameInfo, FrameEvent and TransactionResult."""

    def _info(self, depth=1, entry_point="withdraw"):
        return FrameInfo(depth, "thief", "bank", entry_point, 1, 2300)

    def test_frame_info_repr(self):
        assert repr(self._info()) == "#1 thief→bank.withdraw value=1 gas=2300"
        assert repr(self._info(entry_point=None)) == "#1 thief→bank.<fallback> value=1 gas=2300"

    def test_frame_event_repr_indents_by_depth(self):
        event = FrameEvent(EventKind.REVERT, self._info(depth=3), "OutOfBudget: low")
        assert repr(event).startswith("    REVERT #3")
        assert repr(event).endswith("(OutOfBudget: low)")

    def test_result_max_depth_counts_entered_frames(self):
        trace = (
            FrameEvent(EventKind.ENTER, self._info(1)),
            FrameEvent(EventKind.ENTER, self._info(2)),
            FrameEvent(EventKind.REVERT, self._info(3), "StackOverflow"),
        )
        result = TransactionResult(TxStatus.REVERTED, {}, trace)
        assert result.max_depth == 2
        assert not result.committed
        assert len(result.events(EventKind.ENTER)) == 2

    def test_empty_result(self):
        result = TransactionResult(TxStatus.COMMITTED, {"a": 1}, ())
        assert result.committed
        assert result.max_depth == 0

    def test_result_repr_box(self):
        error = StackOverflow("too deep")
        error.origin = self._info(3)
        result = TransactionResult(TxStatus.REVERTED, {"bank": 10}, (), error, error.origin, 4)
        text = repr(result)
        assert "Transaction #4: REVERTED" in text
        assert "StackOverflow: too deep" in text
        assert "bank: 10" in text
        assert text.splitlines()[1].startswith("┌")
