"""
conftest.py - Shared pytest fixtures for callsim tests

Provides common fixtures used across unit, functional and conformance tests:
- Bare ledgers and simulators
- Bank worlds: a funded bank plus a reentrant attacker that has deposited
- Comparison utilities
"""

import pytest
from typing import Any, Dict, Tuple

from callsim import (
    Ledger, Simulator, SimulatorConfig, TransactionResult, EventKind,
    passive,
    vulnerable_bank, effects_first_bank, guarded_bank, low_budget_bank,
    reentrant_attacker,
)


BANK_RESERVES = 10


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def build_bank_world(bank_factory, deposit: int = 1, amount: int = 1, config: SimulatorConfig = None,
                     **bank_kwargs) -> Simulator:
    """
    Create a simulator with "bank" holding BANK_RESERVES and "thief" having
    deposited `deposit` into it. The thief's fallback reenters withdraw(amount).
    """
    sim = Simulator("test", config=config, verbose=False)
    sim.add_account(bank_factory("bank", **bank_kwargs), initial_balance=BANK_RESERVES)
    sim.add_account(reentrant_attacker("thief", "bank", amount=amount), initial_balance=deposit)
    result = sim.call("thief", "bank", "deposit", value=deposit)
    assert result.committed
    return sim


def trace_summary(result: TransactionResult) -> Tuple[Tuple[str, int, str, Any], ...]:
    """Reduce a trace to comparable tuples: (event kind, depth, callee, entry point)."""
    return tuple(
        (event.kind.value, event.frame.depth, event.frame.callee, event.frame.entry_point)
        for event in result.trace
    )


def simulator_state(sim: Simulator) -> Dict[str, Any]:
    """Snapshot of everything observable about a simulator."""
    return {
        "balances": sim.balances(),
        "books": {account: sim.book_of(account) for account in sorted(sim.list_accounts())},
        "log": [(r.status, r.final_balances, trace_summary(r)) for r in sim.transaction_log],
    }


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def empty_ledger():
    """Ledger with no accounts."""
    return Ledger("test", verbose=False)


@pytest.fixture
def funded_ledger():
    """Ledger with alice (100) and bob (0)."""
    ledger = Ledger("test", verbose=False)
    ledger.register_account("alice")
    ledger.register_account("bob")
    ledger.mint("alice", 100)
    return ledger


@pytest.fixture
def simulator():
    """Simulator with passive accounts alice (100) and bob (0)."""
    sim = Simulator("test", verbose=False)
    sim.add_account(passive("alice"), initial_balance=100)
    sim.add_account(passive("bob"))
    return sim


# =============================================================================
# BANK WORLDS
# =============================================================================

@pytest.fixture
def vulnerable_world():
    return build_bank_world(vulnerable_bank)


@pytest.fixture
def effects_first_world():
    return build_bank_world(effects_first_bank)


@pytest.fixture
def guarded_world():
    return build_bank_world(guarded_bank)


@pytest.fixture
def low_budget_world():
    return build_bank_world(low_budget_bank)


@pytest.fixture
def bank_world():
    """Factory fixture: build_bank_world(bank_factory, deposit=1, amount=1, ...)."""
    return build_bank_world


@pytest.fixture
def state_of():
    """Utility fixture: simulator_state(sim)."""
    return simulator_state
