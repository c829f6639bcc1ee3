"""
Atomicity Conformance Tests

INVARIANT: Transactions are all-or-nothing.

    ∀ transaction T:
        T commits ⟹ every surviving frame's mutations are applied
        T reverts ⟹ balances and books equal their values before T

    ∀ frame F that fails inside a committed T:
        F's inbound transfer and every mutation after it are undone

Partial application is impossible by construction: every frame takes a
journal checkpoint before its inbound transfer.
"""

from hypothesis import given, settings

from callsim import (
    Simulator, TxStatus, EventKind, FailurePolicy,
    passive, programmable, handler,
    CALLER, VALUE, AdjustBalance, CheckBalance, ExternalCall,
)

from .worlds import build_world, apply, books, call_sequences


class TestAtomicityProperties:
    """Property-based atomicity tests."""

    @given(call_sequences)
    @settings(max_examples=60, deadline=None)
    def test_reverted_call_changes_nothing(self, sequence):
        """
        PROPERTY: A reverted transaction leaves balances and books untouched.
        """
        sim = build_world()
        for call in sequence:
            balances_before = sim.balances()
            books_before = books(sim)
            result = apply(sim, call)
            if result.status is TxStatus.REVERTED:
                assert sim.balances() == balances_before
                assert books(sim) == books_before
                assert result.final_balances == balances_before

    @given(call_sequences)
    @settings(max_examples=40, deadline=None)
    def test_result_matches_ledger(self, sequence):
        """
        PROPERTY: final_balances is exactly the ledger state after finalisation.
        """
        sim = build_world()
        for call in sequence:
            result = apply(sim, call)
            assert result.final_balances == sim.balances()
            assert result.status in (TxStatus.COMMITTED, TxStatus.REVERTED)
            assert (result.error is None) == result.committed


class TestAtomicityExamples:
    """Explicit atomicity examples."""

    def _world(self):
        sim = Simulator(verbose=False)
        sim.add_account(passive("alice"), initial_balance=100)
        sim.add_account(passive("bob"))
        # Records the deposit, pays bob, then insists on a balance it never has
        sim.add_account(programmable("strict", {
            "go": handler(
                AdjustBalance(CALLER, VALUE),
                ExternalCall("bob", value=VALUE),
                CheckBalance("strict", 1_000_000),
            ),
        }))
        sim.add_account(programmable("outer", {
            "go": handler(
                AdjustBalance(CALLER, 1),
                ExternalCall("strict", "go", value=VALUE, on_failure=FailurePolicy.IGNORE),
            ),
        }))
        return sim

    def test_failing_last_operation_rolls_back_all(self):
        sim = self._world()
        result = sim.call("alice", "strict", "go", value=10)
        assert result.status is TxStatus.REVERTED
        assert sim.balances() == {"alice": 100, "bob": 0, "outer": 0, "strict": 0}
        assert sim.book_of("strict") == {}

    def test_failed_inner_frame_rolls_back_only_itself(self):
        sim = self._world()
        result = sim.call("alice", "outer", "go", value=10)
        assert result.committed
        assert sim.balances() == {"alice": 90, "bob": 0, "outer": 10, "strict": 0}
        assert sim.book_of("outer") == {"alice": 1}
        assert sim.book_of("strict") == {}

    def test_failed_frame_trace(self):
        sim = self._world()
        result = sim.call("alice", "outer", "go", value=10)
        reverted = result.events(EventKind.REVERT)
        assert [e.frame.callee for e in reverted] == ["strict"]
        assert result.events(EventKind.EXIT)[-1].frame.callee == "outer"

    def test_attack_and_honest_calls_interleave_atomically(self):
        sim = build_world()
        sim.call("alice", "vbank", "deposit", value=10)
        sim.call("thief", "vbank", "deposit", value=1)
        attack = sim.call("thief", "vbank", "withdraw", args={"amount": 1})
        assert attack.committed
        honest = sim.call("alice", "vbank", "withdraw", args={"amount": 10})
        assert honest.status is TxStatus.REVERTED
        assert sim.book_of("vbank", "alice") == 10
