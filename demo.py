#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Reentrancy Step by Step

A pedagogical walkthrough of the contract-call simulator. Each step builds a
small world, runs one attack or one defence, and explains what the trace shows.
Press Enter to advance.

WHAT YOU'LL LEARN:
  1-2:   Foundation   - Accounts, the ledger, bare transfers and rollback
  3-4:   The Attack   - A bank that pays before it updates its books
  5-8:   Defences     - Effects first, guards, shared guards, low budget
  9-10:  Limits       - Depth bound, conservation proof

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
import sys

from callsim import (
    Simulator, SimulatorConfig, EventKind, TxStatus,
    AccountKind, passive,
    vulnerable_bank, effects_first_bank, guarded_bank, low_budget_bank,
    reentrant_attacker, cross_function_attacker,
    recursive_caller, registered_receiver,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    # Funding
    bank_reserves: int = 10
    attacker_stake: int = 1
    alice_initial: int = 100

    # Over-deposit scenario
    over_deposit: int = 2

    # Depth bound: the default is 1024; the trace is not printed
    max_stack_depth: int = 1024


CONFIG = DemoConfig()

# Global state for interactive mode
QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    """Print a section header within a step."""
    print(f"\n--- {text} ---\n")


def bank_world(bank_factory, deposit: int = None, amount: int = 1, **bank_kwargs) -> Simulator:
    """Build a simulator holding a funded bank and a reentrant attacker with a deposit."""
    deposit = CONFIG.attacker_stake if deposit is None else deposit
    sim = Simulator("demo", verbose=True)
    sim.add_account(bank_factory("bank", **bank_kwargs), initial_balance=CONFIG.bank_reserves)
    sim.add_account(reentrant_attacker("thief", "bank", amount=amount), initial_balance=deposit)
    sim.call("thief", "bank", "deposit", value=deposit)
    return sim


# ============================================================================
# PHASE 1: FOUNDATION (Steps 1-2)
# ============================================================================

def step_01_accounts():
    """Create passive accounts and move value between them."""
    step_header(1, "Accounts and the Ledger",
        "Understand that every balance lives on one ledger and transfers are atomic.")

    print("""
    The simulator has two kinds of accounts:

    PASSIVE       - holds value, runs no code (a person's wallet)
    PROGRAMMABLE  - holds value AND has handlers (a contract)

    Every balance lives on the Ledger. Value is only created at setup (mint).
    """)

    wait_for_enter()

    print(">>> sim = Simulator('tutorial')")
    print(">>> sim.create_account('passive', initial_balance=100, account_id='alice')")
    print(">>> sim.create_account('passive', account_id='bob')")
    sim = Simulator("tutorial", verbose=True)
    sim.create_account(AccountKind.PASSIVE, initial_balance=CONFIG.alice_initial, account_id="alice")
    sim.create_account(AccountKind.PASSIVE, account_id="bob")

    section_header("A Bare Transfer")
    print(">>> sim.transfer('alice', 'bob', 30)")
    sim.transfer("alice", "bob", 30)

    section_header("An Overdraft")
    print(">>> sim.transfer('bob', 'alice', 999)")
    result = sim.transfer("bob", "alice", 999)
    print(f"\nStatus: {result.status.value}, bob still holds {sim.balance_of('bob')}")

    section_header("Key Insight")
    print("""
    A failed transaction is REVERTED: nothing it did survives.
    The simulator is immediately ready for the next call.
    """)
    return sim


def step_02_rollback(sim: Simulator):
    """A programmable recipient that rejects value rolls the transfer back."""
    step_header(2, "Rollback of a Nested Failure",
        "See that a recipient's failing fallback undoes the value transfer itself.")

    print("""
    A programmable account runs its FALLBACK handler whenever it receives a
    bare transfer. This one only accepts value from registered senders.
    """)

    wait_for_enter()

    sim.add_account(registered_receiver("vault"))
    print(">>> sim.transfer('alice', 'vault', 10)   # alice never registered")
    result = sim.transfer("alice", "vault", 10)
    print(f"\nStatus: {result.status.value}, failed frame: {result.failed_frame!r}")
    print(f"alice: {sim.balance_of('alice')}, vault: {sim.balance_of('vault')}")

    section_header("Register, Then Retry")
    sim.call("alice", "vault", "register")
    sim.transfer("alice", "vault", 10)

    section_header("Key Insight")
    print("""
    Each frame takes a journal checkpoint BEFORE its inbound value arrives.
    When the frame fails, the journal is unwound to that checkpoint.
    """)
    return sim


# ============================================================================
# PHASE 2: THE ATTACK (Steps 3-4)
# ============================================================================

def step_03_vulnerable_bank():
    """Drain a bank that pays before it updates its book."""
    step_header(3, "The Reentrancy Attack",
        "Watch a contract's fallback reenter withdraw() before the book is updated.")

    print("""
    The vulnerable bank's withdraw handler:

        CheckBalance(CALLER, ARG("amount"), book=True)   # enough deposited?
        ExternalCall(CALLER, value=ARG("amount"))        # pay   <-- attacker code runs here
        AdjustBalance(CALLER, -ARG("amount"))            # then update the book

    The attacker's fallback withdraws again while the bank still holds funds.
    """)

    wait_for_enter()

    sim = bank_world(vulnerable_bank)
    print('>>> sim.call("thief", "bank", "withdraw", args={"amount": 1})')
    result = sim.call("thief", "bank", "withdraw", args={"amount": 1})

    section_header("Result")
    print(f"thief: {sim.balance_of('thief')}   (deposited {CONFIG.attacker_stake})")
    print(f"bank:  {sim.balance_of('bank')}")
    print(f"book[thief]: {sim.book_of('bank', 'thief')}   (the deferred debits, all at once)")
    print(f"deepest frame: {result.max_depth}")
    return sim


def step_04_what_happened(sim: Simulator):
    """Read the trace of the attack."""
    step_header(4, "Reading the Trace",
        "Relate the ENTER/EXIT events to the interleaving that made the attack work.")

    result = sim.transaction_log[-1]
    enters = result.events(EventKind.ENTER)
    halts = result.events(EventKind.HALT)
    print(f"Frames entered:  {len(enters)}")
    print(f"Halted early:    {len(halts)}  ({halts[0].frame!r})")

    section_header("Key Insight")
    print("""
    Every nested withdraw saw the SAME book entry, because the debit of the
    outer withdraw had not happened yet. The transaction COMMITTED: nothing
    in the rules was broken, the contract simply trusted stale state.
    """)


# ============================================================================
# PHASE 3: DEFENCES (Steps 5-8)
# ============================================================================

def step_05_effects_first():
    """Update the book before paying."""
    step_header(5, "Defence 1: Effects Before Interactions",
        "Reorder the handler so the book is debited before the external call.")

    sim = bank_world(effects_first_bank)
    result = sim.call("thief", "bank", "withdraw", args={"amount": 1})
    print(f"\nthief: {sim.balance_of('thief')}, ignored reentries: {len(result.events(EventKind.IGNORED))}")

    section_header("Over-Deposit")
    print(f"Deposit {CONFIG.over_deposit}, withdraw 1: the attacker can reenter once, and only")
    print("because the book genuinely covers it.")
    sim = bank_world(effects_first_bank, deposit=CONFIG.over_deposit)
    sim.call("thief", "bank", "withdraw", args={"amount": 1})
    print(f"\nthief: {sim.balance_of('thief')}   (exactly what was deposited)")


def step_06_guard():
    """Lock the entry point for the duration of the call."""
    step_header(6, "Defence 2: Reentrancy Guard",
        "Wrap withdraw in GuardEnter/GuardExit so a second entry fails.")

    sim = bank_world(guarded_bank)
    result = sim.call("thief", "bank", "withdraw", args={"amount": 1})
    ignored = result.events(EventKind.IGNORED)

    section_header("Result")
    print(f"thief: {sim.balance_of('thief')}")
    print(f"reentry outcome: {ignored[0].detail}")
    print(f"guard locked afterwards: {sim.is_locked('bank', 'withdraw')}")


def step_07_cross_function():
    """Per-entry-point guards miss reentry through a different entry point."""
    step_header(7, "Cross-Function Reentrancy",
        "Show that a guard per entry point is not enough, and a shared guard is.")

    for label, shared in (("per-entry-point guards", None), ("one shared guard", "lock")):
        section_header(label)
        sim = Simulator("demo", verbose=False)
        sim.add_account(guarded_bank("bank", shared_guard=shared), initial_balance=CONFIG.bank_reserves)
        sim.add_account(passive("accomplice"))
        sim.add_account(cross_function_attacker("thief", "bank", "accomplice"), initial_balance=1)
        sim.call("thief", "bank", "deposit", value=1)
        sim.call("thief", "bank", "withdraw", args={"amount": 1})
        sim.call("accomplice", "bank", "withdraw", args={"amount": 1})
        total = sim.balance_of("thief") + sim.balance_of("accomplice")
        print(f"thief + accomplice hold {total} after depositing 1")


def step_08_low_budget():
    """Pay with the restricted transfer primitive."""
    step_header(8, "Defence 3: The Low-Budget Transfer",
        "Forward too little budget for the recipient to make any further call.")

    sim = bank_world(low_budget_bank)
    result = sim.call("thief", "bank", "withdraw", args={"amount": 1})
    ignored = result.events(EventKind.IGNORED)
    print(f"\nthief: {sim.balance_of('thief')}")
    print(f"reentry outcome: {ignored[0].detail}")


# ============================================================================
# PHASE 4: LIMITS (Steps 9-10)
# ============================================================================

def step_09_depth_bound():
    """Unbounded self-recursion stops at the depth limit."""
    step_header(9, "The Depth Bound",
        "See that a contract calling itself forever is stopped, not hung.")

    sim = Simulator("depth", SimulatorConfig(max_stack_depth=CONFIG.max_stack_depth), verbose=False)
    sim.add_account(passive("alice"))
    sim.add_account(recursive_caller("echo"))
    result = sim.call("alice", "echo", "ping")

    print(f"Status:        {result.status.value}")
    print(f"Error:         {type(result.error).__name__}: {result.error}")
    print(f"Deepest frame: {result.max_depth}")
    assert result.status is TxStatus.REVERTED


def step_10_conservation(sims):
    """Value is never created or destroyed by calls."""
    step_header(10, "Conservation Proof",
        "Verify that every world still holds exactly what was minted.")

    for sim in sims:
        check = sim.verify_conservation()
        status = "✓" if check['valid'] else "✗"
        print(f"{status} {sim.name}: supply={check['supply']} expected={check['expected']}")


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       CALLSIM - REENTRANCY TUTORIAL")
    print("=" * 70)
    print("""
    Press Enter to advance through each step.

    PHASES:
      1-2:   Foundation   - Accounts, transfers, rollback
      3-4:   The Attack   - Draining a vulnerable bank
      5-8:   Defences     - Effects first, guards, low budget
      9-10:  Limits       - Depth bound, conservation
    """)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")

    wait_for_enter()

    # Phase 1: Foundation
    sim = step_01_accounts()
    wait_for_enter()

    sim = step_02_rollback(sim)
    wait_for_enter()

    # Phase 2: The Attack
    attacked = step_03_vulnerable_bank()
    wait_for_enter()

    step_04_what_happened(attacked)
    wait_for_enter()

    # Phase 3: Defences
    step_05_effects_first()
    wait_for_enter()

    step_06_guard()
    wait_for_enter()

    step_07_cross_function()
    wait_for_enter()

    step_08_low_budget()
    wait_for_enter()

    # Phase 4: Limits
    step_09_depth_bound()
    wait_for_enter()

    step_10_conservation([sim, attacked])

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    You've learned:

    THE ATTACK
      - An external call hands control to the recipient's code
      - State updated after the call is stale while the call runs

    DEFENCES
      - Effects before interactions: update books first
      - Guards: lock the contract (share the lock across entry points)
      - Low budget: the recipient cannot afford to call back

    PROPERTIES
      - Atomicity: a failed frame undoes its own transfer
      - Conservation: calls move value, never create it
      - Depth bound: runaway recursion reverts, never hangs

    Next steps:
      - See callsim/contracts.py for the handler definitions
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
