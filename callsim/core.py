"""
Core types for the contract-call simulator.

This module provides the foundational data structures shared by every other module:
1. Constants: default configuration values and the LOW_BUDGET forwarding marker
2. Exceptions: SimulationError and the execution failure taxonomy
3. Enums: account kinds, transaction status, failure policy, frame event kinds
4. Immutable records: SimulatorConfig, FrameInfo, FrameEvent, TransactionResult

Nothing in this module mutates simulator state.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple


# ============================================================================
# CONSTANTS
# ============================================================================

# Maximum nesting of simultaneously active call frames (root frame is depth 1).
DEFAULT_MAX_STACK_DEPTH = 1024

# Budget forwarded by the restricted transfer primitive, regardless of the
# ambient budget of the calling frame.
DEFAULT_LOW_BUDGET_AMOUNT = 2300

# Smallest budget a frame must hold to issue a further external call.
# Strictly above the low-budget amount, so a low-budget callee can never call out.
DEFAULT_MIN_CALL_BUDGET = 2301

# Budget given to a root call when the caller does not specify one.
DEFAULT_GAS_BUDGET = 30_000_000


class _LowBudget:
    """Marker for ExternalCall.gas selecting the restricted forwarding primitive."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "LOW_BUDGET"


LOW_BUDGET = _LowBudget()


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Opaque, unique, comparable account identifier.
AccountId = str

# Mapping from account identifier to balance in the smallest unit.
BalanceMap = Dict[AccountId, int]


# ============================================================================
# ENUMS
# ============================================================================

class AccountKind(Enum):
    """
    Closed variant set of accounts.

    PASSIVE: accepts inbound value unconditionally, runs no code.
    PROGRAMMABLE: owns entry-point handlers and an optional fallback handler.
    """
    PASSIVE = "passive"
    PROGRAMMABLE = "programmable"


class TxStatus(Enum):
    """
    Lifecycle of a single transaction inside the call stack engine.

    IDLE: no frames, waiting for the root call.
    RUNNING: one or more frames active.
    COMMITTED: root call completed, every mutation kept.
    REVERTED: a failure reached the root, every mutation discarded.
    """
    IDLE = "idle"
    RUNNING = "running"
    COMMITTED = "committed"
    REVERTED = "reverted"


class FailurePolicy(Enum):
    """What a handler does when one of its external calls fails."""
    PROPAGATE = "propagate"   # abort the handler with the callee's error
    IGNORE = "ignore"         # record the failure and continue with the next operation


class EventKind(Enum):
    """Kinds of entries in a transaction trace."""
    ENTER = "enter"
    EXIT = "exit"
    REVERT = "revert"
    IGNORED = "ignored"
    GUARD_LOCK = "guard_lock"
    GUARD_UNLOCK = "guard_unlock"
    HALT = "halt"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class SimulationError(Exception):
    """Base exception for all simulator errors."""
    pass


class ExecutionError(SimulationError):
    """
    Failure raised while a transaction is running.

    Every execution error causes the enclosing call to fail; the engine
    records the frame where it was first raised in `origin`.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.origin: Optional[FrameInfo] = None


class InsufficientFunds(ExecutionError):
    """Raised when a debit would take an account balance below zero."""
    pass


class ReentrancyDetected(ExecutionError):
    """Raised by GuardEnter when the guard is already locked."""
    pass


class StackOverflow(ExecutionError):
    """Raised when a call would exceed the configured maximum stack depth."""
    pass


class OutOfBudget(ExecutionError):
    """Raised when a frame attempts an external call without enough forwarded budget."""
    pass


class HandlerAssertionFailed(ExecutionError):
    """Raised when a CheckBalance operation does not hold."""
    pass


class AccountNotFound(SimulationError):
    """Raised when referring to an account that was never created."""
    pass


class TransactionFinalized(SimulationError):
    """Raised when asking an engine to run a transaction that already finished."""
    pass


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(frozen=True, slots=True)
class SimulatorConfig:
    """
    Immutable simulator configuration.

    Attributes:
        max_stack_depth: Deepest allowed frame; pushing beyond it fails with StackOverflow.
        low_budget_amount: Budget always forwarded by the restricted transfer primitive.
        min_call_budget: Budget a frame needs to issue an external call at all.
        default_gas_budget: Budget of a root call issued without an explicit budget.
    """
    max_stack_depth: int = DEFAULT_MAX_STACK_DEPTH
    low_budget_amount: int = DEFAULT_LOW_BUDGET_AMOUNT
    min_call_budget: int = DEFAULT_MIN_CALL_BUDGET
    default_gas_budget: int = DEFAULT_GAS_BUDGET

    def __post_init__(self):
        if self.max_stack_depth < 1:
            raise ValueError(f"max_stack_depth must be at least 1, got {self.max_stack_depth}")
        if self.low_budget_amount < 0:
            raise ValueError(f"low_budget_amount cannot be negative, got {self.low_budget_amount}")
        if self.min_call_budget < 0:
            raise ValueError(f"min_call_budget cannot be negative, got {self.min_call_budget}")
        if self.default_gas_budget < 0:
            raise ValueError(f"default_gas_budget cannot be negative, got {self.default_gas_budget}")


# ============================================================================
# TRACE RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class FrameInfo:
    """
    Identity of one call frame, detached from the live frame object.

    Attributes:
        depth: Nesting level (root call is 1).
        caller: Account that issued the call.
        callee: Account being invoked.
        entry_point: Named entry point, or None for a bare value transfer.
        value: Value carried by the call.
        gas: Budget the frame was given.
    """
    depth: int
    caller: AccountId
    callee: AccountId
    entry_point: Optional[str]
    value: int
    gas: int

    def __repr__(self) -> str:
        target = f"{self.callee}.{self.entry_point}" if self.entry_point else f"{self.callee}.<fallback>"
        return f"#{self.depth} {self.caller}→{target} value={self.value} gas={self.gas}"


@dataclass(frozen=True, slots=True)
class FrameEvent:
    """
    One entry of a transaction trace.

    Attributes:
        kind: What happened.
        frame: Frame the event belongs to.
        detail: Free-form description (error message, guard name, ...).
    """
    kind: EventKind
    frame: FrameInfo
    detail: str = ""

    def __repr__(self) -> str:
        indent = "  " * (self.frame.depth - 1)
        suffix = f" ({self.detail})" if self.detail else ""
        return f"{indent}{self.kind.value.upper()} {self.frame!r}{suffix}"


@dataclass(frozen=True, slots=True)
class TransactionResult:
    """
    Immutable outcome of one top-level call.

    Attributes:
        status: COMMITTED or REVERTED.
        final_balances: Ledger balances after finalisation.
        trace: Ordered frame events produced while running.
        error: The error that reverted the transaction (None when committed).
        failed_frame: Frame where the reverting error originated.
        sequence_number: Position of this transaction in the simulator's log.
    """
    status: TxStatus
    final_balances: BalanceMap
    trace: Tuple[FrameEvent, ...]
    error: Optional[ExecutionError] = None
    failed_frame: Optional[FrameInfo] = None
    sequence_number: int = 0

    @property
    def committed(self) -> bool:
        return self.status is TxStatus.COMMITTED

    @property
    def max_depth(self) -> int:
        """Deepest frame that actually started running."""
        return max((event.frame.depth for event in self.trace if event.kind is EventKind.ENTER), default=0)

    def events(self, kind: EventKind) -> Tuple[FrameEvent, ...]:
        """Return the trace events of one kind, in order."""
        return tuple(event for event in self.trace if event.kind is kind)

    def __repr__(self) -> str:
        w = 100
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            "",
            f"┌{bar}┐",
            f"│{pad(' Transaction #' + str(self.sequence_number) + ': ' + self.status.value.upper())}│",
            f"├{bar}┤",
            f"│{pad('   frames         : ' + str(len(self.events(EventKind.ENTER))))}│",
            f"│{pad('   max depth      : ' + str(self.max_depth))}│",
        ]
        if self.error is not None:
            lines.append(f"│{pad('   error          : ' + type(self.error).__name__ + ': ' + str(self.error))}│")
            lines.append(f"│{pad('   failed frame   : ' + repr(self.failed_frame))}│")
        lines.append(f"├{bar}┤")
        lines.append(f"│{pad(' Balances (' + str(len(self.final_balances)) + '):')}│")
        for account, balance in sorted(self.final_balances.items()):
            lines.append(f"│{pad('   ' + account + ': ' + str(balance))}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)
