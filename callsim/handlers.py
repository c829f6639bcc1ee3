"""
handlers.py - Handler Operations

A handler is an ordered tuple of abstract operations. Composing handlers from
these primitives is enough to express the vulnerable contract, the
effects-first contract, the guarded contract and the attacker that reenters
them, without interpreting any bytecode.

Operands:
    Account references are CALLER, SELF or a literal account id.
    Amounts are ints or call-scoped operands: VALUE (value carried by the
    current frame) and ARG(name) (a named call argument). Operands negate,
    so AdjustBalance(CALLER, -ARG("amount")) decreases a book entry.
    ARG(name) also works in account position when the argument is an id.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple, Union

from .core import AccountId, FailurePolicy, LOW_BUDGET, _LowBudget


# ============================================================================
# OPERANDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class AccountRef:
    """Symbolic account resolved against the running frame."""
    name: str

    def __repr__(self) -> str:
        return self.name


# The account that issued the current call
CALLER = AccountRef("CALLER")
# The account whose handler is running
SELF = AccountRef("SELF")


@dataclass(frozen=True, slots=True)
class Operand:
    """
    Symbolic amount resolved against the running frame.

    Attributes:
        source: "value" for the frame's carried value, "arg" for a call argument.
        name: Argument name when source is "arg".
        sign: 1 or -1.
    """
    source: str
    name: Optional[str] = None
    sign: int = 1

    def __post_init__(self):
        if self.source not in ("value", "arg"):
            raise ValueError(f"Unknown operand source: {self.source}")
        if self.source == "arg" and not self.name:
            raise ValueError("Argument operand requires a name")
        if self.sign not in (1, -1):
            raise ValueError(f"Operand sign must be 1 or -1, got {self.sign}")

    def __neg__(self) -> Operand:
        return Operand(self.source, self.name, -self.sign)

    def __repr__(self) -> str:
        base = "VALUE" if self.source == "value" else f"ARG({self.name!r})"
        return f"-{base}" if self.sign < 0 else base


def ARG(name: str) -> Operand:
    """Operand reading a named argument (amount or account id) of the current call."""
    return Operand("arg", name)


VALUE = Operand("value")

AccountLike = Union[AccountId, AccountRef, Operand]
Amount = Union[int, Operand]
Gas = Union[None, int, _LowBudget]


# ============================================================================
# OPERATIONS
# ============================================================================

@dataclass(frozen=True, slots=True)
class CheckBalance:
    """
    Fail the handler with HandlerAssertionFailed unless balance >= minimum.

    With book=True the current contract's storage book entry for `account`
    is checked instead of the account's value balance.
    """
    account: AccountLike
    minimum: Amount
    book: bool = False


@dataclass(frozen=True, slots=True)
class ReturnUnless:
    """
    End the handler successfully unless balance >= minimum.

    Same operands as CheckBalance. Used for bounded loops such as
    "reenter while the victim still holds funds".
    """
    account: AccountLike
    minimum: Amount
    book: bool = False


@dataclass(frozen=True, slots=True)
class AdjustBalance:
    """Add delta (may be negative) to the current contract's book entry for `account`."""
    account: AccountLike
    delta: Amount


@dataclass(frozen=True, slots=True)
class ExternalCall:
    """
    Call another account, optionally carrying value.

    Attributes:
        target: Account to call.
        entry_point: Named entry point, or None for a bare value transfer (fallback).
        value: Value moved from the current contract to the target.
        gas: None forwards the whole ambient budget, an int forwards at most
             that much, LOW_BUDGET forwards the configured low-budget amount.
        args: Named arguments passed to the callee: integers (amounts) or
              account ids. Operands and CALLER/SELF are resolved first.
        on_failure: PROPAGATE aborts this handler, IGNORE continues.
    """
    target: AccountLike
    entry_point: Optional[str] = None
    value: Amount = 0
    gas: Gas = None
    args: Optional[Tuple[Tuple[str, Union[Amount, AccountLike]], ...]] = None
    on_failure: FailurePolicy = FailurePolicy.PROPAGATE

    def __post_init__(self):
        if isinstance(self.gas, bool) or not (
            self.gas is None or self.gas is LOW_BUDGET or isinstance(self.gas, int)
        ):
            raise TypeError(f"gas must be None, an int or LOW_BUDGET, got {self.gas!r}")
        if isinstance(self.gas, int) and self.gas < 0:
            raise ValueError(f"gas cannot be negative, got {self.gas}")
        if isinstance(self.args, Mapping):
            object.__setattr__(self, 'args', tuple(sorted(self.args.items())))

    def arg_map(self) -> Dict[str, Union[Amount, AccountLike]]:
        return dict(self.args or ())


@dataclass(frozen=True, slots=True)
class GuardEnter:
    """Lock the named guard of the current contract (None = current entry point)."""
    name: Optional[str] = None


@dataclass(frozen=True, slots=True)
class GuardExit:
    """Release the named guard of the current contract (None = current entry point)."""
    name: Optional[str] = None


Operation = Union[CheckBalance, ReturnUnless, AdjustBalance, ExternalCall, GuardEnter, GuardExit]
Handler = Tuple[Operation, ...]

_OPERATION_TYPES = (CheckBalance, ReturnUnless, AdjustBalance, ExternalCall, GuardEnter, GuardExit)


def handler(*operations: Operation) -> Handler:
    """
    Build a handler from operations, validating each one.

    Example:
        withdraw = handler(
            CheckBalance(CALLER, ARG("amount"), book=True),
            ExternalCall(CALLER, value=ARG("amount")),
            AdjustBalance(CALLER, -ARG("amount")),
        )
    """
    for op in operations:
        if not isinstance(op, _OPERATION_TYPES):
            raise TypeError(f"Not a handler operation: {op!r}")
    return tuple(operations)


def guarded(*operations: Operation, name: Optional[str] = None) -> Handler:
    """Wrap operations between GuardEnter and GuardExit."""
    return handler(GuardEnter(name), *operations, GuardExit(name))
