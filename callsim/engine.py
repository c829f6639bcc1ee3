"""
engine.py - Call Stack Engine

Executes one transaction: a root call and every nested call it triggers.

State machine:
    IDLE → RUNNING → {COMMITTED, REVERTED}

Frames live on an explicit stack. Each iteration of the run loop advances
the top frame's cursor by one operation. An ExternalCall pushes a new frame
and parks the caller until that frame returns or fails, so reentrancy is
simply a frame for a contract that already has a frame lower on the stack.
The host interpreter's own stack never grows with simulated depth.

Rules enforced on every call:
    1. Depth: a frame deeper than config.max_stack_depth fails with StackOverflow.
    2. Budget: a frame holding less than config.min_call_budget cannot call out
       (OutOfBudget). LOW_BUDGET calls always forward config.low_budget_amount.
    3. Atomicity: a failed frame is rolled back to its checkpoint, which was
       taken before its inbound value transfer. A failure that reaches the
       root reverts the whole transaction.
"""

from __future__ import annotations
from contextlib import ExitStack
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Union

from .accounts import Account
from .core import (
    AccountId, TxStatus, FailurePolicy, EventKind,
    SimulatorConfig, FrameInfo, FrameEvent,
    ExecutionError, OutOfBudget, StackOverflow, HandlerAssertionFailed,
    AccountNotFound, TransactionFinalized, LOW_BUDGET,
)
from .guard import GuardRegistry
from .handlers import (
    Handler, Operation, AccountRef, Operand, CALLER, SELF,
    CheckBalance, ReturnUnless, AdjustBalance, ExternalCall, GuardEnter, GuardExit,
)
from .ledger import Ledger


@dataclass(slots=True)
class CallFrame:
    """
    One in-flight invocation.

    Attributes:
        info: Immutable identity (caller, callee, entry point, value, gas, depth).
        handler: Operations to execute.
        args: Resolved call arguments.
        checkpoint: Ledger journal position taken before the inbound transfer.
        handler_name: Entry point whose handler runs, or "<fallback>".
        cursor: Index of the next operation.
        awaiting: ExternalCall whose nested frame has not returned yet.
        resources: Scoped resources released when the frame ends, however it ends.
        guards: Guards acquired by this frame, by name.
    """
    info: FrameInfo
    handler: Handler
    args: Dict[str, Union[int, AccountId]]
    checkpoint: int
    handler_name: str = "<fallback>"
    cursor: int = 0
    awaiting: Optional[ExternalCall] = None
    resources: ExitStack = field(default_factory=ExitStack)
    guards: Dict[str, ExitStack] = field(default_factory=dict)

    @property
    def done(self) -> bool:
        return self.cursor >= len(self.handler)


class _Halt(Exception):
    """Internal signal: ReturnUnless ended the handler early."""


class CallStackEngine:
    """
    Runs exactly one transaction against a ledger.

    The engine is the sole mutator of the ledger while RUNNING. A fresh
    engine is created for every top-level call; asking a finished engine to
    run again raises TransactionFinalized.
    """

    def __init__(
        self,
        ledger: Ledger,
        accounts: Mapping[AccountId, Account],
        guards: GuardRegistry,
        config: Optional[SimulatorConfig] = None,
        verbose: bool = False,
    ):
        self.ledger = ledger
        self.accounts = accounts
        self.guards = guards
        self.config = config or SimulatorConfig()
        self.verbose = verbose
        self.status = TxStatus.IDLE
        self.trace: List[FrameEvent] = []
        self.error: Optional[ExecutionError] = None
        self._stack: List[CallFrame] = []
        # Outcome of the most recently finished nested call (None = success)
        self._returned: Optional[ExecutionError] = None

    @property
    def depth(self) -> int:
        """Number of frames currently in flight."""
        return len(self._stack)

    # ========================================================================
    # TRANSACTION
    # ========================================================================

    def run(
        self,
        caller: AccountId,
        callee: AccountId,
        entry_point: Optional[str] = None,
        value: int = 0,
        gas_budget: Optional[int] = None,
        args: Optional[Mapping[str, Union[int, AccountId]]] = None,
    ) -> TxStatus:
        """
        Execute the root call and finalise the transaction.

        Returns:
            COMMITTED or REVERTED. On REVERTED, self.error holds the error
            and error.origin the frame where it was first raised.

        Raises:
            TransactionFinalized: If this engine already ran a transaction
            AccountNotFound: If a handler names a literal account id that does
                             not exist (the transaction is reverted before
                             raising). Unknown ids arriving as call arguments
                             fail the handler instead.
        """
        if self.status is not TxStatus.IDLE:
            raise TransactionFinalized(f"Transaction already {self.status.value}")
        self.status = TxStatus.RUNNING
        start = self.ledger.checkpoint()
        gas = self.config.default_gas_budget if gas_budget is None else gas_budget
        try:
            try:
                root = self._begin_call(caller, callee, entry_point, value, gas, dict(args or {}), depth=1)
            except ExecutionError as exc:
                error = exc
            else:
                self._stack.append(root)
                error = self._execute()
        except BaseException:
            self._unwind()
            self._finalize(start, revert=True)
            raise
        self.error = error
        self._finalize(start, revert=error is not None)
        return self.status

    def _finalize(self, start: int, revert: bool) -> None:
        if revert:
            self.ledger.revert_to(start)
            self.status = TxStatus.REVERTED
        else:
            self.status = TxStatus.COMMITTED
        self.ledger.discard_journal()
        self.guards.rearm()
        if self.verbose:
            print(f"{'✓' if not revert else '✗'} {self.status.value.upper()}"
                  + (f": {type(self.error).__name__}: {self.error}" if self.error else ""))

    def _unwind(self) -> None:
        """Close every remaining frame's scoped resources, innermost first."""
        while self._stack:
            self._stack.pop().resources.close()

    # ========================================================================
    # RUN LOOP
    # ========================================================================

    def _execute(self) -> Optional[ExecutionError]:
        """Run frames until the stack is empty; return the root's error, if any."""
        while self._stack:
            frame = self._stack[-1]

            if frame.awaiting is not None:
                op, frame.awaiting = frame.awaiting, None
                error, self._returned = self._returned, None
                if error is not None:
                    if op.on_failure is FailurePolicy.IGNORE:
                        self._record(EventKind.IGNORED, frame.info, f"{type(error).__name__}: {error}")
                    else:
                        root_error = self._fail(frame, error)
                        if root_error is not None:
                            return root_error
                        continue

            if frame.done:
                self._finish(frame)
                continue

            op = frame.handler[frame.cursor]
            frame.cursor += 1
            try:
                child = self._step(frame, op)
            except _Halt:
                self._record(EventKind.HALT, frame.info, repr(op))
                frame.cursor = len(frame.handler)
                continue
            except ExecutionError as exc:
                if exc.origin is None:
                    exc.origin = frame.info
                root_error = self._fail(frame, exc)
                if root_error is not None:
                    return root_error
                continue
            if child is not None:
                self._stack.append(child)
        return None

    def _finish(self, frame: CallFrame) -> None:
        self._stack.pop()
        frame.resources.close()
        self._record(EventKind.EXIT, frame.info)
        self._returned = None

    def _fail(self, frame: CallFrame, error: ExecutionError) -> Optional[ExecutionError]:
        """
        Roll back and pop a failed frame.

        Returns:
            The error if the failed frame was the root, else None
        """
        self._stack.pop()
        self.ledger.revert_to(frame.checkpoint)
        frame.resources.close()
        self._record(EventKind.REVERT, frame.info, f"{type(error).__name__}: {error}")
        if not self._stack:
            return error
        self._returned = error
        return None

    # ========================================================================
    # OPERATIONS
    # ========================================================================

    def _step(self, frame: CallFrame, op: Operation) -> Optional[CallFrame]:
        """Execute one operation; return a nested frame to push, if any."""
        if isinstance(op, CheckBalance):
            account = self._account(frame, op.account)
            minimum = self._amount(frame, op.minimum)
            balance = self._balance(frame, account, op.book)
            if balance < minimum:
                where = f"{frame.info.callee}[{account}]" if op.book else account
                raise HandlerAssertionFailed(f"balance of {where} is {balance}, needs {minimum}")
            return None

        if isinstance(op, ReturnUnless):
            account = self._account(frame, op.account)
            if self._balance(frame, account, op.book) < self._amount(frame, op.minimum):
                raise _Halt()
            return None

        if isinstance(op, AdjustBalance):
            account = self._account(frame, op.account)
            self.ledger.adjust_book(frame.info.callee, account, self._amount(frame, op.delta))
            return None

        if isinstance(op, ExternalCall):
            return self._external_call(frame, op)

        if isinstance(op, GuardEnter):
            name = self._guard_name(frame, op.name)
            scope = ExitStack()
            scope.enter_context(self.guards.hold(frame.info.callee, name))
            scope.callback(self._record, EventKind.GUARD_UNLOCK, frame.info, name)
            frame.guards[name] = scope
            frame.resources.callback(scope.close)
            self._record(EventKind.GUARD_LOCK, frame.info, name)
            return None

        if isinstance(op, GuardExit):
            name = self._guard_name(frame, op.name)
            scope = frame.guards.pop(name, None)
            if scope is not None:
                scope.close()
            elif self.guards.release(frame.info.callee, name):
                self._record(EventKind.GUARD_UNLOCK, frame.info, name)
            return None

        raise TypeError(f"Unknown operation: {op!r}")

    def _external_call(self, frame: CallFrame, op: ExternalCall) -> Optional[CallFrame]:
        """
        Start a nested call.

        A call that fails before its frame exists (budget, depth, funds,
        unknown entry point) is reported to the caller exactly like a nested
        frame that failed, so the op's failure policy applies to both.
        """
        target = self._account(frame, op.target)
        value = self._amount(frame, op.value)
        if value < 0:
            raise HandlerAssertionFailed(f"call value cannot be negative: {value}")
        args = {name: self._resolve_arg(frame, arg) for name, arg in op.arg_map().items()}
        if op.gas is LOW_BUDGET:
            forwarded = self.config.low_budget_amount
        elif op.gas is None:
            forwarded = frame.info.gas
        else:
            forwarded = min(op.gas, frame.info.gas)

        frame.awaiting = op
        try:
            if frame.info.gas < self.config.min_call_budget:
                raise OutOfBudget(
                    f"{frame.info.callee} holds {frame.info.gas} gas, "
                    f"external call needs {self.config.min_call_budget}"
                )
            return self._begin_call(
                frame.info.callee, target, op.entry_point,
                value, forwarded, args, depth=frame.info.depth + 1,
            )
        except ExecutionError as exc:
            if exc.origin is None:
                exc.origin = frame.info
            self._returned = exc
            return None

    def _begin_call(
        self,
        caller: AccountId,
        callee: AccountId,
        entry_point: Optional[str],
        value: int,
        gas: int,
        args: Dict[str, Union[int, AccountId]],
        depth: int,
    ) -> CallFrame:
        """
        Validate a call, move its value and build its frame.

        Raises:
            StackOverflow, InsufficientFunds, HandlerAssertionFailed: The call fails
            AccountNotFound: The callee does not exist
        """
        account = self.accounts.get(callee)
        if account is None:
            raise AccountNotFound(f"Account {callee} not registered")
        info = FrameInfo(depth, caller, callee, entry_point, value, gas)
        checkpoint = self.ledger.checkpoint()
        try:
            if depth > self.config.max_stack_depth:
                raise StackOverflow(f"call depth {depth} exceeds maximum {self.config.max_stack_depth}")
            if not account.accepts(entry_point):
                raise HandlerAssertionFailed(f"{callee} has no entry point '{entry_point}' and no fallback")
            if value:
                self.ledger.debit(caller, value)
                self.ledger.credit(callee, value)
        except ExecutionError as exc:
            self.ledger.revert_to(checkpoint)
            if exc.origin is None:
                exc.origin = info
            self._record(EventKind.REVERT, info, f"{type(exc).__name__}: {exc}")
            raise
        self._record(EventKind.ENTER, info)
        named = account.is_programmable and entry_point in account.entry_points
        return CallFrame(
            info=info, handler=account.resolve(entry_point) or (), args=args, checkpoint=checkpoint,
            handler_name=entry_point if named else "<fallback>",
        )

    # ========================================================================
    # OPERAND RESOLUTION
    # ========================================================================

    def _account(self, frame: CallFrame, ref) -> AccountId:
        if isinstance(ref, AccountRef):
            if ref == CALLER:
                return frame.info.caller
            if ref == SELF:
                return frame.info.callee
            raise ValueError(f"Unknown account reference: {ref!r}")
        if isinstance(ref, Operand):
            account = self._argument(frame, ref)
            if not isinstance(account, str):
                raise HandlerAssertionFailed(f"call argument '{ref.name}' is not an account id")
            if account not in self.accounts:
                raise HandlerAssertionFailed(f"call argument '{ref.name}' names unknown account {account}")
            return account
        return ref

    def _amount(self, frame: CallFrame, amount) -> int:
        if not isinstance(amount, Operand):
            return amount
        if amount.source == "value":
            return amount.sign * frame.info.value
        resolved = self._argument(frame, amount)
        if isinstance(resolved, bool) or not isinstance(resolved, int):
            raise HandlerAssertionFailed(f"call argument '{amount.name}' is not an amount")
        if resolved < 0:
            raise HandlerAssertionFailed(f"call argument '{amount.name}' cannot be negative: {resolved}")
        return amount.sign * resolved

    def _resolve_arg(self, frame: CallFrame, arg) -> Union[int, AccountId]:
        if isinstance(arg, (AccountRef, str)):
            return self._account(frame, arg)
        if isinstance(arg, Operand) and arg.source == "arg":
            return self._argument(frame, arg) if arg.sign > 0 else self._amount(frame, arg)
        return self._amount(frame, arg)

    @staticmethod
    def _argument(frame: CallFrame, operand: Operand) -> Union[int, AccountId]:
        if operand.source != "arg":
            raise HandlerAssertionFailed("the call value is not an account")
        if operand.name not in frame.args:
            raise HandlerAssertionFailed(f"missing call argument '{operand.name}'")
        return frame.args[operand.name]

    def _balance(self, frame: CallFrame, account: AccountId, book: bool) -> int:
        if book:
            return self.ledger.get_book_entry(frame.info.callee, account)
        return self.ledger.get_balance(account)

    @staticmethod
    def _guard_name(frame: CallFrame, name: Optional[str]) -> str:
        return name or frame.handler_name

    # ========================================================================
    # TRACE
    # ========================================================================

    def _record(self, kind: EventKind, info: FrameInfo, detail: str = "") -> None:
        event = FrameEvent(kind, info, detail)
        self.trace.append(event)
        if self.verbose:
            print(repr(event))
