"""
guard.py - Reentrancy Guard Primitive

Guards are per-contract locks keyed by (contract, name). A contract's
handlers acquire and release them through GuardEnter / GuardExit; nothing
else in the simulation can read or change them.

Acquisition is scoped: GuardRegistry.hold() is a context manager, and the
engine enters it on the running frame's ExitStack. However the frame ends
(normal return, failure, or unwinding after a deeper failure) the stack is
closed and the lock released.
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import Dict, Iterator, Set, Tuple

from .core import AccountId, ReentrancyDetected


GuardKey = Tuple[AccountId, str]


class GuardRegistry:
    """Lock state for every guard in one simulator."""

    def __init__(self):
        self._locked: Set[GuardKey] = set()
        # Guards touched during the current transaction, re-armed at its end
        self._touched: Set[GuardKey] = set()

    def is_locked(self, contract: AccountId, name: str) -> bool:
        return (contract, name) in self._locked

    def acquire(self, contract: AccountId, name: str) -> None:
        """
        Lock a guard.

        Raises:
            ReentrancyDetected: If the guard is already locked
        """
        key = (contract, name)
        self._touched.add(key)
        if key in self._locked:
            raise ReentrancyDetected(f"Reentrant call into {contract} guarded by '{name}'")
        self._locked.add(key)

    def release(self, contract: AccountId, name: str) -> bool:
        """
        Unlock a guard unconditionally.

        Returns:
            True if the guard was locked
        """
        key = (contract, name)
        self._touched.add(key)
        if key in self._locked:
            self._locked.discard(key)
            return True
        return False

    @contextmanager
    def hold(self, contract: AccountId, name: str) -> Iterator[GuardKey]:
        """Hold a guard for the duration of the with-block."""
        self.acquire(contract, name)
        try:
            yield (contract, name)
        finally:
            self.release(contract, name)

    def rearm(self) -> Dict[GuardKey, bool]:
        """
        Unlock every guard touched since the last rearm.

        Called at the end of each top-level transaction.

        Returns:
            Mapping of touched guard -> whether it was still locked
        """
        report = {key: key in self._locked for key in sorted(self._touched)}
        self._locked -= self._touched
        self._touched.clear()
        return report

    def snapshot(self) -> Set[GuardKey]:
        return set(self._locked)
