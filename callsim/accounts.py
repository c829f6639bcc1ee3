"""
accounts.py - Account Definitions

Accounts form a closed variant set: PASSIVE accounts only hold value,
PROGRAMMABLE accounts map entry-point names to handlers and may declare a
fallback handler that runs on a bare value transfer.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional

from .core import AccountId, AccountKind
from .handlers import Handler, handler


@dataclass(frozen=True, slots=True)
class Account:
    """
    Immutable account definition.

    Attributes:
        account_id: Unique identifier.
        kind: PASSIVE or PROGRAMMABLE.
        entry_points: Entry-point name -> handler (PROGRAMMABLE only).
        fallback: Handler run on a bare value transfer (PROGRAMMABLE only).
                  A programmable account without a fallback accepts bare
                  transfers and runs nothing.

    The balance is not stored here; it lives on the Ledger.
    """
    account_id: AccountId
    kind: AccountKind
    entry_points: Mapping[str, Handler] = field(default_factory=dict)
    fallback: Optional[Handler] = None

    def __post_init__(self):
        if not self.account_id or not self.account_id.strip():
            raise ValueError("Account id cannot be empty")
        if self.kind is AccountKind.PASSIVE and (self.entry_points or self.fallback is not None):
            raise ValueError(f"Passive account {self.account_id} cannot have handlers")
        entry_points = {name: handler(*ops) for name, ops in dict(self.entry_points).items()}
        for name in entry_points:
            if not name or not name.strip():
                raise ValueError(f"Account {self.account_id} has an empty entry-point name")
        object.__setattr__(self, 'entry_points', MappingProxyType(entry_points))
        if self.fallback is not None:
            object.__setattr__(self, 'fallback', handler(*self.fallback))

    @property
    def is_programmable(self) -> bool:
        return self.kind is AccountKind.PROGRAMMABLE

    def resolve(self, entry_point: Optional[str]) -> Optional[Handler]:
        """
        Find the handler for an inbound call.

        Returns:
            The entry-point handler, the fallback for a bare transfer (or an
            unknown entry point), or None when nothing should run.
        """
        if not self.is_programmable:
            return None
        if entry_point is not None and entry_point in self.entry_points:
            return self.entry_points[entry_point]
        return self.fallback

    def accepts(self, entry_point: Optional[str]) -> bool:
        """
        Whether an inbound call can be served.

        Passive accounts and bare transfers are always accepted. A named entry
        point on a programmable account needs a matching handler or a fallback.
        """
        if not self.is_programmable or entry_point is None:
            return True
        return entry_point in self.entry_points or self.fallback is not None

    def __hash__(self) -> int:
        # entry_points is a read-only proxy and cannot be hashed
        return hash((self.account_id, self.kind))

    def __repr__(self) -> str:
        if not self.is_programmable:
            return f"Account({self.account_id}, passive)"
        names = ", ".join(sorted(self.entry_points))
        fb = ", fallback" if self.fallback is not None else ""
        return f"Account({self.account_id}, programmable: [{names}]{fb})"


def passive(account_id: AccountId) -> Account:
    """Create a passive account definition."""
    return Account(account_id, AccountKind.PASSIVE)


def programmable(
    account_id: AccountId,
    entry_points: Optional[Mapping[str, Handler]] = None,
    fallback: Optional[Handler] = None,
) -> Account:
    """Create a programmable account definition."""
    return Account(account_id, AccountKind.PROGRAMMABLE, dict(entry_points or {}), fallback)
