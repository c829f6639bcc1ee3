"""
ledger.py - Journaled Balance Ledger

The Ledger holds every balance in the simulation. During a transaction it is
mutated only by the call stack engine.

Key responsibilities:
    - Maintains value balances (non-negative integers, smallest unit)
    - Maintains contract storage books (signed integers, one book per contract)
    - Journals every mutation so nested calls can be rolled back to a checkpoint
    - Verifies conservation of total supply
"""

from __future__ import annotations
from typing import Dict, List, Set, Optional, Tuple, Any

from .core import (
    AccountId, BalanceMap,
    SimulationError, InsufficientFunds, AccountNotFound,
)


# Journal entry: (table, owner, key, previous value).
# table is "balance" (owner is the account, key is None) or "book"
# (owner is the contract, key is the book entry).
JournalEntry = Tuple[str, AccountId, Optional[AccountId], Optional[int]]


class Ledger:
    """
    Balance ledger with an undo journal.

    Value balances never go negative: debit() rejects overdrafts with
    InsufficientFunds. Book entries are plain signed integers owned by a
    contract; the ledger does not interpret them.

    Rollback:
        checkpoint() returns a journal position. revert_to(cp) undoes every
        mutation recorded after cp, most recent first. discard_journal()
        forgets the journal once a transaction is final.

    Thread Safety:
        Not thread-safe. Transactions are processed strictly one at a time.

    Example:
        ledger = Ledger("main")
        ledger.register_account("alice")
        ledger.register_account("bob")
        ledger.mint("alice", 10)

        cp = ledger.checkpoint()
        ledger.debit("alice", 4)
        ledger.credit("bob", 4)
        ledger.revert_to(cp)          # alice: 10, bob: 0
    """

    def __init__(self, name: str, verbose: bool = True):
        """
        Create a ledger.

        Args:
            name: Ledger identifier
            verbose: Enable debug output (default: True)
        """
        self.name = name
        self.verbose = verbose
        self.balances: Dict[AccountId, int] = {}
        self.books: Dict[AccountId, Dict[AccountId, int]] = {}
        self.registered_accounts: Set[AccountId] = set()
        self._journal: List[JournalEntry] = []
        # Total value created by mint(); conservation is checked against it
        self.minted: int = 0

    # ========================================================================
    # READ-ONLY ACCESS
    # ========================================================================

    def get_balance(self, account: AccountId) -> int:
        """
        Get the value balance of an account.

        Raises:
            AccountNotFound: If the account is not registered
        """
        if account not in self.registered_accounts:
            raise AccountNotFound(f"Account {account} not registered")
        return self.balances.get(account, 0)

    def get_book_entry(self, contract: AccountId, key: AccountId) -> int:
        """Get one entry of a contract's storage book (0 if never written)."""
        if contract not in self.registered_accounts:
            raise AccountNotFound(f"Account {contract} not registered")
        return self.books.get(contract, {}).get(key, 0)

    def get_book(self, contract: AccountId) -> BalanceMap:
        """Get a copy of a contract's whole storage book."""
        if contract not in self.registered_accounts:
            raise AccountNotFound(f"Account {contract} not registered")
        return dict(self.books.get(contract, {}))

    def list_accounts(self) -> Set[AccountId]:
        """List all registered account IDs."""
        return self.registered_accounts.copy()

    def is_registered(self, account: AccountId) -> bool:
        return account in self.registered_accounts

    def snapshot(self) -> BalanceMap:
        """Return every value balance, keyed by account, in sorted order."""
        return {account: self.balances.get(account, 0) for account in sorted(self.registered_accounts)}

    def total_supply(self) -> int:
        """Sum of all value balances."""
        return sum(self.balances.get(account, 0) for account in sorted(self.registered_accounts))

    def verify_conservation(self, expected_supply: Optional[int] = None) -> Dict[str, Any]:
        """
        Verify that no value was created or destroyed.

        The only way to create value is mint() at setup time, so the total
        supply must always equal the amount minted (or expected_supply, if given).

        Returns:
            Dict with keys:
            - 'valid': bool - True if the supply matches
            - 'supply': int - Current total supply
            - 'expected': int - Supply that was expected
            - 'discrepancy': int - supply - expected

        Example:
            result = ledger.verify_conservation()
            assert result['valid'], f"Conservation violated: {result['discrepancy']}"
        """
        expected = self.minted if expected_supply is None else expected_supply
        supply = self.total_supply()
        return {
            'valid': supply == expected,
            'supply': supply,
            'expected': expected,
            'discrepancy': supply - expected,
        }

    # ========================================================================
    # REGISTRATION AND SETUP (Mutating)
    # ========================================================================

    def register_account(self, account: AccountId) -> AccountId:
        """
        Register a new account with a zero balance.

        Raises:
            ValueError: If the id is empty or already registered
        """
        if not account or not account.strip():
            raise ValueError("Account id cannot be empty")
        if account in self.registered_accounts:
            raise ValueError(f"Account {account} already registered")
        self.registered_accounts.add(account)
        self.balances[account] = 0
        return account

    def mint(self, account: AccountId, amount: int) -> None:
        """
        Create new value in an account. Setup only; never journaled.

        Raises:
            ValueError: If amount is negative
            SimulationError: If called while a transaction has pending journal entries
        """
        if amount < 0:
            raise ValueError(f"Cannot mint a negative amount: {amount}")
        if self._journal:
            raise SimulationError("mint() is only allowed between transactions")
        current = self.get_balance(account)
        self.balances[account] = current + amount
        self.minted += amount
        if self.verbose and amount:
            print(f"💰 Minted: {amount} → {account}")

    # ========================================================================
    # BALANCE MUTATION (Mutating, journaled)
    # ========================================================================

    def credit(self, account: AccountId, amount: int) -> None:
        """Increase an account's balance. Never fails for a registered account."""
        if amount < 0:
            raise ValueError(f"Credit amount cannot be negative: {amount}")
        current = self.get_balance(account)
        self._journal.append(("balance", account, None, current))
        self.balances[account] = current + amount

    def debit(self, account: AccountId, amount: int) -> None:
        """
        Decrease an account's balance.

        Raises:
            InsufficientFunds: If the balance is smaller than amount
        """
        if amount < 0:
            raise ValueError(f"Debit amount cannot be negative: {amount}")
        current = self.get_balance(account)
        if current < amount:
            raise InsufficientFunds(f"{account} has {current}, needs {amount}")
        self._journal.append(("balance", account, None, current))
        self.balances[account] = current - amount

    def adjust_book(self, contract: AccountId, key: AccountId, delta: int) -> int:
        """
        Add delta (possibly negative) to one entry of a contract's book.

        Returns:
            The new value of the entry
        """
        current = self.get_book_entry(contract, key)
        book = self.books.setdefault(contract, {})
        self._journal.append(("book", contract, key, book.get(key)))
        book[key] = current + delta
        return book[key]

    # ========================================================================
    # JOURNAL
    # ========================================================================

    def checkpoint(self) -> int:
        """Return the current journal position."""
        return len(self._journal)

    def revert_to(self, checkpoint: int) -> None:
        """
        Undo every mutation recorded after checkpoint, most recent first.

        Raises:
            ValueError: If checkpoint is beyond the end of the journal
        """
        if checkpoint > len(self._journal):
            raise ValueError(f"Checkpoint {checkpoint} is beyond journal length {len(self._journal)}")
        while len(self._journal) > checkpoint:
            table, owner, key, previous = self._journal.pop()
            if table == "balance":
                self.balances[owner] = previous
            elif previous is None:
                self.books[owner].pop(key, None)
            else:
                self.books[owner][key] = previous

    def discard_journal(self) -> None:
        """Forget all journal entries, making current state final."""
        self._journal.clear()

    @property
    def journal_length(self) -> int:
        return len(self._journal)

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> Ledger:
        """
        Create an independent copy of this ledger.

        The journal must be empty: cloning mid-transaction is not supported.
        """
        if self._journal:
            raise SimulationError("Cannot clone a ledger with pending journal entries")
        cloned = Ledger.__new__(Ledger)
        cloned.name = self.name
        cloned.verbose = self.verbose
        cloned.balances = dict(self.balances)
        cloned.books = {contract: dict(book) for contract, book in self.books.items()}
        cloned.registered_accounts = self.registered_accounts.copy()
        cloned._journal = []
        cloned.minted = self.minted
        return cloned
