"""
simulator.py - Scenario Runner Interface

The Simulator is the library boundary driven by tests and the demo: it
creates accounts, issues top-level calls one at a time, and reports each
transaction's status, final balances and trace.

Transactions are serialised by construction: call() runs one engine to
completion before returning, so two transactions never interleave.
"""

from __future__ import annotations
from typing import Dict, List, Mapping, Optional, Set, Union, Any

from .accounts import Account
from .core import (
    AccountId, AccountKind, BalanceMap, TxStatus,
    SimulatorConfig, TransactionResult,
    AccountNotFound,
)
from .engine import CallStackEngine
from .guard import GuardRegistry
from .handlers import Handler
from .ledger import Ledger


class Simulator:
    """
    Contract-call simulator: accounts, ledger, guards and a transaction log.

    Example:
        sim = Simulator(verbose=False)
        bank = sim.add_account(vulnerable_bank("bank"), initial_balance=10)
        thief = sim.add_account(reentrant_attacker("thief", bank), initial_balance=1)

        sim.call(thief, bank, "deposit", value=1)
        result = sim.call(thief, bank, "withdraw", args={"amount": 1})
        result.final_balances[thief]     # 11
    """

    def __init__(
        self,
        name: str = "sim",
        config: Optional[SimulatorConfig] = None,
        verbose: bool = True,
    ):
        """
        Create a simulator.

        Args:
            name: Simulator (and ledger) identifier
            config: Depth and budget settings (default: SimulatorConfig())
            verbose: Print account setup, every frame event and each result (default: True)
        """
        self.name = name
        self.config = config or SimulatorConfig()
        self.verbose = verbose
        self.ledger = Ledger(name, verbose=verbose)
        self.accounts: Dict[AccountId, Account] = {}
        self.guards = GuardRegistry()
        self.transaction_log: List[TransactionResult] = []
        self._next_sequence: int = 0
        self._next_account: int = 0

    # ========================================================================
    # ACCOUNTS
    # ========================================================================

    def create_account(
        self,
        kind: Union[AccountKind, str] = AccountKind.PASSIVE,
        initial_balance: int = 0,
        handlers: Optional[Mapping[str, Handler]] = None,
        fallback: Optional[Handler] = None,
        account_id: Optional[AccountId] = None,
    ) -> AccountId:
        """
        Create an account and mint its initial balance.

        Args:
            kind: PASSIVE or PROGRAMMABLE (enum member or its value)
            initial_balance: Value minted into the account
            handlers: Entry-point name -> handler (programmable only)
            fallback: Handler run on bare transfers (programmable only)
            account_id: Explicit id; generated as "account_<n>" when omitted

        Returns:
            The new account's id
        """
        if isinstance(kind, str):
            kind = AccountKind(kind)
        if account_id is None:
            account_id = self._generate_account_id()
        return self.add_account(Account(account_id, kind, dict(handlers or {}), fallback), initial_balance)

    def add_account(self, account: Account, initial_balance: int = 0) -> AccountId:
        """
        Register a prebuilt account definition and mint its initial balance.

        Raises:
            ValueError: If the id is taken or the balance is negative
        """
        if initial_balance < 0:
            raise ValueError(f"Initial balance cannot be negative: {initial_balance}")
        self.ledger.register_account(account.account_id)
        self.accounts[account.account_id] = account
        if self.verbose:
            print(f"📝 Registered: {account!r}")
        self.ledger.mint(account.account_id, initial_balance)
        return account.account_id

    def _generate_account_id(self) -> AccountId:
        while True:
            candidate = f"account_{self._next_account}"
            self._next_account += 1
            if candidate not in self.accounts:
                return candidate

    def get_account(self, account_id: AccountId) -> Account:
        if account_id not in self.accounts:
            raise AccountNotFound(f"Account {account_id} not registered")
        return self.accounts[account_id]

    def list_accounts(self) -> Set[AccountId]:
        return set(self.accounts)

    # ========================================================================
    # TRANSACTIONS
    # ========================================================================

    def call(
        self,
        caller: AccountId,
        callee: AccountId,
        entry_point: Optional[str] = None,
        value: int = 0,
        gas_budget: Optional[int] = None,
        args: Optional[Mapping[str, Union[int, AccountId]]] = None,
    ) -> TransactionResult:
        """
        Issue a top-level call and run it to completion.

        Args:
            caller: Account issuing the call (pays `value`)
            callee: Account being called
            entry_point: Entry point name, or None for a bare value transfer
            value: Value moved from caller to callee before the handler runs
            gas_budget: Budget of the root frame (default: config.default_gas_budget)
            args: Named arguments for the handler (amounts or account ids)

        Returns:
            TransactionResult; a reverted call leaves every balance untouched

        Raises:
            AccountNotFound: If caller or callee does not exist
            ValueError: If value or gas_budget is negative
        """
        self.get_account(caller)
        self.get_account(callee)
        if value < 0:
            raise ValueError(f"Call value cannot be negative: {value}")
        if gas_budget is not None and gas_budget < 0:
            raise ValueError(f"Gas budget cannot be negative: {gas_budget}")

        if self.verbose:
            target = f"{callee}.{entry_point}" if entry_point else f"{callee}.<fallback>"
            print(f"\n▶ {caller} → {target} value={value} args={dict(args or {})}")

        engine = CallStackEngine(self.ledger, self.accounts, self.guards, self.config, self.verbose)
        status = engine.run(caller, callee, entry_point, value, gas_budget, args)

        error = engine.error if status is TxStatus.REVERTED else None
        result = TransactionResult(
            status=status,
            final_balances=self.ledger.snapshot(),
            trace=tuple(engine.trace),
            error=error,
            failed_frame=error.origin if error is not None else None,
            sequence_number=self._next_sequence,
        )
        self._next_sequence += 1
        self.transaction_log.append(result)
        if self.verbose:
            print(repr(result))
        return result

    def transfer(
        self,
        sender: AccountId,
        recipient: AccountId,
        amount: int,
        gas_budget: Optional[int] = None,
    ) -> TransactionResult:
        """Move value with a bare transfer; a programmable recipient runs its fallback."""
        return self.call(sender, recipient, None, amount, gas_budget)

    # ========================================================================
    # INSPECTION
    # ========================================================================

    def balance_of(self, account: AccountId) -> int:
        return self.ledger.get_balance(account)

    def book_of(self, contract: AccountId, key: Optional[AccountId] = None) -> Union[int, BalanceMap]:
        """Read a contract's storage book, or one entry of it."""
        if key is None:
            return self.ledger.get_book(contract)
        return self.ledger.get_book_entry(contract, key)

    def is_locked(self, contract: AccountId, name: str) -> bool:
        """Whether a contract's guard is locked (always False between transactions)."""
        return self.guards.is_locked(contract, name)

    def balances(self) -> BalanceMap:
        return self.ledger.snapshot()

    def total_supply(self) -> int:
        return self.ledger.total_supply()

    def verify_conservation(self, expected_supply: Optional[int] = None) -> Dict[str, Any]:
        return self.ledger.verify_conservation(expected_supply)

    def clone(self) -> Simulator:
        """
        Copy the simulator between transactions.

        Account definitions are immutable and shared; ledger state and the
        transaction log are copied.
        """
        cloned = Simulator.__new__(Simulator)
        cloned.name = self.name
        cloned.config = self.config
        cloned.verbose = self.verbose
        cloned.ledger = self.ledger.clone()
        cloned.accounts = dict(self.accounts)
        cloned.guards = GuardRegistry()
        cloned.transaction_log = list(self.transaction_log)
        cloned._next_sequence = self._next_sequence
        cloned._next_account = self._next_account
        return cloned
