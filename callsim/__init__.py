"""
callsim - Contract-Call Execution Simulator

A deterministic simulator of nested contract calls for studying reentrancy
and its mitigations: effects-before-interaction ordering, reentrancy guards,
the low-budget transfer primitive and the call-depth bound.

Usage:
    from callsim import Simulator, vulnerable_bank, reentrant_attacker

    sim = Simulator("main")
    bank = sim.add_account(vulnerable_bank("bank"), initial_balance=10)
    thief = sim.add_account(reentrant_attacker("thief", bank), initial_balance=1)

    # Deposit, then withdraw; the thief's fallback reenters withdraw
    sim.call(thief, bank, "deposit", value=1)
    result = sim.call(thief, bank, "withdraw", args={"amount": 1})

    result.final_balances["thief"]      # 11
    sim.book_of(bank, thief)            # -10
"""

# Core types
from .core import (
    AccountId,
    BalanceMap,
    AccountKind,
    TxStatus,
    FailurePolicy,
    EventKind,
    SimulatorConfig,
    FrameInfo,
    FrameEvent,
    TransactionResult,
    SimulationError,
    ExecutionError,
    InsufficientFunds,
    ReentrancyDetected,
    StackOverflow,
    OutOfBudget,
    HandlerAssertionFailed,
    AccountNotFound,
    TransactionFinalized,
    LOW_BUDGET,
    DEFAULT_MAX_STACK_DEPTH,
    DEFAULT_LOW_BUDGET_AMOUNT,
    DEFAULT_MIN_CALL_BUDGET,
    DEFAULT_GAS_BUDGET,
)

# Ledger
from .ledger import Ledger

# Handler operations
from .handlers import (
    AccountRef,
    Operand,
    CALLER,
    SELF,
    VALUE,
    ARG,
    CheckBalance,
    ReturnUnless,
    AdjustBalance,
    ExternalCall,
    GuardEnter,
    GuardExit,
    Operation,
    Handler,
    handler,
    guarded,
)

# Accounts
from .accounts import Account, passive, programmable

# Guards
from .guard import GuardRegistry

# Engine
from .engine import CallStackEngine, CallFrame

# Simulator
from .simulator import Simulator

# Contract library
from .contracts import (
    BANKS,
    vulnerable_bank,
    effects_first_bank,
    guarded_bank,
    low_budget_bank,
    reentrant_attacker,
    cross_function_attacker,
    recursive_caller,
    registered_receiver,
)


__all__ = [
    # Core
    'AccountId', 'BalanceMap',
    'AccountKind', 'TxStatus', 'FailurePolicy', 'EventKind',
    'SimulatorConfig', 'FrameInfo', 'FrameEvent', 'TransactionResult',
    'SimulationError', 'ExecutionError',
    'InsufficientFunds', 'ReentrancyDetected', 'StackOverflow',
    'OutOfBudget', 'HandlerAssertionFailed',
    'AccountNotFound', 'TransactionFinalized',
    'LOW_BUDGET',
    'DEFAULT_MAX_STACK_DEPTH', 'DEFAULT_LOW_BUDGET_AMOUNT',
    'DEFAULT_MIN_CALL_BUDGET', 'DEFAULT_GAS_BUDGET',
    # Ledger
    'Ledger',
    # Handlers
    'AccountRef', 'Operand', 'CALLER', 'SELF', 'VALUE', 'ARG',
    'CheckBalance', 'ReturnUnless', 'AdjustBalance', 'ExternalCall',
    'GuardEnter', 'GuardExit',
    'Operation', 'Handler', 'handler', 'guarded',
    # Accounts
    'Account', 'passive', 'programmable',
    # Guards
    'GuardRegistry',
    # Engine
    'CallStackEngine', 'CallFrame',
    # Simulator
    'Simulator',
    # Contracts
    'BANKS',
    'vulnerable_bank', 'effects_first_bank', 'guarded_bank', 'low_budget_bank',
    'reentrant_attacker', 'cross_function_attacker',
    'recursive_caller', 'registered_receiver',
]

__version__ = '1.0.0'
