"""
contracts.py - Ready-Made Account Definitions

Banks keep each depositor's balance in their storage book and pay out with
an external call. They differ only in ordering and protection:

    vulnerable_bank      interaction before effects (pays, then debits the book)
    effects_first_bank   effects before interaction (debits the book, then pays)
    guarded_bank         vulnerable ordering wrapped in a reentrancy guard
    low_budget_bank      vulnerable ordering, pays with the LOW_BUDGET primitive

Every bank exposes the same entry points:
    deposit()               credit the caller's book entry with the call value
    withdraw(amount)        pay `amount` to the caller
    transfer(to, amount)    move book balance from the caller to `to`

Adversaries:
    reentrant_attacker        reenters withdraw from its fallback while the bank holds funds
    cross_function_attacker   reenters transfer from its fallback to hand its book balance
                              to an accomplice before withdraw debits it
    recursive_caller          calls itself unconditionally (depth bound)
    registered_receiver       accepts value only from registered senders
"""

from __future__ import annotations
from typing import Dict, Optional

from .accounts import Account, programmable
from .core import AccountId, FailurePolicy, LOW_BUDGET
from .handlers import (
    Handler, handler, guarded,
    CALLER, SELF, VALUE, ARG,
    CheckBalance, ReturnUnless, AdjustBalance, ExternalCall,
)


AMOUNT = ARG("amount")


# ============================================================================
# BANKS
# ============================================================================

def _deposit() -> Handler:
    return handler(AdjustBalance(CALLER, VALUE))


def _transfer() -> Handler:
    return handler(
        CheckBalance(CALLER, AMOUNT, book=True),
        AdjustBalance(CALLER, -AMOUNT),
        AdjustBalance(ARG("to"), AMOUNT),
    )


def _withdraw_interaction_first(gas=None) -> Handler:
    return handler(
        CheckBalance(CALLER, AMOUNT, book=True),
        ExternalCall(CALLER, value=AMOUNT, gas=gas),
        AdjustBalance(CALLER, -AMOUNT),
    )


def _withdraw_effects_first() -> Handler:
    return handler(
        CheckBalance(CALLER, AMOUNT, book=True),
        AdjustBalance(CALLER, -AMOUNT),
        ExternalCall(CALLER, value=AMOUNT),
    )


def _bank(account_id: AccountId, withdraw: Handler, transfer: Optional[Handler] = None) -> Account:
    return programmable(account_id, {
        "deposit": _deposit(),
        "withdraw": withdraw,
        "transfer": transfer or _transfer(),
    })


def vulnerable_bank(account_id: AccountId) -> Account:
    """
    Bank that pays before updating its book.

    A reentrant withdraw sees the caller's book entry unchanged and passes
    the balance check again; the book is only debited as the calls unwind,
    ending below zero.
    """
    return _bank(account_id, _withdraw_interaction_first())


def effects_first_bank(account_id: AccountId) -> Account:
    """Bank that debits the book before paying; reentrant withdraws fail their check."""
    return _bank(account_id, _withdraw_effects_first())


def guarded_bank(account_id: AccountId, shared_guard: Optional[str] = None) -> Account:
    """
    Vulnerable-ordering bank with every entry point behind a reentrancy guard.

    Args:
        account_id: Bank id
        shared_guard: Guard name used by all entry points. When None each
                      entry point has its own guard, which stops reentering
                      withdraw but not reentering transfer from inside withdraw.
    """
    return programmable(account_id, {
        "deposit": guarded(*_deposit(), name=shared_guard),
        "withdraw": guarded(*_withdraw_interaction_first(), name=shared_guard),
        "transfer": guarded(*_transfer(), name=shared_guard),
    })


def low_budget_bank(account_id: AccountId) -> Account:
    """Vulnerable-ordering bank that pays through the restricted LOW_BUDGET primitive."""
    return _bank(account_id, _withdraw_interaction_first(gas=LOW_BUDGET))


BANKS = {
    "vulnerable": vulnerable_bank,
    "effects_first": effects_first_bank,
    "guarded": guarded_bank,
    "low_budget": low_budget_bank,
}


# ============================================================================
# ADVERSARIES
# ============================================================================

def reentrant_attacker(
    account_id: AccountId,
    bank: AccountId,
    amount: int = 1,
    policy: FailurePolicy = FailurePolicy.IGNORE,
) -> Account:
    """
    Contract that drains `bank` through reentrant withdraws.

    Entry points:
        attack()   deposit the call value into the bank, then withdraw `amount`

    Fallback (runs on every payout):
        stop unless the bank still holds `amount`, then withdraw `amount` again.
        A failed reentry is ignored by default so the legitimate payout survives.
    """
    args: Dict[str, int] = {"amount": amount}
    return programmable(
        account_id,
        {
            "attack": handler(
                ExternalCall(bank, "deposit", value=VALUE),
                ExternalCall(bank, "withdraw", args=args),
            ),
        },
        fallback=handler(
            ReturnUnless(bank, amount),
            ExternalCall(bank, "withdraw", args=args, on_failure=policy),
        ),
    )


def cross_function_attacker(
    account_id: AccountId,
    bank: AccountId,
    accomplice: AccountId,
    amount: int = 1,
) -> Account:
    """
    Contract that moves its book balance to `accomplice` while a withdraw is in flight.

    The fallback calls bank.transfer(to=accomplice, amount) once per payout,
    ignoring failure. Against a bank whose withdraw pays before debiting, the
    same deposit ends up withdrawable twice.
    """
    return programmable(
        account_id,
        {
            "attack": handler(
                ExternalCall(bank, "deposit", value=VALUE),
                ExternalCall(bank, "withdraw", args={"amount": amount}),
            ),
        },
        fallback=handler(
            ExternalCall(
                bank, "transfer",
                args={"to": accomplice, "amount": amount},
                on_failure=FailurePolicy.IGNORE,
            ),
        ),
    )


def recursive_caller(account_id: AccountId, entry_point: str = "ping") -> Account:
    """Contract whose only entry point calls itself again, with no stopping condition."""
    return programmable(account_id, {
        entry_point: handler(ExternalCall(SELF, entry_point)),
    })


def registered_receiver(account_id: AccountId) -> Account:
    """
    Contract that rejects bare transfers from senders that never called register().

    Used to exercise rollback of a value transfer whose recipient fails.
    """
    return programmable(
        account_id,
        {"register": handler(AdjustBalance(CALLER, 1))},
        fallback=handler(CheckBalance(CALLER, 1, book=True)),
    )
