from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from txnsim.simulation.profiles import ActionType
from txnsim.simulation.transactions import Transaction

if TYPE_CHECKING:
    from collections.abc import Callable

    import numpy as np

    from txnsim.simulation.accounts import Account, AccountRegistry

logger = structlog.get_logger(__name__)


class TransactionEngine:
    """Executes client actions against the account ledgers.

    Every call returns the records it produced; records are never changed
    afterwards. Transfers above ``transfer_limit`` are split into chunks and
    stop at the first chunk that fails.
    """

    def __init__(self, registry: AccountRegistry, transfer_limit: float) -> None:
        self.registry = registry
        self.transfer_limit = transfer_limit
        self._handlers: dict[
            ActionType, Callable[[Account, int, float, np.random.Generator], Transaction]
        ] = {
            ActionType.CASH_IN: self._cash_in,
            ActionType.CASH_OUT: self._cash_out,
            ActionType.DEBIT: self._debit,
            ActionType.PAYMENT: self._payment,
            ActionType.DEPOSIT: self._deposit,
        }

    def execute(
        self,
        client: Account,
        step: int,
        action: ActionType,
        amount: float,
        rng: np.random.Generator,
    ) -> list[Transaction]:
        if action == ActionType.TRANSFER:
            return self._transfer(client, step, amount, rng)

        handler = self._handlers.get(action)
        if handler is None:
            msg = f"Action not supported for clients: {action}"
            raise ValueError(msg)
        return [handler(client, step, amount, rng)]

    def _transfer(
        self, client: Account, step: int, amount: float, rng: np.random.Generator
    ) -> list[Transaction]:
        dest = self.registry.pick_random_client(client.account_id, rng)
        transactions: list[Transaction] = []
        remaining = amount
        failed = False

        while remaining > self.transfer_limit and not failed:
            t = self.transfer_chunk(client, dest, step, self.transfer_limit)
            transactions.append(t)
            failed = not t.successful
            remaining -= self.transfer_limit
        if remaining > 0 and not failed:
            transactions.append(self.transfer_chunk(client, dest, step, remaining))

        if failed:
            logger.debug(
                "transfer_halted",
                origin=client.account_id,
                step=step,
                requested=amount,
                chunks=len(transactions),
            )
        return transactions

    def transfer_chunk(self, client: Account, dest: Account, step: int, amount: float) -> Transaction:
        origin_before = client.balance
        dest_before = dest.balance
        dest.remember_client(client)

        if client.fraud_check.is_blocked(client.balance, amount, self.transfer_limit):
            return self._record(
                step,
                ActionType.TRANSFER,
                amount,
                client,
                origin_before,
                dest,
                dest_before,
                fraud=client.is_fraud,
                flagged_fraud=True,
                successful=False,
            )

        unauthorized_overdraft = client.withdraw(amount)
        successful = not unauthorized_overdraft
        if successful:
            dest.deposit(amount)

        return self._record(
            step,
            ActionType.TRANSFER,
            amount,
            client,
            origin_before,
            dest,
            dest_before,
            fraud=client.is_fraud,
            unauthorized_overdraft=unauthorized_overdraft,
            successful=successful,
        )

    def _cash_in(
        self, client: Account, step: int, amount: float, rng: np.random.Generator
    ) -> Transaction:
        merchant = self.registry.pick_random_merchant(rng)
        origin_before = client.balance
        dest_before = merchant.balance

        client.deposit(amount)

        merchant.remember_client(client)
        return self._record(step, ActionType.CASH_IN, amount, client, origin_before, merchant, dest_before)

    def _cash_out(
        self, client: Account, step: int, amount: float, rng: np.random.Generator
    ) -> Transaction:
        merchant = self.registry.pick_random_merchant(rng)
        origin_before = client.balance
        dest_before = merchant.balance

        unauthorized_overdraft = client.withdraw(amount)

        merchant.remember_client(client)
        return self._record(
            step,
            ActionType.CASH_OUT,
            amount,
            client,
            origin_before,
            merchant,
            dest_before,
            fraud=client.is_fraud,
            unauthorized_overdraft=unauthorized_overdraft,
        )

    def _debit(
        self, client: Account, step: int, amount: float, rng: np.random.Generator
    ) -> Transaction:
        bank = self._bank_of(client)
        origin_before = client.balance
        dest_before = bank.balance

        unauthorized_overdraft = client.withdraw(amount)

        bank.remember_client(client)
        return self._record(
            step,
            ActionType.DEBIT,
            amount,
            client,
            origin_before,
            bank,
            dest_before,
            unauthorized_overdraft=unauthorized_overdraft,
        )

    def _payment(
        self, client: Account, step: int, amount: float, rng: np.random.Generator
    ) -> Transaction:
        merchant = self.registry.pick_random_merchant(rng)
        origin_before = client.balance
        dest_before = merchant.balance

        unauthorized_overdraft = client.withdraw(amount)
        if not unauthorized_overdraft:
            merchant.deposit(amount)

        merchant.remember_client(client)
        return self._record(
            step,
            ActionType.PAYMENT,
            amount,
            client,
            origin_before,
            merchant,
            dest_before,
            unauthorized_overdraft=unauthorized_overdraft,
        )

    def _deposit(
        self, client: Account, step: int, amount: float, rng: np.random.Generator
    ) -> Transaction:
        bank = self._bank_of(client)
        origin_before = client.balance
        dest_before = bank.balance

        client.deposit(amount)

        bank.remember_client(client)
        return self._record(step, ActionType.DEPOSIT, amount, client, origin_before, bank, dest_before)

    def _bank_of(self, client: Account) -> Account:
        if client.bank_id is None:
            msg = f"Client {client.account_id} has no bank"
            raise RuntimeError(msg)
        return self.registry.get(client.bank_id)

    @staticmethod
    def _record(
        step: int,
        action: ActionType,
        amount: float,
        origin: Account,
        origin_before: float,
        dest: Account,
        dest_before: float,
        **flags: bool,
    ) -> Transaction:
        return Transaction(
            step=step,
            action=action,
            amount=amount,
            origin_id=origin.account_id,
            origin_balance_before=origin_before,
            origin_balance_after=origin.balance,
            dest_id=dest.account_id,
            dest_balance_before=dest_before,
            dest_balance_after=dest.balance,
            **flags,
        )
