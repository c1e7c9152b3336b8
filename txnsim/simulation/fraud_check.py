from __future__ import annotations

from dataclasses import dataclass

MIN_TRANSFERS_BEFORE_CHECK = 3
BALANCE_DROP_FACTOR = 2.5


@dataclass
class TransferFraudCheck:
    """Crude in-system fraud rule applied to each transfer an account makes.

    The first few transfers only record the balance high-water mark. After
    that, a transfer is blocked when it would leave the balance more than
    ``BALANCE_DROP_FACTOR`` transfer limits below that mark. The mark is not
    updated once the warm-up is over.
    """

    count_transfer_transactions: int = 0
    balance_max: float = 0.0

    @property
    def warmed_up(self) -> bool:
        return self.count_transfer_transactions >= MIN_TRANSFERS_BEFORE_CHECK

    def is_blocked(self, balance: float, amount: float, transfer_limit: float) -> bool:
        if not self.warmed_up:
            self.count_transfer_transactions += 1
            self.balance_max = max(self.balance_max, balance)
            return False
        return self.balance_max - balance - amount > transfer_limit * BALANCE_DROP_FACTOR
