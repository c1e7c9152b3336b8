from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

import structlog

from txnsim.simulation.fraud_check import TransferFraudCheck
from txnsim.simulation.profiles import PROFILE_TEMPLATES, TEMPLATE_WEIGHTS, ClientProfile

if TYPE_CHECKING:
    import numpy as np

    from txnsim.config.settings import OverdraftConfig, SimulationConfig
    from txnsim.simulation.profiles import ActionType, ClientActionProfile, StepsProfiles

logger = structlog.get_logger(__name__)

ID_LOW = 1_000_000_000
ID_HIGH = 10_000_000_000


class AccountKind(str, Enum):
    CLIENT = "C"
    MERCHANT = "M"
    BANK = "B"


@dataclass(eq=False)
class Account:
    """A balance-holding participant; clients, merchants and banks share this ledger."""

    account_id: str
    kind: AccountKind
    balance: float = 0.0
    overdraft_limit: float = 0.0
    is_fraud: bool = False
    profile: ClientProfile | None = None
    bank_id: str | None = None
    weight: float = 0.0
    expected_avg_transaction: float = 0.0
    fraud_check: TransferFraudCheck = field(default_factory=TransferFraudCheck)
    counterparties: set[str] = field(default_factory=set)

    @property
    def balance_max(self) -> float:
        return self.fraud_check.balance_max

    @property
    def count_transfer_transactions(self) -> int:
        return self.fraud_check.count_transfer_transactions

    def deposit(self, amount: float) -> None:
        self.balance += amount

    def withdraw(self, amount: float) -> bool:
        """Apply the withdrawal and report whether it breached the overdraft limit."""
        unauthorized_overdraft = self.balance - amount < -self.overdraft_limit
        self.balance -= amount
        return unauthorized_overdraft

    def remember_client(self, client: Account) -> None:
        self.counterparties.add(client.account_id)


class AccountRegistry:
    """Owns every account for a run and picks random counterparties."""

    def __init__(self) -> None:
        self.clients: list[Account] = []
        self.merchants: list[Account] = []
        self.banks: list[Account] = []
        self._by_id: dict[str, Account] = {}
        self._client_index: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, account_id: object) -> bool:
        return account_id in self._by_id

    def add(self, account: Account) -> Account:
        if account.account_id in self._by_id:
            msg = f"Duplicate account id {account.account_id}"
            raise ValueError(msg)
        self._by_id[account.account_id] = account
        if account.kind is AccountKind.CLIENT:
            self._client_index[account.account_id] = len(self.clients)
            self.clients.append(account)
        elif account.kind is AccountKind.MERCHANT:
            self.merchants.append(account)
        else:
            self.banks.append(account)
        return account

    def get(self, account_id: str) -> Account:
        try:
            return self._by_id[account_id]
        except KeyError:
            msg = f"Unknown account {account_id}"
            raise KeyError(msg) from None

    def pick_random_merchant(self, rng: np.random.Generator) -> Account:
        if not self.merchants:
            msg = "No merchants registered"
            raise RuntimeError(msg)
        return self.merchants[int(rng.integers(0, len(self.merchants)))]

    def pick_random_bank(self, rng: np.random.Generator) -> Account:
        if not self.banks:
            msg = "No banks registered"
            raise RuntimeError(msg)
        return self.banks[int(rng.integers(0, len(self.banks)))]

    def pick_random_client(self, exclude_id: str, rng: np.random.Generator) -> Account:
        excluded = self._client_index.get(exclude_id)
        n_candidates = len(self.clients) - (excluded is not None)
        if n_candidates <= 0:
            msg = "No other client available as transfer destination"
            raise RuntimeError(msg)
        idx = int(rng.integers(0, n_candidates))
        if excluded is not None and idx >= excluded:
            idx += 1
        return self.clients[idx]


class AccountGenerator:
    def __init__(
        self,
        config: SimulationConfig,
        overdraft: OverdraftConfig,
        templates: dict[str, dict[ActionType, ClientActionProfile]] | None = None,
        template_weights: dict[str, float] | None = None,
    ) -> None:
        self.config = config
        self.overdraft = overdraft
        self.templates = templates or PROFILE_TEMPLATES
        weights = template_weights or {name: TEMPLATE_WEIGHTS.get(name, 1.0) for name in self.templates}
        names = [name for name in self.templates if weights.get(name, 0) > 0]
        total = sum(weights[name] for name in names)
        self._template_names = names
        self._template_probs = [weights[name] / total for name in names]

    def generate(self, steps_profiles: StepsProfiles, rng: np.random.Generator) -> AccountRegistry:
        registry = AccountRegistry()
        taken: set[str] = set()

        for _ in range(self.config.nb_banks):
            registry.add(Account(self._unique_id(AccountKind.BANK, rng, taken), AccountKind.BANK))
        for _ in range(self.config.nb_merchants):
            registry.add(
                Account(self._unique_id(AccountKind.MERCHANT, rng, taken), AccountKind.MERCHANT)
            )

        total_target = steps_profiles.total_target_count
        for _ in range(self.config.nb_clients):
            registry.add(self._make_client(registry, total_target, rng, taken))

        fraud_count = sum(1 for c in registry.clients if c.is_fraud)
        logger.info(
            "accounts_generated",
            clients=len(registry.clients),
            merchants=len(registry.merchants),
            banks=len(registry.banks),
            fraud_clients=fraud_count,
        )
        return registry

    def _make_client(
        self,
        registry: AccountRegistry,
        total_target: int,
        rng: np.random.Generator,
        taken: set[str],
    ) -> Account:
        account_id = self._unique_id(AccountKind.CLIENT, rng, taken)
        bank = registry.pick_random_bank(rng)
        name = self._template_names[int(rng.choice(len(self._template_names), p=self._template_probs))]
        profile = ClientProfile.from_template(name, self.templates[name], rng)

        weight = min(1.0, profile.target_count / total_target) if total_target > 0 else 0.0
        balance = float(rng.lognormal(self.config.initial_balance_mu, self.config.initial_balance_sigma))
        overdraft_limit = self.pick_overdraft_limit(profile, rng)
        is_fraud = bool(rng.random() < self.config.fraud_ratio)

        return Account(
            account_id=account_id,
            kind=AccountKind.CLIENT,
            balance=balance,
            overdraft_limit=overdraft_limit,
            is_fraud=is_fraud,
            profile=profile,
            bank_id=bank.account_id,
            weight=weight,
            expected_avg_transaction=profile.expected_avg_transaction,
        )

    def pick_overdraft_limit(self, profile: ClientProfile, rng: np.random.Generator) -> float:
        randomized_mean = float(rng.normal(profile.expected_avg_transaction, profile.std_transaction))
        return self.overdraft.limit_for(randomized_mean)

    def _unique_id(self, kind: AccountKind, rng: np.random.Generator, taken: set[str]) -> str:
        while True:
            candidate = f"{kind.value}{int(rng.integers(ID_LOW, ID_HIGH))}"
            if candidate not in taken:
                taken.add(candidate)
                return candidate
