from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from txnsim.config.settings import OverdraftConfig, Settings, SimulationConfig
from txnsim.simulation.accounts import Account, AccountKind, AccountRegistry
from txnsim.simulation.profiles import PROFILE_TEMPLATES, ClientProfile


@pytest.fixture  # type: ignore[misc]
def small_sim_config() -> SimulationConfig:
    return SimulationConfig(
        nb_steps=48,
        nb_clients=50,
        nb_merchants=5,
        nb_banks=2,
        base_step_count=60,
        fraud_ratio=0.05,
        seed=42,
    )


@pytest.fixture  # type: ignore[misc]
def overdraft_config() -> OverdraftConfig:
    return OverdraftConfig()


@pytest.fixture  # type: ignore[misc]
def settings(
    small_sim_config: SimulationConfig,
    overdraft_config: OverdraftConfig,
    tmp_path: Path,
) -> Settings:
    return Settings(
        simulation=small_sim_config,
        overdraft=overdraft_config,
        output_dir=Path(str(tmp_path)) / "outputs",
        simulation_name="test_run",
    )


@pytest.fixture  # type: ignore[misc]
def rng() -> np.random.Generator:
    return np.random.default_rng(7)


@pytest.fixture  # type: ignore[misc]
def registry(rng: np.random.Generator) -> AccountRegistry:
    """Two clients sharing one bank, plus two merchants."""
    reg = AccountRegistry()
    reg.add(Account("B0000000001", AccountKind.BANK))
    reg.add(Account("M0000000001", AccountKind.MERCHANT))
    reg.add(Account("M0000000002", AccountKind.MERCHANT, balance=250.0))

    profile = ClientProfile.from_template("retail", PROFILE_TEMPLATES["retail"], rng)
    reg.add(
        Account(
            "C0000000001",
            AccountKind.CLIENT,
            balance=1000.0,
            overdraft_limit=500.0,
            profile=profile,
            bank_id="B0000000001",
            weight=0.5,
            expected_avg_transaction=profile.expected_avg_transaction,
        )
    )
    reg.add(
        Account(
            "C0000000002",
            AccountKind.CLIENT,
            balance=500.0,
            profile=profile,
            bank_id="B0000000001",
            weight=0.5,
            expected_avg_transaction=profile.expected_avg_transaction,
        )
    )
    return reg
