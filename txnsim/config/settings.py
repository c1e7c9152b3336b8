from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# (low, high, overdraft_limit): a randomized mean transaction in [low, high)
# grants the given overdraft limit
DEFAULT_OVERDRAFT_BRACKETS: list[tuple[float, float, float]] = [
    (0.0, 10_000.0, 0.0),
    (10_000.0, 50_000.0, 5_000.0),
    (50_000.0, 100_000.0, 20_000.0),
    (100_000.0, 500_000.0, 50_000.0),
    (500_000.0, float("inf"), 150_000.0),
]


class SimulationConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TXNSIM_SIM_")

    seed: int = Field(default=42)
    nb_steps: int = Field(default=720, ge=1)
    nb_clients: int = Field(default=2_000, ge=2)
    nb_merchants: int = Field(default=200, ge=1)
    nb_banks: int = Field(default=5, ge=1)
    multiplier: float = Field(default=1.0, gt=0.0)
    transfer_limit: float = Field(default=200_000.0, gt=0.0)
    steps_per_hour: int = Field(default=1, ge=1)
    fraud_ratio: float = Field(default=0.001, ge=0.0, le=1.0)
    max_transactions: int = Field(default=0, ge=0)

    initial_balance_mu: float = Field(default=10.0)
    initial_balance_sigma: float = Field(default=1.5, ge=0.0)

    # synthetic step profiles, used when no aggregate file is supplied
    base_step_count: int = Field(default=400, ge=0)


class OverdraftConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TXNSIM_OVERDRAFT_")

    brackets: list[tuple[float, float, float]] = Field(
        default_factory=lambda: list(DEFAULT_OVERDRAFT_BRACKETS)
    )

    @field_validator("brackets")
    @classmethod
    def brackets_well_formed(
        cls, v: list[tuple[float, float, float]]
    ) -> list[tuple[float, float, float]]:
        for low, high, limit in v:
            if high <= low:
                msg = f"overdraft bracket upper bound must exceed lower bound: ({low}, {high})"
                raise ValueError(msg)
            if limit < 0:
                msg = f"overdraft limit must be non-negative, got {limit}"
                raise ValueError(msg)
        return sorted(v)

    def limit_for(self, mean_transaction: float) -> float:
        for low, high, limit in self.brackets:
            if low <= mean_transaction < high:
                return limit
        return 0.0


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TXNSIM_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    output_dir: Path = Field(default=Path("outputs"))
    simulation_name: str = Field(default="txnsim")
    log_level: str = Field(default="INFO")

    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    overdraft: OverdraftConfig = Field(default_factory=OverdraftConfig)

    def ensure_dirs(self) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
