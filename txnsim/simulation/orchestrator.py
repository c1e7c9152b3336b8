from __future__ import annotations

import json
from typing import TYPE_CHECKING

import numpy as np
import polars as pl
import structlog
from tqdm import tqdm

from txnsim.output.aggregator import StepAggregator
from txnsim.output.sinks import TransactionRecorder
from txnsim.simulation.accounts import AccountGenerator
from txnsim.simulation.amounts import AmountSampler
from txnsim.simulation.engine import TransactionEngine
from txnsim.simulation.profiles import StepsProfiles, summarize_client_profiles
from txnsim.simulation.selector import ActionSelector
from txnsim.simulation.validator import SimulationValidator

if TYPE_CHECKING:
    from txnsim.config.settings import Settings
    from txnsim.output.sinks import TransactionSink
    from txnsim.simulation.accounts import Account, AccountRegistry
    from txnsim.simulation.profiles import ActionType
    from txnsim.simulation.transactions import Transaction

logger = structlog.get_logger(__name__)


class SimulationOrchestrator:
    """Runs the step loop over every client in creation order.

    All randomness comes from one generator seeded from the simulation config,
    so a run is reproducible for a given seed, profile set and population.
    """

    def __init__(
        self,
        settings: Settings,
        steps_profiles: StepsProfiles | None = None,
        extra_sinks: list[TransactionSink] | None = None,
        show_progress: bool = True,
    ) -> None:
        self.settings = settings
        sim = settings.simulation
        self.rng = np.random.default_rng(sim.seed)
        self.steps_profiles = steps_profiles or StepsProfiles.synthetic(
            nb_steps=sim.nb_steps,
            base_count=sim.base_step_count,
            multiplier=sim.multiplier,
            steps_per_hour=sim.steps_per_hour,
        )
        self.selector = ActionSelector()
        self.sampler = AmountSampler()
        self.recorder = TransactionRecorder(sim.max_transactions)
        self.aggregator = StepAggregator(sim.steps_per_hour)
        self.sinks: list[TransactionSink] = [self.recorder, self.aggregator, *(extra_sinks or [])]
        self.show_progress = show_progress

        self.registry: AccountRegistry | None = None
        self.engine: TransactionEngine | None = None
        self.total_transactions = 0
        self.steps_participated = 0
        self.aborted = False
        self._ran = False

    def setup(self) -> AccountRegistry:
        generator = AccountGenerator(self.settings.simulation, self.settings.overdraft)
        self.registry = generator.generate(self.steps_profiles, self.rng)
        self.engine = TransactionEngine(self.registry, self.settings.simulation.transfer_limit)
        return self.registry

    def run(self) -> pl.DataFrame:
        if self.registry is None:
            self.setup()

        nb_steps = self.settings.simulation.nb_steps
        logger.info(
            "simulation_start",
            steps=nb_steps,
            clients=len(self.registry.clients),  # type: ignore[union-attr]
            total_target_count=self.steps_profiles.total_target_count,
        )

        for step in tqdm(range(nb_steps), desc="Simulating steps", disable=not self.show_progress):
            self.run_step(step)
            if self.aborted:
                logger.warning("simulation_aborted", step=step)
                break

        self._ran = True
        logger.info(
            "simulation_complete",
            total_transactions=self.total_transactions,
            steps_participated=self.steps_participated,
            aborted=self.aborted,
        )
        return self.recorder.to_frame()

    def run_step(self, step: int) -> None:
        if self.registry is None:
            msg = "Call setup() before running steps"
            raise RuntimeError(msg)

        before = self.total_transactions
        target = self.steps_profiles.step_target_count(step)
        if target > 0:
            step_probabilities = self.steps_profiles.step_probabilities(step)
            for client in self.registry.clients:
                if self.recorder.full:
                    # the cap ends the run, not just the acting client
                    self.aborted = True
                    break
                if not self._step_client(client, step, target, step_probabilities):
                    self.aborted = True

        for sink in self.sinks:
            if not sink.end_step(step):
                self.aborted = True

        if self.total_transactions > before:
            self.steps_participated += 1

    def _step_client(
        self,
        client: Account,
        step: int,
        target: int,
        step_probabilities: dict[ActionType, float],
    ) -> bool:
        """Run one client's actions for the step; False if a sink asked to stop."""
        profile = client.profile
        if profile is None:
            return True

        count = self.selector.select_count(target, client.weight, self.rng)
        for _ in range(count):
            action = self.selector.select_action(
                profile.probabilities,
                step_probabilities,
                client.balance,
                client.expected_avg_transaction,
                self.rng,
            )
            step_profile = self.steps_profiles.step_action(step, action)
            amount = self.sampler.sample(profile.actions[action], step_profile, self.rng)

            transactions = self.engine.execute(client, step, action, amount, self.rng)  # type: ignore[union-attr]
            if not self._dispatch(step, transactions):
                return False
        return True

    def _dispatch(self, step: int, transactions: list[Transaction]) -> bool:
        self.total_transactions += len(transactions)
        accepted = True
        for sink in self.sinks:
            accepted = sink.on_transactions(step, transactions) and accepted
        return accepted

    def validate(self) -> dict[str, dict[str, object]]:
        if not self._ran:
            msg = "Run simulation before validation"
            raise RuntimeError(msg)

        validator = SimulationValidator(
            self.steps_profiles,
            self.recorder.to_frame(),
            self.settings.simulation.transfer_limit,
        )
        return validator.validate_all()

    def client_profiles(self) -> pl.DataFrame:
        if self.registry is None:
            msg = "Call setup() before summarizing client profiles"
            raise RuntimeError(msg)
        return summarize_client_profiles(c.profile for c in self.registry.clients if c.profile)

    def save(self, validation: dict[str, dict[str, object]] | None = None) -> None:
        if not self._ran:
            msg = "Run simulation before saving"
            raise RuntimeError(msg)

        output_dir = self.settings.output_dir
        output_dir.mkdir(parents=True, exist_ok=True)
        name = self.settings.simulation_name

        self.recorder.to_frame().write_parquet(output_dir / f"{name}_transactions.parquet")
        self.aggregator.to_frame().write_csv(output_dir / f"{name}_aggregatedTransactions.csv")
        self.client_profiles().write_csv(output_dir / f"{name}_clientsProfiles.csv")

        summary = {
            "name": name,
            "steps": self.settings.simulation.nb_steps,
            "seed": self.settings.simulation.seed,
            "clients": len(self.registry.clients) if self.registry else 0,
            "transactions": self.total_transactions,
            "steps_participated": self.steps_participated,
            "aborted": self.aborted,
            "validation": validation or {},
        }
        (output_dir / f"{name}_summary.json").write_text(
            json.dumps(summary, indent=2, default=str), encoding="utf-8"
        )

        logger.info("data_saved", path=str(output_dir))
