from __future__ import annotations

from typing import TYPE_CHECKING

import polars as pl
import structlog

from txnsim.simulation.profiles import INFLOW_ACTIONS, ActionType

if TYPE_CHECKING:
    from txnsim.simulation.profiles import StepsProfiles

logger = structlog.get_logger(__name__)

BALANCE_TOLERANCE = 1e-6
MAX_COUNT_ERROR_RATE = 0.5


class SimulationValidator:
    def __init__(
        self,
        steps_profiles: StepsProfiles,
        transactions: pl.DataFrame,
        transfer_limit: float,
    ) -> None:
        self.steps_profiles = steps_profiles
        self.transactions = transactions
        self.transfer_limit = transfer_limit

    def validate_all(self) -> dict[str, dict[str, object]]:
        results: dict[str, dict[str, object]] = {}
        results["step_counts"] = self._validate_step_counts()
        results["positive_amounts"] = self._validate_positive_amounts()
        results["transfer_limit"] = self._validate_transfer_limit()
        results["flagged_transfers"] = self._validate_flagged_transfers()
        results["balance_deltas"] = self._validate_balance_deltas()

        all_passed = all(r.get("passed", False) for r in results.values())
        logger.info("validation_complete", all_passed=all_passed, results=results)
        return results

    def _validate_step_counts(self) -> dict[str, object]:
        """Mean relative error between simulated and target counts per (step, action)."""
        target = self.steps_profiles.to_frame().select(
            "step",
            "action",
            (pl.col("count") * self.steps_profiles.multiplier).alias("target"),
        )
        if target.height == 0:
            return {"passed": True, "error_rate": 0.0, "compared_rows": 0}

        simulated = self.transactions.group_by("step", "action").agg(pl.len().alias("simulated"))
        compared = (
            target.filter(pl.col("target") > 0)
            .join(simulated, on=["step", "action"], how="left")
            .with_columns(pl.col("simulated").fill_null(0))
            .with_columns(
                ((pl.col("simulated") - pl.col("target")).abs() / pl.col("target")).alias("error")
            )
        )
        error_rate = float(compared["error"].mean()) if compared.height > 0 else 0.0
        return {
            "passed": error_rate <= MAX_COUNT_ERROR_RATE,
            "error_rate": round(error_rate, 6),
            "compared_rows": compared.height,
            "target_total": int(target["target"].sum()),
            "simulated_total": self.transactions.height,
        }

    def _validate_positive_amounts(self) -> dict[str, object]:
        non_positive = self.transactions.filter(pl.col("amount") <= 0).height
        return {"passed": non_positive == 0, "non_positive": non_positive}

    def _validate_transfer_limit(self) -> dict[str, object]:
        transfers = self.transactions.filter(pl.col("action") == ActionType.TRANSFER.value)
        over = transfers.filter(pl.col("amount") > self.transfer_limit).height
        return {"passed": over == 0, "transfers": transfers.height, "over_limit": over}

    def _validate_flagged_transfers(self) -> dict[str, object]:
        """Blocked transfers must be unsuccessful and leave both balances untouched."""
        flagged = self.transactions.filter(pl.col("flagged_fraud"))
        broken = flagged.filter(
            pl.col("successful")
            | (pl.col("origin_balance_before") != pl.col("origin_balance_after"))
            | (pl.col("dest_balance_before") != pl.col("dest_balance_after"))
        ).height
        return {"passed": broken == 0, "flagged": flagged.height, "inconsistent": broken}

    def _validate_balance_deltas(self) -> dict[str, object]:
        """Origin balances move by exactly the amount, in the direction of the action."""
        inflow = [a.value for a in INFLOW_ACTIONS]
        applied = self.transactions.filter(~pl.col("flagged_fraud")).with_columns(
            pl.when(pl.col("action").is_in(inflow))
            .then(pl.col("origin_balance_after") - pl.col("origin_balance_before"))
            .otherwise(pl.col("origin_balance_before") - pl.col("origin_balance_after"))
            .alias("delta")
        )
        tolerance = BALANCE_TOLERANCE * (1 + pl.col("amount").abs())
        mismatched = applied.filter((pl.col("delta") - pl.col("amount")).abs() > tolerance).height
        return {"passed": mismatched == 0, "checked": applied.height, "mismatched": mismatched}
