from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

import polars as pl

from txnsim.output.sinks import TransactionSink
from txnsim.simulation.profiles import step_to_time
from txnsim.simulation.transactions import transactions_to_frame

if TYPE_CHECKING:
    from txnsim.simulation.transactions import Transaction

AGGREGATE_SCHEMA = {
    "action": pl.Utf8,
    "month": pl.Int64,
    "day": pl.Int64,
    "hour": pl.Int64,
    "count": pl.Int64,
    "sum": pl.Float64,
    "avg": pl.Float64,
    "std": pl.Float64,
    "step": pl.Int64,
}


@dataclass
class RunningStats:
    step: int
    count: int = 0
    total: float = 0.0
    mean: float = 0.0
    m2: float = 0.0

    @property
    def std(self) -> float:
        return math.sqrt(self.m2 / self.count) if self.count > 0 else 0.0

    def merge(self, count: int, total: float, mean: float, m2: float) -> None:
        """Fold in another group's moments (pairwise update of Chan et al.)."""
        if count <= 0:
            return
        combined = self.count + count
        delta = mean - self.mean
        self.mean += delta * count / combined
        self.m2 += m2 + delta * delta * self.count * count / combined
        self.count = combined
        self.total += total


class StepAggregator(TransactionSink):
    """Running count/sum/mean/std per action and (month, day, hour) bucket.

    ``step`` in the output is the first step that contributed to a bucket.
    """

    def __init__(self, steps_per_hour: int = 1) -> None:
        self.steps_per_hour = steps_per_hour
        self._pending: list[Transaction] = []
        self._groups: dict[tuple[str, int, int, int], RunningStats] = {}

    def on_transactions(self, step: int, transactions: list[Transaction]) -> bool:
        self._pending.extend(transactions)
        return True

    def end_step(self, step: int) -> bool:
        if not self._pending:
            return True

        batch = (
            transactions_to_frame(self._pending)
            .group_by("action")
            .agg(
                pl.len().alias("count"),
                pl.col("amount").sum().alias("sum"),
                pl.col("amount").mean().alias("mean"),
                pl.col("amount").var(ddof=0).alias("var"),
            )
            .sort("action")
        )
        month, day, hour = step_to_time(step, self.steps_per_hour)
        for row in batch.iter_rows(named=True):
            key = (row["action"], month, day, hour)
            stats = self._groups.get(key)
            if stats is None:
                stats = self._groups[key] = RunningStats(step=step)
            count = int(row["count"])
            stats.merge(count, float(row["sum"]), float(row["mean"]), float(row["var"] or 0.0) * count)

        self._pending.clear()
        return True

    def to_frame(self) -> pl.DataFrame:
        rows = [
            {
                "action": action,
                "month": month,
                "day": day,
                "hour": hour,
                "count": stats.count,
                "sum": stats.total,
                "avg": stats.mean,
                "std": stats.std,
                "step": stats.step,
            }
            for (action, month, day, hour), stats in self._groups.items()
        ]
        df = pl.DataFrame(rows, schema=AGGREGATE_SCHEMA)
        return df.sort("step", "action")
