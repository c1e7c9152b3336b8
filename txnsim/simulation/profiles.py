from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

import polars as pl
import structlog
from pydantic import BaseModel, Field, ValidationInfo, field_validator

if TYPE_CHECKING:
    from collections.abc import Iterable

    import numpy as np

logger = structlog.get_logger(__name__)

HOURS_PER_DAY = 24
DAYS_PER_MONTH = 30


class ActionType(str, Enum):
    CASH_IN = "CASH_IN"
    CASH_OUT = "CASH_OUT"
    DEBIT = "DEBIT"
    PAYMENT = "PAYMENT"
    TRANSFER = "TRANSFER"
    DEPOSIT = "DEPOSIT"


INFLOW_ACTIONS = frozenset({ActionType.CASH_IN, ActionType.DEPOSIT})


def is_inflow(action: ActionType) -> bool:
    return action in INFLOW_ACTIONS


def step_to_time(step: int, steps_per_hour: int = 1) -> tuple[int, int, int]:
    """Map a step index to its (month, day, hour) bucket, all zero-based."""
    hours = step // steps_per_hour
    hour = hours % HOURS_PER_DAY
    day = (hours // HOURS_PER_DAY) % DAYS_PER_MONTH
    month = hours // (HOURS_PER_DAY * DAYS_PER_MONTH)
    return month, day, hour


class ClientActionProfile(BaseModel):
    """Count range and amount distribution of one action in a client template."""

    action: ActionType
    min_count: int = Field(ge=0)
    max_count: int = Field(ge=0)
    avg_amount: float = Field(gt=0)
    std_amount: float = Field(ge=0)

    @field_validator("max_count")
    @classmethod
    def max_gte_min(cls, v: int, info: ValidationInfo) -> int:
        min_val = info.data.get("min_count", 0)
        if v < min_val:
            msg = "max_count must be >= min_count"
            raise ValueError(msg)
        return v


@dataclass
class ActionProfile:
    probability: float
    avg_amount: float
    std_amount: float


@dataclass
class ClientProfile:
    template: str
    actions: dict[ActionType, ActionProfile]
    target_count: int

    @classmethod
    def from_template(
        cls,
        name: str,
        template: dict[ActionType, ClientActionProfile],
        rng: np.random.Generator,
    ) -> ClientProfile:
        counts: dict[ActionType, int] = {}
        for action in ActionType:
            entry = template.get(action)
            if entry is None:
                continue
            counts[action] = int(rng.integers(entry.min_count, entry.max_count + 1))

        total = sum(counts.values())
        if total > 0:
            weights = {a: c / total for a, c in counts.items()}
        else:
            # no activity drawn: keep a usable distribution, the zero target
            # count already keeps the client idle
            reachable = [a for a in counts if template[a].max_count > 0] or list(counts)
            weights = {a: (1 / len(reachable) if a in reachable else 0.0) for a in counts}

        actions = {
            a: ActionProfile(
                probability=weights[a],
                avg_amount=template[a].avg_amount,
                std_amount=template[a].std_amount,
            )
            for a in counts
        }
        return cls(template=name, actions=actions, target_count=total)

    @property
    def probabilities(self) -> dict[ActionType, float]:
        return {a: p.probability for a, p in self.actions.items()}

    @property
    def expected_avg_transaction(self) -> float:
        return sum(p.avg_amount * p.probability for p in self.actions.values())

    @property
    def std_transaction(self) -> float:
        return math.sqrt(sum((p.std_amount * p.probability) ** 2 for p in self.actions.values()))


def _template(*rows: tuple[ActionType, int, int, float, float]) -> dict[ActionType, ClientActionProfile]:
    return {
        action: ClientActionProfile(
            action=action, min_count=low, max_count=high, avg_amount=avg, std_amount=std
        )
        for action, low, high, avg, std in rows
    }


PROFILE_TEMPLATES: dict[str, dict[ActionType, ClientActionProfile]] = {
    "retail": _template(
        (ActionType.CASH_IN, 10, 30, 150_000.0, 110_000.0),
        (ActionType.CASH_OUT, 20, 40, 170_000.0, 120_000.0),
        (ActionType.DEBIT, 2, 8, 5_500.0, 4_000.0),
        (ActionType.PAYMENT, 40, 80, 12_000.0, 9_000.0),
        (ActionType.TRANSFER, 5, 15, 800_000.0, 600_000.0),
        (ActionType.DEPOSIT, 5, 15, 60_000.0, 40_000.0),
    ),
    "saver": _template(
        (ActionType.CASH_IN, 20, 40, 120_000.0, 80_000.0),
        (ActionType.CASH_OUT, 5, 15, 90_000.0, 60_000.0),
        (ActionType.DEBIT, 1, 4, 4_000.0, 2_500.0),
        (ActionType.PAYMENT, 15, 35, 9_000.0, 6_000.0),
        (ActionType.TRANSFER, 1, 5, 300_000.0, 200_000.0),
        (ActionType.DEPOSIT, 15, 30, 80_000.0, 50_000.0),
    ),
    "merchant_heavy": _template(
        (ActionType.CASH_IN, 5, 20, 60_000.0, 40_000.0),
        (ActionType.CASH_OUT, 10, 25, 70_000.0, 50_000.0),
        (ActionType.DEBIT, 0, 4, 3_000.0, 2_000.0),
        (ActionType.PAYMENT, 80, 140, 6_000.0, 4_500.0),
        (ActionType.TRANSFER, 0, 5, 150_000.0, 120_000.0),
        (ActionType.DEPOSIT, 5, 15, 40_000.0, 25_000.0),
    ),
    "high_roller": _template(
        (ActionType.CASH_IN, 10, 25, 600_000.0, 400_000.0),
        (ActionType.CASH_OUT, 15, 30, 550_000.0, 350_000.0),
        (ActionType.DEBIT, 1, 5, 15_000.0, 10_000.0),
        (ActionType.PAYMENT, 20, 50, 40_000.0, 30_000.0),
        (ActionType.TRANSFER, 10, 25, 1_500_000.0, 1_000_000.0),
        (ActionType.DEPOSIT, 5, 10, 250_000.0, 150_000.0),
    ),
}

TEMPLATE_WEIGHTS: dict[str, float] = {
    "retail": 0.55,
    "saver": 0.20,
    "merchant_heavy": 0.20,
    "high_roller": 0.05,
}


def summarize_client_profiles(profiles: Iterable[ClientProfile]) -> pl.DataFrame:
    """Count clients per (template, action) and the drawn count range."""
    rows: dict[tuple[str, str], dict[str, object]] = {}
    n_clients = 0
    for profile in profiles:
        n_clients += 1
        template = PROFILE_TEMPLATES.get(profile.template, {})
        for action in profile.actions:
            key = (profile.template, action.value)
            if key not in rows:
                entry = template.get(action)
                rows[key] = {
                    "template": profile.template,
                    "action": action.value,
                    "low": entry.min_count if entry else 0,
                    "high": entry.max_count if entry else 0,
                    "total": 0,
                }
            rows[key]["total"] += 1  # type: ignore[operator]

    if not rows:
        return pl.DataFrame(
            schema={
                "template": pl.Utf8,
                "action": pl.Utf8,
                "low": pl.Int64,
                "high": pl.Int64,
                "total": pl.Int64,
                "freq": pl.Float64,
            }
        )

    df = pl.DataFrame(list(rows.values()))
    return df.with_columns((pl.col("total") / n_clients).round(5).alias("freq")).sort(
        "template", "action"
    )


@dataclass(frozen=True)
class StepActionProfile:
    step: int
    action: ActionType
    month: int
    day: int
    hour: int
    count: int
    total_amount: float
    avg_amount: float
    std_amount: float


STEP_PROFILE_COLUMNS = {"action", "step", "count", "avg", "std"}


def _cell(row: dict[str, Any], column: str, default: float) -> Any:
    """Optional column value, ``default`` when the column is absent or the cell empty."""
    value = row.get(column)
    return default if value is None else value


# (share of the step's count, mean amount, std amount) for synthetic profiles
SYNTHETIC_ACTION_MIX: dict[ActionType, tuple[float, float, float]] = {
    ActionType.CASH_IN: (0.20, 170_000.0, 120_000.0),
    ActionType.CASH_OUT: (0.33, 180_000.0, 140_000.0),
    ActionType.DEBIT: (0.02, 5_500.0, 4_000.0),
    ActionType.PAYMENT: (0.34, 13_000.0, 10_000.0),
    ActionType.TRANSFER: (0.08, 900_000.0, 700_000.0),
    ActionType.DEPOSIT: (0.03, 60_000.0, 40_000.0),
}


def apply_time_of_day_pattern(hour: int) -> float:
    """Activity multiplier based on hour-of-day, peaks at business hours."""
    if 0 <= hour < 6:
        return 0.1
    if 6 <= hour < 9:
        return 0.6
    if 9 <= hour < 17:
        return 1.0
    if 17 <= hour < 21:
        return 0.7
    return 0.3


def apply_day_of_week_pattern(day: int) -> float:
    """Activity multiplier for a zero-based simulation day (days 5 and 6 of each week are weekend)."""
    return 0.4 if day % 7 >= 5 else 1.0


class StepsProfiles:
    """Per-step action distributions the simulation tries to reproduce.

    Target counts are the profile counts scaled by ``multiplier``; steps at or
    beyond ``nb_steps`` are ignored.
    """

    def __init__(
        self,
        profiles: Iterable[StepActionProfile],
        multiplier: float = 1.0,
        nb_steps: int | None = None,
    ) -> None:
        self.multiplier = multiplier
        self._by_step: dict[int, dict[ActionType, StepActionProfile]] = {}
        for profile in profiles:
            if nb_steps is not None and profile.step >= nb_steps:
                continue
            self._by_step.setdefault(profile.step, {})[profile.action] = profile

        self._target_counts = {
            step: int(round(sum(p.count for p in actions.values()) * multiplier))
            for step, actions in self._by_step.items()
        }
        self.nb_steps = nb_steps if nb_steps is not None else max(self._by_step, default=-1) + 1

    @property
    def steps(self) -> list[int]:
        return sorted(self._by_step)

    @property
    def total_target_count(self) -> int:
        return sum(self._target_counts.values())

    def step_target_count(self, step: int) -> int:
        return self._target_counts.get(step, 0)

    def step_probabilities(self, step: int) -> dict[ActionType, float]:
        actions = self._by_step.get(step, {})
        total = sum(p.count for p in actions.values())
        if total <= 0:
            return {}
        return {action: p.count / total for action, p in actions.items()}

    def step_action(self, step: int, action: ActionType) -> StepActionProfile | None:
        return self._by_step.get(step, {}).get(action)

    def to_frame(self) -> pl.DataFrame:
        rows = [
            {
                "action": p.action.value,
                "month": p.month,
                "day": p.day,
                "hour": p.hour,
                "count": p.count,
                "sum": p.total_amount,
                "avg": p.avg_amount,
                "std": p.std_amount,
                "step": p.step,
            }
            for step in self.steps
            for p in self._by_step[step].values()
        ]
        return pl.DataFrame(
            rows,
            schema={
                "action": pl.Utf8,
                "month": pl.Int64,
                "day": pl.Int64,
                "hour": pl.Int64,
                "count": pl.Int64,
                "sum": pl.Float64,
                "avg": pl.Float64,
                "std": pl.Float64,
                "step": pl.Int64,
            },
        )

    @classmethod
    def from_frame(
        cls,
        df: pl.DataFrame,
        multiplier: float = 1.0,
        nb_steps: int | None = None,
        steps_per_hour: int = 1,
    ) -> StepsProfiles:
        missing = STEP_PROFILE_COLUMNS - set(df.columns)
        if missing:
            msg = f"Step profile table is missing columns: {sorted(missing)}"
            raise ValueError(msg)

        known = {a.value for a in ActionType}
        unknown = set(df["action"].unique().to_list()) - known
        if unknown:
            msg = f"Unknown action types in step profiles: {sorted(unknown)}"
            raise ValueError(msg)

        invalid = df.filter(
            pl.col("avg").is_null()
            | pl.col("std").is_null()
            | (pl.col("avg") <= 0)
            | (pl.col("std") < 0)
        )
        if invalid.height > 0:
            msg = (
                f"{invalid.height} step profile rows have a missing or non-positive mean or a missing or negative std, "
                f"first at step {invalid['step'][0]}"
            )
            raise ValueError(msg)

        profiles = []
        for row in df.iter_rows(named=True):
            step = int(row["step"])
            month, day, hour = step_to_time(step, steps_per_hour)
            count = int(row["count"])
            avg = float(row["avg"])
            profiles.append(
                StepActionProfile(
                    step=step,
                    action=ActionType(row["action"]),
                    month=int(_cell(row, "month", month)),
                    day=int(_cell(row, "day", day)),
                    hour=int(_cell(row, "hour", hour)),
                    count=count,
                    total_amount=float(_cell(row, "sum", avg * count)),
                    avg_amount=avg,
                    std_amount=float(row["std"]),
                )
            )

        result = cls(profiles, multiplier=multiplier, nb_steps=nb_steps)
        logger.info(
            "step_profiles_loaded",
            rows=df.height,
            steps=len(result.steps),
            total_target_count=result.total_target_count,
        )
        return result

    @classmethod
    def load(
        cls,
        path: Path | str,
        multiplier: float = 1.0,
        nb_steps: int | None = None,
        steps_per_hour: int = 1,
    ) -> StepsProfiles:
        path = Path(path)
        if path.suffix == ".parquet":
            df = pl.read_parquet(path)
        else:
            df = pl.read_csv(path)
        return cls.from_frame(df, multiplier=multiplier, nb_steps=nb_steps, steps_per_hour=steps_per_hour)

    @classmethod
    def synthetic(
        cls,
        nb_steps: int,
        base_count: int,
        multiplier: float = 1.0,
        steps_per_hour: int = 1,
    ) -> StepsProfiles:
        profiles = []
        for step in range(nb_steps):
            month, day, hour = step_to_time(step, steps_per_hour)
            factor = apply_time_of_day_pattern(hour) * apply_day_of_week_pattern(day)
            step_count = base_count * factor / steps_per_hour
            for action, (share, avg, std) in SYNTHETIC_ACTION_MIX.items():
                count = int(round(step_count * share))
                if count == 0:
                    continue
                profiles.append(
                    StepActionProfile(
                        step=step,
                        action=action,
                        month=month,
                        day=day,
                        hour=hour,
                        count=count,
                        total_amount=avg * count,
                        avg_amount=avg,
                        std_amount=std,
                    )
                )
        return cls(profiles, multiplier=multiplier, nb_steps=nb_steps)
