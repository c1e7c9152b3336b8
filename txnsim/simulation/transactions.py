from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING

import polars as pl

from txnsim.simulation.profiles import ActionType

if TYPE_CHECKING:
    from collections.abc import Iterable

TRANSACTION_SCHEMA = {
    "step": pl.Int64,
    "action": pl.Utf8,
    "amount": pl.Float64,
    "origin_id": pl.Utf8,
    "origin_balance_before": pl.Float64,
    "origin_balance_after": pl.Float64,
    "dest_id": pl.Utf8,
    "dest_balance_before": pl.Float64,
    "dest_balance_after": pl.Float64,
    "fraud": pl.Boolean,
    "flagged_fraud": pl.Boolean,
    "unauthorized_overdraft": pl.Boolean,
    "successful": pl.Boolean,
}

# column names of the classic raw transaction log
RAW_LOG_COLUMNS = {
    "step": "step",
    "action": "action",
    "amount": "amount",
    "origin_id": "nameOrig",
    "origin_balance_before": "oldBalanceOrig",
    "origin_balance_after": "newBalanceOrig",
    "dest_id": "nameDest",
    "dest_balance_before": "oldBalanceDest",
    "dest_balance_after": "newBalanceDest",
    "fraud": "isFraud",
    "flagged_fraud": "isFlaggedFraud",
    "unauthorized_overdraft": "isUnauthorizedOverdraft",
}


@dataclass(frozen=True)
class Transaction:
    step: int
    action: ActionType
    amount: float
    origin_id: str
    origin_balance_before: float
    origin_balance_after: float
    dest_id: str
    dest_balance_before: float
    dest_balance_after: float
    fraud: bool = False
    flagged_fraud: bool = False
    unauthorized_overdraft: bool = False
    successful: bool = True

    def to_dict(self) -> dict[str, object]:
        row = asdict(self)
        row["action"] = self.action.value
        return row


def transactions_to_frame(transactions: Iterable[Transaction]) -> pl.DataFrame:
    return pl.DataFrame([t.to_dict() for t in transactions], schema=TRANSACTION_SCHEMA)


def to_raw_log(df: pl.DataFrame) -> pl.DataFrame:
    """Select and rename columns into the raw log layout, flags as 0/1."""
    flags = ["fraud", "flagged_fraud", "unauthorized_overdraft"]
    return df.with_columns(pl.col(flags).cast(pl.Int8)).select(
        [pl.col(src).alias(dst) for src, dst in RAW_LOG_COLUMNS.items()]
    )
