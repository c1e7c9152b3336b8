from __future__ import annotations


from txnsim.simulation.profiles import ActionType
from txnsim.simulation.transactions import (
    RAW_LOG_COLUMNS,
    TRANSACTION_SCHEMA,
    Transaction,
    to_raw_log,
    transactions_to_frame,
)


def _transfer(**flags: bool) -> Transaction:
    return Transaction(
        step=4,
        action=ActionType.TRANSFER,
        amount=125.5,
        origin_id="C1",
        origin_balance_before=1000.0,
        origin_balance_after=874.5,
        dest_id="C2",
        dest_balance_before=10.0,
        dest_balance_after=135.5,
        **flags,
    )


class TestTransactionFrame:
    def test_schema(self) -> None:
        df = transactions_to_frame([_transfer(), _transfer(fraud=True)])
        assert dict(df.schema) == TRANSACTION_SCHEMA
        assert df.height == 2
        assert df["action"].to_list() == ["TRANSFER", "TRANSFER"]

    def test_empty(self) -> None:
        df = transactions_to_frame([])
        assert df.height == 0
        assert set(df.columns) == set(TRANSACTION_SCHEMA)

    def test_default_flags(self) -> None:
        t = _transfer()
        assert t.successful
        assert not (t.fraud or t.flagged_fraud or t.unauthorized_overdraft)


class TestRawLog:
    def test_columns_and_flags(self) -> None:
        raw = to_raw_log(transactions_to_frame([_transfer(fraud=True, unauthorized_overdraft=True)]))

        assert raw.columns == list(RAW_LOG_COLUMNS.values())
        row = raw.row(0, named=True)
        assert row["nameOrig"] == "C1"
        assert row["newBalanceDest"] == 135.5
        assert row["isFraud"] == 1
        assert row["isFlaggedFraud"] == 0
        assert row["isUnauthorizedOverdraft"] == 1
