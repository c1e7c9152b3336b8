from __future__ import annotations

import abc
from pathlib import Path
from typing import IO, TYPE_CHECKING

import structlog

from txnsim.simulation.transactions import to_raw_log, transactions_to_frame

if TYPE_CHECKING:
    from types import TracebackType

    import polars as pl

    from txnsim.simulation.transactions import Transaction

logger = structlog.get_logger(__name__)

PRECISION_OUTPUT = 2


class TransactionSink(abc.ABC):
    @abc.abstractmethod
    def on_transactions(self, step: int, transactions: list[Transaction]) -> bool:
        """Consume the records of one executed action.

        Returns False to ask the acting agent to stop for the rest of the step.
        """
        ...

    def end_step(self, step: int) -> bool:
        """Called once every agent has acted in ``step``; False stops the run."""
        return True


class TransactionRecorder(TransactionSink):
    """Keeps every record in memory up to ``max_transactions`` (0 means no cap).

    The action that reaches the cap is kept whole, so the history holds at most
    ``max_transactions`` plus that action's records minus one. Batches offered
    after that are dropped.
    """

    def __init__(self, max_transactions: int = 0) -> None:
        self.max_transactions = max_transactions
        self.history: list[Transaction] = []

    def __len__(self) -> int:
        return len(self.history)

    @property
    def full(self) -> bool:
        return self.max_transactions > 0 and len(self.history) >= self.max_transactions

    def on_transactions(self, step: int, transactions: list[Transaction]) -> bool:
        if self.full:
            return False
        self.history.extend(transactions)
        if self.full:
            logger.warning("transaction_cap_reached", step=step, recorded=len(self.history))
            return False
        return True

    def to_frame(self) -> pl.DataFrame:
        return transactions_to_frame(self.history)


class RawLogWriter(TransactionSink):
    """Appends each finished step to a CSV raw log, header on the first write."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._pending: list[Transaction] = []
        self._handle: IO[bytes] | None = None
        self._header_written = False
        self.rows_written = 0

    def on_transactions(self, step: int, transactions: list[Transaction]) -> bool:
        self._pending.extend(transactions)
        return True

    def end_step(self, step: int) -> bool:
        if not self._pending:
            return True
        batch = to_raw_log(transactions_to_frame(self._pending))
        try:
            if self._handle is None:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self._handle = self.path.open("wb")
            batch.write_csv(
                self._handle,
                include_header=not self._header_written,
                float_precision=PRECISION_OUTPUT,
            )
        except OSError as exc:
            logger.error("raw_log_write_failed", path=str(self.path), step=step, error=str(exc))
            return False
        self._header_written = True
        self.rows_written += batch.height
        self._pending.clear()
        return True

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None
            logger.info("raw_log_closed", path=str(self.path), rows=self.rows_written)

    def __enter__(self) -> RawLogWriter:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
