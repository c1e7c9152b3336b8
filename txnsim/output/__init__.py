from txnsim.output.aggregator import StepAggregator
from txnsim.output.sinks import RawLogWriter, TransactionRecorder, TransactionSink

__all__ = [
    "RawLogWriter",
    "StepAggregator",
    "TransactionRecorder",
    "TransactionSink",
]
