from txnsim.simulation.accounts import Account, AccountGenerator, AccountKind, AccountRegistry
from txnsim.simulation.amounts import AmountSampler
from txnsim.simulation.engine import TransactionEngine
from txnsim.simulation.fraud_check import TransferFraudCheck
from txnsim.simulation.profiles import (
    ActionType,
    ClientActionProfile,
    ClientProfile,
    StepActionProfile,
    StepsProfiles,
)
from txnsim.simulation.selector import ActionSelector
from txnsim.simulation.transactions import Transaction

__all__ = [
    "Account",
    "AccountGenerator",
    "AccountKind",
    "AccountRegistry",
    "ActionSelector",
    "ActionType",
    "AmountSampler",
    "ClientActionProfile",
    "ClientProfile",
    "StepActionProfile",
    "StepsProfiles",
    "Transaction",
    "TransactionEngine",
    "TransferFraudCheck",
]
