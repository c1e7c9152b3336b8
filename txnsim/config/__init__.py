from txnsim.config.settings import (
    DEFAULT_OVERDRAFT_BRACKETS,
    OverdraftConfig,
    Settings,
    SimulationConfig,
)

__all__ = [
    "DEFAULT_OVERDRAFT_BRACKETS",
    "OverdraftConfig",
    "Settings",
    "SimulationConfig",
]
