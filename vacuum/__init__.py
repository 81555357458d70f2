from vacuum.client import VacuumClient
from vacuum.core.config import ClientOverrides, Settings
from vacuum.core.errors import AccountNotFoundError, ConfigurationError, LedgerError, VacuumError
from vacuum.schemas.reclaim import ReclaimOptions

__version__ = "0.1.0"

__all__ = [
    "VacuumClient",
    "ClientOverrides",
    "Settings",
    "ReclaimOptions",
    "VacuumError",
    "ConfigurationError",
    "LedgerError",
    "AccountNotFoundError",
]
