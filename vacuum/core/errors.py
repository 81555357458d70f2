from typing import Optional


class VacuumError(Exception):
    """Base class for errors raised by the reclaim pipeline."""


class ConfigurationError(VacuumError):
    """Missing or invalid configuration; fatal at startup."""


class LedgerError(VacuumError):
    """A Solana RPC call or transaction failed.

    ``transient`` marks failures worth retrying on the read path (network
    blips, rate limits, node-side errors).
    """

    def __init__(self, message: str, *, transient: bool = False, code: Optional[int] = None):
        super().__init__(message)
        self.transient = transient
        self.code = code


class AccountNotFoundError(VacuumError):
    def __init__(self, address: str):
        super().__init__(f"Account not found on chain: {address}")
        self.address = address
