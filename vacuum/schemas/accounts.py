from datetime import datetime
from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

AccountType = Literal["token_account", "ata", "pda", "unknown"]
AccountStatus = Literal["active", "reclaimable", "reclaimed", "protected"]
ReclaimReason = Literal["closed", "zero_balance", "inactive"]

TOKEN_ACCOUNT_TYPES = ("token_account", "ata")


class TrackedAccountView(BaseModel):
    """Detached snapshot of a registry row."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    address: str
    account_type: AccountType = "unknown"
    owner: Optional[str] = None
    mint: Optional[str] = None
    rent_lamports: int = 0
    sponsor_tx: Optional[str] = None
    status: AccountStatus = "active"
    operator_id: Optional[int] = None
    created_at: Optional[datetime] = None
    last_checked_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None

    @property
    def is_token_account(self) -> bool:
        return self.account_type in TOKEN_ACCOUNT_TYPES


class ProtectionEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    address: str
    reason: Optional[str] = None
    added_at: datetime


class ReclaimHistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    account_address: str
    amount_reclaimed: int
    tx_signature: str
    reason: Optional[str] = None
    operator_id: Optional[int] = None
    reclaimed_at: datetime


class AccountStats(BaseModel):
    total: int = 0
    active: int = 0
    reclaimable: int = 0
    reclaimed: int = 0
    protected: int = 0
    total_rent_locked: int = 0
    total_rent_reclaimed: int = 0


class TrackingStats(BaseModel):
    total_tracked: int = 0
    by_type: Dict[str, int] = Field(default_factory=dict)
    by_status: Dict[str, int] = Field(default_factory=dict)
    total_rent_locked: int = 0


class OperatorView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    keypair_path: str
    treasury_address: str
    is_default: bool
    created_at: datetime
