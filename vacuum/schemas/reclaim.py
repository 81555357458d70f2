from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

DRY_RUN_SIGNATURE = "DRY_RUN"


class ReclaimOptions(BaseModel):
    dry_run: Optional[bool] = None
    max_accounts: Optional[int] = Field(None, ge=0)


class ReclaimResult(BaseModel):
    account_address: str
    amount_reclaimed: int = 0
    tx_signature: str = ""
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    success: bool
    error: Optional[str] = None

    @property
    def is_dry_run(self) -> bool:
        return self.tx_signature == DRY_RUN_SIGNATURE


class PreviewItem(BaseModel):
    address: str
    amount: str
    lamports: int
    reason: str


class ReclaimPreview(BaseModel):
    accounts: List[PreviewItem] = Field(default_factory=list)
    total_lamports: int = 0
    total_sol: str = "0.0 SOL"


class BatchSummary(BaseModel):
    processed: int
    succeeded: int
    failed: int
    total_reclaimed: int
    dry_run: bool
