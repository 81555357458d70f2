from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from vacuum.schemas.accounts import ReclaimHistoryEntry


class RentReport(BaseModel):
    total_tracked_accounts: int
    active_accounts: int
    reclaimable_accounts: int
    reclaimed_accounts: int
    protected_accounts: int
    total_rent_locked_lamports: int
    total_rent_reclaimed_lamports: int
    reclaimable_now_lamports: int = 0
    accounts_by_type: Dict[str, int] = Field(default_factory=dict)
    generated_at: datetime = Field(default_factory=datetime.utcnow)


class RentReportExport(BaseModel):
    report: RentReport
    total_rent_locked_sol: float
    total_rent_reclaimed_sol: float
    history: List[ReclaimHistoryEntry] = Field(default_factory=list)


class KoraNodeStatus(BaseModel):
    healthy: bool
    version: str
    url: str
    latency_ms: int = 0
    slot: int = 0
    error: Optional[str] = None
