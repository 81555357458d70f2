from pydantic import BaseModel, model_validator

from vacuum.schemas.accounts import ReclaimReason, TrackedAccountView


class DetectionResult(BaseModel):
    account: TrackedAccountView
    reason: ReclaimReason
    reclaimable_lamports: int
    safe: bool
    details: str

    @model_validator(mode="after")
    def inactive_is_never_safe(self) -> "DetectionResult":
        if self.reason == "inactive" and self.safe:
            raise ValueError("inactive accounts cannot be marked safe")
        return self

    @property
    def address(self) -> str:
        return self.account.address


class ReclaimableSummary(BaseModel):
    total_accounts: int = 0
    safe_to_reclaim: int = 0
    unsafe_needs_review: int = 0
    total_reclaimable_lamports: int = 0
    safe_reclaimable_lamports: int = 0
