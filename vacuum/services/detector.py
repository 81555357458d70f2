import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from vacuum.core.helpers import days_since, format_sol, shorten_address
from vacuum.schemas.accounts import TrackedAccountView
from vacuum.schemas.detection import DetectionResult, ReclaimableSummary
from vacuum.schemas.ledger import AccountInfo, TokenAccountInfo
from vacuum.services.context import VacuumContext

logger = logging.getLogger(__name__)

SKIPPED_STATUSES = ("reclaimed", "protected")


@dataclass(frozen=True)
class RegistryUpdate:
    status: str
    rent_lamports: int


def classify_account(
    account: TrackedAccountView,
    info: Optional[AccountInfo],
    token: Optional[TokenAccountInfo],
    min_inactive_days: int,
    now: Optional[datetime] = None,
) -> Tuple[Optional[DetectionResult], Optional[RegistryUpdate]]:
    """Decide whether a tracked account is reclaimable from its live state.

    Pure function: returns the detection (or ``None``) and the registry
    write the caller should apply (or ``None``). Only on-chain absence or a
    live token amount of exactly zero yields ``safe=True``.
    """
    if info is None:
        result = DetectionResult(
            account=account,
            reason="closed",
            reclaimable_lamports=account.rent_lamports,
            safe=True,
            details="Account no longer exists on-chain. Rent was already returned to original payer.",
        )
        return result, RegistryUpdate(status="reclaimed", rent_lamports=0)

    if account.is_token_account and token is not None and token.amount == 0:
        refreshed = account.model_copy(update={"rent_lamports": token.lamports, "status": "reclaimable"})
        result = DetectionResult(
            account=refreshed,
            reason="zero_balance",
            reclaimable_lamports=token.lamports,
            safe=True,
            details=f"Token account has 0 balance. Can close and reclaim {format_sol(token.lamports)}.",
        )
        return result, RegistryUpdate(status="reclaimable", rent_lamports=token.lamports)

    if account.last_activity_at is not None:
        inactive_days = days_since(account.last_activity_at, now)
        if inactive_days >= min_inactive_days:
            result = DetectionResult(
                account=account,
                reason="inactive",
                reclaimable_lamports=info.lamports,
                safe=False,
                details=f"Account inactive for {inactive_days} days. Manual review recommended.",
            )
            return result, None

    return None, RegistryUpdate(status="active", rent_lamports=info.lamports)


class ReclaimDetector:
    """Classifies tracked accounts against current chain state.

    ``check_account`` writes the refreshed status back to the registry as part
    of its contract; the cached registry status is only used to skip rows.
    """

    def __init__(self, ctx: VacuumContext):
        self.ctx = ctx
        self.ledger = ctx.ledger
        self.registry = ctx.registry

    @property
    def min_inactive_days(self) -> int:
        return self.ctx.settings.min_inactive_days

    async def check_account(self, address: str) -> Optional[DetectionResult]:
        address = str(address)
        account = self.registry.get_account(address)
        if account is None:
            logger.warning("Account not tracked: %s", address)
            return None

        if self.registry.is_protected(address):
            logger.debug("Account is protected: %s", address)
            return None

        info = await self.ledger.fetch_account_info(address)
        token = None
        if info is not None and account.is_token_account:
            token = await self.ledger.fetch_token_account(address)

        result, registry_update = classify_account(account, info, token, self.min_inactive_days)
        if registry_update is not None:
            self.registry.update_account_state(
                address,
                status=registry_update.status,
                rent_lamports=registry_update.rent_lamports,
            )
        if result is not None:
            logger.debug(
                "%s reclaimable (%s, %s, safe=%s)",
                shorten_address(address),
                result.reason,
                format_sol(result.reclaimable_lamports),
                result.safe,
            )
        return result

    async def check_accounts(self, addresses: List[str]) -> List[DetectionResult]:
        results: List[DetectionResult] = []
        for address in addresses:
            try:
                result = await self.check_account(address)
            except Exception:
                logger.error("Error checking account %s", address, exc_info=True)
                continue
            if result:
                results.append(result)
        return results

    async def find_all_reclaimable(self) -> List[DetectionResult]:
        accounts = self.registry.list_accounts(exclude_statuses=SKIPPED_STATUSES)
        logger.info("Checking %d tracked accounts...", len(accounts))
        results = await self.check_accounts([account.address for account in accounts])
        logger.info("Found %d reclaimable accounts out of %d total", len(results), len(accounts))
        return results

    async def find_safe_reclaimable(self) -> List[DetectionResult]:
        """The only feed an automated reclaim may consume."""
        return [result for result in await self.find_all_reclaimable() if result.safe]

    async def is_account_closed(self, address: str) -> bool:
        return await self.ledger.fetch_account_info(str(address)) is None

    async def get_reclaimable_summary(self) -> ReclaimableSummary:
        return summarize(await self.find_all_reclaimable())


def summarize(results: List[DetectionResult]) -> ReclaimableSummary:
    safe = [r for r in results if r.safe]
    return ReclaimableSummary(
        total_accounts=len(results),
        safe_to_reclaim=len(safe),
        unsafe_needs_review=len(results) - len(safe),
        total_reclaimable_lamports=sum(r.reclaimable_lamports for r in results),
        safe_reclaimable_lamports=sum(r.reclaimable_lamports for r in safe),
    )
