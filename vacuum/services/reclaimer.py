import asyncio
import logging
from typing import List, Optional

from vacuum.core.errors import LedgerError
from vacuum.core.helpers import format_sol, shorten_address
from vacuum.schemas.detection import DetectionResult
from vacuum.schemas.reclaim import (
    DRY_RUN_SIGNATURE,
    BatchSummary,
    PreviewItem,
    ReclaimOptions,
    ReclaimPreview,
    ReclaimResult,
)
from vacuum.services.context import VacuumContext
from vacuum.services.notifications import send_reclaim_alert

logger = logging.getLogger(__name__)

# pause between confirmed closes to stay under public RPC rate limits
RECLAIM_DELAY_SECONDS = 0.5


def _failure(detection: DetectionResult, error: str) -> ReclaimResult:
    return ReclaimResult(account_address=detection.address, success=False, error=error)


class RentReclaimer:
    """Closes safe token accounts and sends their rent to the treasury.

    Every gate re-reads live state, so a detection that went stale between
    detection and execution fails instead of closing the wrong account.
    """

    def __init__(self, ctx: VacuumContext):
        self.ctx = ctx
        self.ledger = ctx.ledger
        self.registry = ctx.registry

    def _is_dry_run(self, options: Optional[ReclaimOptions]) -> bool:
        if options is not None and options.dry_run is not None:
            return options.dry_run
        return self.ctx.settings.dry_run

    async def reclaim_one(
        self, detection: DetectionResult, options: Optional[ReclaimOptions] = None
    ) -> ReclaimResult:
        address = detection.address
        account = detection.account

        if not detection.safe:
            return _failure(detection, "Account marked as unsafe for automatic reclaim")

        if self.registry.is_protected(address):
            return _failure(detection, "Account is protected")

        if not account.is_token_account:
            return _failure(detection, f"Cannot reclaim non-token account type: {account.account_type}")

        try:
            token = await self.ledger.fetch_token_account(address)
        except LedgerError as exc:
            return _failure(detection, f"Cannot verify token account: {exc}")
        if token is None:
            self.registry.update_status(address, "reclaimed")
            return ReclaimResult(
                account_address=address,
                amount_reclaimed=0,
                success=True,
                error="Account already closed",
            )
        if token.amount > 0:
            return _failure(detection, f"Token account has non-zero balance: {token.amount}")

        if token.owner != self.ctx.operator_address:
            return _failure(detection, f"Operator is not the account owner. Owner: {token.owner}")

        if self._is_dry_run(options):
            logger.info("[DRY RUN] Would reclaim %s from %s", format_sol(token.lamports), shorten_address(address))
            return ReclaimResult(
                account_address=address,
                amount_reclaimed=token.lamports,
                tx_signature=DRY_RUN_SIGNATURE,
                success=True,
            )

        close_kwargs = {}
        if token.program_id:
            close_kwargs["program_id"] = token.program_id
        try:
            signature = await self.ledger.close_token_account(
                address, self.ctx.treasury_address, self.ctx.operator, **close_kwargs
            )
        except Exception as exc:
            logger.error("Failed to reclaim %s: %s", shorten_address(address), exc)
            return _failure(detection, str(exc))

        self.registry.update_status(address, "reclaimed")
        self.registry.add_history(address, token.lamports, signature, detection.reason, self.ctx.operator_id)
        logger.info("Reclaimed %s from %s | tx: %s", format_sol(token.lamports), shorten_address(address), signature)
        return ReclaimResult(
            account_address=address,
            amount_reclaimed=token.lamports,
            tx_signature=signature,
            success=True,
        )

    async def batch_reclaim(
        self, detections: List[DetectionResult], options: Optional[ReclaimOptions] = None
    ) -> List[ReclaimResult]:
        options = options or ReclaimOptions()
        dry_run = self._is_dry_run(options)
        batch = detections if options.max_accounts is None else detections[: options.max_accounts]
        logger.info("Processing %d accounts for reclaim (dry_run=%s)", len(batch), dry_run)

        results: List[ReclaimResult] = []
        for index, detection in enumerate(batch):
            try:
                result = await self.reclaim_one(detection, options)
            except Exception as exc:
                logger.error("Unexpected error reclaiming %s", detection.address, exc_info=True)
                result = _failure(detection, str(exc))
            results.append(result)
            if result.success and not result.is_dry_run and result.tx_signature and index < len(batch) - 1:
                await asyncio.sleep(RECLAIM_DELAY_SECONDS)

        summary = summarize_batch(results, dry_run)
        logger.info(
            "Reclaim complete: %d succeeded, %d failed, %s reclaimed",
            summary.succeeded,
            summary.failed,
            format_sol(summary.total_reclaimed),
            extra={"succeeded": summary.succeeded, "failed": summary.failed, "lamports": summary.total_reclaimed},
        )
        if any(r.success and r.tx_signature and not r.is_dry_run for r in results):
            await send_reclaim_alert(self.ctx.settings.webhook_url, summary, results)
        return results

    def preview_reclaim(self, detections: List[DetectionResult]) -> ReclaimPreview:
        safe = [d for d in detections if d.safe]
        total = sum(d.reclaimable_lamports for d in safe)
        return ReclaimPreview(
            accounts=[
                PreviewItem(
                    address=d.address,
                    amount=format_sol(d.reclaimable_lamports),
                    lamports=d.reclaimable_lamports,
                    reason=d.reason,
                )
                for d in safe
            ],
            total_lamports=total,
            total_sol=format_sol(total),
        )


def summarize_batch(results: List[ReclaimResult], dry_run: bool) -> BatchSummary:
    succeeded = [r for r in results if r.success]
    return BatchSummary(
        processed=len(results),
        succeeded=len(succeeded),
        failed=len(results) - len(succeeded),
        total_reclaimed=sum(r.amount_reclaimed for r in succeeded),
        dry_run=dry_run,
    )
