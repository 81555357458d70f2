import logging
from typing import List

import httpx

from vacuum.core.helpers import format_sol
from vacuum.schemas.reclaim import BatchSummary, ReclaimResult

logger = logging.getLogger(__name__)


def render_reclaim_alert(summary: BatchSummary, results: List[ReclaimResult]) -> str:
    lines = [
        f"Rent reclaimed: {format_sol(summary.total_reclaimed)}",
        f"Accounts closed: {summary.succeeded}/{summary.processed}",
    ]
    if summary.failed:
        lines.append(f"Failures: {summary.failed}")
    for result in results:
        if result.success and not result.is_dry_run and result.tx_signature:
            lines.append(f"- {result.account_address}: {result.tx_signature}")
    return "\n".join(lines)


async def send_reclaim_alert(webhook_url: str, summary: BatchSummary, results: List[ReclaimResult]) -> bool:
    """Post a reclaim summary to the webhook. Delivery failures are logged, never raised."""
    if not webhook_url:
        return False
    body = {
        "event": "reclaim",
        "summary": summary.model_dump(),
        "content": render_reclaim_alert(summary, results),
    }
    try:
        async with httpx.AsyncClient(timeout=5.0) as client:
            resp = await client.post(webhook_url, json=body)
            resp.raise_for_status()
    except httpx.HTTPError:
        logger.warning("Reclaim alert delivery failed", exc_info=True)
        return False
    return True
