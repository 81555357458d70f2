import logging
from typing import List

from vacuum.core.helpers import lamports_to_sol
from vacuum.models.accounts import ACCOUNT_TYPES
from vacuum.schemas.accounts import ReclaimHistoryEntry
from vacuum.schemas.reports import RentReport, RentReportExport
from vacuum.services.registry import Registry

logger = logging.getLogger(__name__)


class Reporter:
    """Read-only rollups over the registry and the reclaim audit log."""

    def __init__(self, registry: Registry):
        self.registry = registry

    def generate_report(self, reclaimable_now_lamports: int = 0) -> RentReport:
        stats = self.registry.stats()
        by_type = {name: 0 for name in ACCOUNT_TYPES}
        for account in self.registry.list_accounts():
            by_type[account.account_type] = by_type.get(account.account_type, 0) + 1
        return RentReport(
            total_tracked_accounts=stats.total,
            active_accounts=stats.active,
            reclaimable_accounts=stats.reclaimable,
            reclaimed_accounts=stats.reclaimed,
            protected_accounts=stats.protected,
            total_rent_locked_lamports=stats.total_rent_locked,
            total_rent_reclaimed_lamports=stats.total_rent_reclaimed,
            reclaimable_now_lamports=reclaimable_now_lamports,
            accounts_by_type=by_type,
        )

    def history(self, limit: int = 10) -> List[ReclaimHistoryEntry]:
        return self.registry.list_history(limit=limit)

    def export(self, history_limit: int = 1000) -> RentReportExport:
        report = self.generate_report()
        return RentReportExport(
            report=report,
            total_rent_locked_sol=lamports_to_sol(report.total_rent_locked_lamports),
            total_rent_reclaimed_sol=lamports_to_sol(report.total_rent_reclaimed_lamports),
            history=self.registry.list_history(limit=history_limit),
        )

    def export_json(self, history_limit: int = 1000) -> str:
        return self.export(history_limit).model_dump_json(indent=2)
