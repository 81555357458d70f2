import logging
from typing import List, Optional, Sequence, Union

from solders.keypair import Keypair

from vacuum.core.config import ClientOverrides, Settings, apply_overrides, get_settings, load_settings
from vacuum.core.errors import VacuumError
from vacuum.core.logging import setup_logging
from vacuum.schemas.accounts import ProtectionEntry, ReclaimHistoryEntry, TrackedAccountView, TrackingStats
from vacuum.schemas.detection import DetectionResult, ReclaimableSummary
from vacuum.schemas.reclaim import ReclaimOptions, ReclaimPreview, ReclaimResult
from vacuum.schemas.reports import KoraNodeStatus, RentReport
from vacuum.services import kora, operators
from vacuum.services.context import VacuumContext
from vacuum.services.detector import ReclaimDetector
from vacuum.services.reclaimer import RentReclaimer
from vacuum.services.registry import Registry
from vacuum.services.reporter import Reporter
from vacuum.services.scanner import AccountScanner
from vacuum.services.solana_client import SolanaLedger

logger = logging.getLogger(__name__)

AccountRef = Union[str, TrackedAccountView]


class VacuumClient:
    """Programmatic entry point: scan, check and reclaim for one operator.

    Settings come from the environment (or ``settings``) with ``overrides``
    applied on top. A missing treasury or keypair fails here, before any
    ledger call.

        async with VacuumClient(overrides=ClientOverrides(dry_run=True)) as client:
            await client.scan()
            detections = await client.check()
            results = await client.reclaim(detections)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        overrides: Optional[ClientOverrides] = None,
        *,
        operator: Optional[Keypair] = None,
        registry: Optional[Registry] = None,
        ledger: Optional[SolanaLedger] = None,
        configure_logging: bool = True,
    ):
        if settings is None:
            if overrides and overrides.treasury:
                settings = load_settings(treasury_address=overrides.treasury)
            else:
                settings = get_settings()
        self.settings = apply_overrides(settings, overrides)
        if configure_logging:
            setup_logging(self.settings.log_level)
        self._bind(VacuumContext.from_settings(self.settings, operator=operator, registry=registry, ledger=ledger))

    def _bind(self, ctx: VacuumContext) -> None:
        self.ctx = ctx
        self.settings = ctx.settings
        self.scanner = AccountScanner(ctx)
        self.detector = ReclaimDetector(ctx)
        self.reclaimer = RentReclaimer(ctx)
        self.reporter = Reporter(ctx.registry)

    @property
    def operator_address(self) -> str:
        return self.ctx.operator_address

    def use_operator(self, name: Optional[str] = None) -> None:
        """Switch to a registered operator (the default one when ``name`` is omitted)."""
        registry = self.ctx.registry
        record = (
            operators.get_operator_by_name(registry, name) if name else operators.get_default_operator(registry)
        )
        if record is None:
            raise VacuumError(f"Operator not found: {name}" if name else "No operators registered")
        self._bind(self.ctx.for_operator(record))
        logger.info("Using operator %s (%s)", record.name, self.ctx.operator_address)

    # ------------------------------------------------------------ scanning

    async def scan(self) -> List[TrackedAccountView]:
        return await self.scanner.scan_owned_accounts()

    async def scan_signatures(self, signatures: Sequence[str]) -> List[TrackedAccountView]:
        return await self.scanner.scan_from_signatures(list(signatures))

    async def track(self, address: str, sponsor_tx: Optional[str] = None) -> TrackedAccountView:
        return await self.scanner.track_account(address, sponsor_tx)

    async def refresh_activity(self) -> int:
        return await self.scanner.refresh_activity()

    def stats(self) -> TrackingStats:
        return self.scanner.get_stats()

    # ----------------------------------------------------------- detection

    async def check(self, accounts: Optional[Sequence[AccountRef]] = None) -> List[DetectionResult]:
        """Classify the given accounts, or every eligible tracked account."""
        if accounts is None:
            return await self.detector.find_all_reclaimable()
        addresses = [a.address if isinstance(a, TrackedAccountView) else str(a) for a in accounts]
        return await self.detector.check_accounts(addresses)

    async def get_reclaimable_summary(self) -> ReclaimableSummary:
        return await self.detector.get_reclaimable_summary()

    # ------------------------------------------------------------- reclaim

    async def reclaim(
        self, detections: List[DetectionResult], options: Optional[ReclaimOptions] = None
    ) -> List[ReclaimResult]:
        return await self.reclaimer.batch_reclaim(detections, options)

    def preview(self, detections: List[DetectionResult]) -> ReclaimPreview:
        return self.reclaimer.preview_reclaim(detections)

    # ------------------------------------------------- reporting/whitelist

    def report(self) -> RentReport:
        return self.reporter.generate_report()

    def history(self, limit: int = 10) -> List[ReclaimHistoryEntry]:
        return self.reporter.history(limit)

    def protect(self, address: str, reason: str = "Manual protection") -> ProtectionEntry:
        return self.ctx.registry.protect(address, reason)

    def unprotect(self, address: str) -> bool:
        return self.ctx.registry.unprotect(address)

    def list_protected(self) -> List[ProtectionEntry]:
        return self.ctx.registry.list_protected()

    async def node_status(self) -> KoraNodeStatus:
        return await kora.get_node_status(self.settings.kora_node_url)

    async def aclose(self) -> None:
        await self.ctx.aclose()

    async def __aenter__(self) -> "VacuumClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
