import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from solders.keypair import Keypair

from vacuum.core.config import Settings
from vacuum.schemas.accounts import OperatorView
from vacuum.services.registry import Registry
from vacuum.services.solana_client import SolanaLedger, load_keypair

logger = logging.getLogger(__name__)


@dataclass
class VacuumContext:
    """Everything a pipeline stage needs: config, ledger access, registry, signer."""

    settings: Settings
    ledger: SolanaLedger
    registry: Registry
    operator: Keypair
    operator_id: Optional[int] = None

    @property
    def operator_address(self) -> str:
        return str(self.operator.pubkey())

    @property
    def treasury_address(self) -> str:
        return self.settings.treasury_address

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        operator: Optional[Keypair] = None,
        registry: Optional[Registry] = None,
        ledger: Optional[SolanaLedger] = None,
    ) -> "VacuumContext":
        """Build a context; a missing or malformed keypair fails here, before any work."""
        if operator is None:
            operator = load_keypair(settings.operator_keypair_path)
        if registry is None:
            settings.ensure_dirs()
            registry = Registry.open(settings.database_url)
        ledger = ledger or SolanaLedger.from_settings(settings)
        logger.debug("Operator address: %s", operator.pubkey())
        return cls(settings=settings, ledger=ledger, registry=registry, operator=operator)

    def for_operator(self, operator: OperatorView) -> "VacuumContext":
        """Context signing with a registered operator's key and paying out to its treasury."""
        settings = self.settings.model_copy(
            update={
                "treasury_address": operator.treasury_address,
                "operator_keypair_path": Path(operator.keypair_path),
            }
        )
        return VacuumContext(
            settings=settings,
            ledger=self.ledger,
            registry=self.registry,
            operator=load_keypair(operator.keypair_path),
            operator_id=operator.id,
        )

    async def aclose(self) -> None:
        await self.ledger.aclose()
