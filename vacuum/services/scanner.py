import logging
from typing import Any, Dict, Iterator, List, Optional

from vacuum.core.errors import AccountNotFoundError
from vacuum.core.helpers import format_sol, shorten_address
from vacuum.models.accounts import ACCOUNT_STATUSES, ACCOUNT_TYPES, LOCKED_STATUSES
from vacuum.schemas.accounts import TrackedAccountView, TrackingStats
from vacuum.services.context import VacuumContext
from vacuum.services.solana_client import detect_account_type

logger = logging.getLogger(__name__)

ACCOUNT_CREATION_TYPES = {"createAccount", "initializeAccount", "initializeAccount2", "initializeAccount3"}


def created_account_addresses(transaction: Dict[str, Any]) -> Iterator[str]:
    """Yield addresses created by the inner instructions of a jsonParsed transaction."""
    meta = transaction.get("meta") or {}
    for inner in meta.get("innerInstructions") or []:
        for instruction in inner.get("instructions") or []:
            parsed = instruction.get("parsed")
            if not isinstance(parsed, dict) or parsed.get("type") not in ACCOUNT_CREATION_TYPES:
                continue
            info = parsed.get("info") or {}
            address = info.get("account") or info.get("newAccount")
            if address:
                yield address


class AccountScanner:
    """Populates the registry from ledger truth."""

    def __init__(self, ctx: VacuumContext):
        self.ctx = ctx
        self.ledger = ctx.ledger
        self.registry = ctx.registry

    async def scan_owned_accounts(self) -> List[TrackedAccountView]:
        """Track every SPL token account owned by the operator."""
        owner = self.ctx.operator_address
        logger.info("Scanning operator token accounts for %s", shorten_address(owner))
        token_accounts = await self.ledger.fetch_owned_token_accounts(owner)
        tracked: List[TrackedAccountView] = []
        for item in token_accounts:
            try:
                lamports = item.lamports
                if lamports is None:
                    info = await self.ledger.fetch_account_info(item.address)
                    lamports = info.lamports if info else 0
                account = self.registry.upsert_account(
                    item.address,
                    account_type="token_account",
                    rent_lamports=lamports,
                    owner=item.owner,
                    mint=item.mint,
                    status="reclaimable" if item.amount == 0 else "active",
                    operator_id=self.ctx.operator_id,
                )
            except Exception:
                logger.warning("Failed to track %s", item.address, exc_info=True)
                continue
            tracked.append(account)
            logger.debug(
                "Tracked: %s | Balance: %s | Rent: %s",
                shorten_address(item.address),
                item.ui_amount if item.ui_amount is not None else item.amount,
                format_sol(lamports),
            )
        logger.info("Scanned %d token accounts", len(tracked))
        return tracked

    async def scan_from_signatures(self, signatures: List[str]) -> List[TrackedAccountView]:
        """Track accounts created by the given sponsorship transactions."""
        logger.info("Scanning %d transactions for sponsored accounts...", len(signatures))
        tracked: List[TrackedAccountView] = []
        for signature in signatures:
            try:
                transaction = await self.ledger.fetch_parsed_transaction(signature)
                if not transaction or not transaction.get("meta"):
                    continue
                for address in created_account_addresses(transaction):
                    if self.registry.get_account(address):
                        continue
                    info = await self.ledger.fetch_account_info(address)
                    if not info:
                        continue
                    account_type = detect_account_type(info)
                    account, created = self.registry.add_account_if_missing(
                        address,
                        account_type=account_type,
                        rent_lamports=info.lamports,
                        sponsor_tx=signature,
                        operator_id=self.ctx.operator_id,
                    )
                    if created:
                        tracked.append(account)
                        logger.debug(
                            "Found sponsored account: %s | Type: %s | Rent: %s",
                            shorten_address(address),
                            account_type,
                            format_sol(info.lamports),
                        )
            except Exception:
                logger.warning("Error parsing transaction %s", shorten_address(signature), exc_info=True)
        logger.info("Found %d new sponsored accounts", len(tracked))
        return tracked

    async def track_account(self, address: str, sponsor_tx: Optional[str] = None) -> TrackedAccountView:
        existing = self.registry.get_account(address)
        if existing:
            logger.debug("Account already tracked: %s", address)
            return existing
        info = await self.ledger.fetch_account_info(address)
        if not info:
            raise AccountNotFoundError(str(address))
        account_type = detect_account_type(info)
        account, _ = self.registry.add_account_if_missing(
            str(address),
            account_type=account_type,
            rent_lamports=info.lamports,
            sponsor_tx=sponsor_tx,
            operator_id=self.ctx.operator_id,
        )
        logger.info("Now tracking: %s | Type: %s | Rent: %s", address, account_type, format_sol(info.lamports))
        return account

    def get_stats(self) -> TrackingStats:
        by_type = {name: 0 for name in ACCOUNT_TYPES}
        by_status = {name: 0 for name in ACCOUNT_STATUSES}
        locked = 0
        accounts = self.registry.list_accounts()
        for account in accounts:
            by_type[account.account_type] = by_type.get(account.account_type, 0) + 1
            by_status[account.status] = by_status.get(account.status, 0) + 1
            if account.status in LOCKED_STATUSES:
                locked += account.rent_lamports
        return TrackingStats(
            total_tracked=len(accounts),
            by_type=by_type,
            by_status=by_status,
            total_rent_locked=locked,
        )

    async def refresh_activity(self, addresses: Optional[List[str]] = None) -> int:
        """Record the latest on-chain activity time for tracked accounts.

        Defaults to every account not yet reclaimed. Returns the number of
        rows updated.
        """
        if addresses is None:
            addresses = [
                account.address
                for account in self.registry.list_accounts(exclude_statuses=("reclaimed",))
            ]
        updated = 0
        for address in addresses:
            try:
                last_activity = await self.ledger.fetch_last_activity(address)
            except Exception:
                logger.warning("Failed to fetch activity for %s", shorten_address(address), exc_info=True)
                continue
            if last_activity is None:
                continue
            if self.registry.update_account_state(address, last_activity_at=last_activity):
                updated += 1
        logger.info("Refreshed activity for %d of %d accounts", updated, len(addresses))
        return updated
