import logging
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import sessionmaker

from vacuum.core.database import create_db_engine, create_session_factory, init_schema, session_scope
from vacuum.models import ProtectedAccount, ReclaimHistory, TrackedAccount
from vacuum.models.accounts import LOCKED_STATUSES
from vacuum.schemas.accounts import (
    AccountStats,
    ProtectionEntry,
    ReclaimHistoryEntry,
    TrackedAccountView,
)

logger = logging.getLogger(__name__)

_UNSET = object()


class Registry:
    """Persistent store of tracked accounts, reclaim history and the whitelist.

    Rows are keyed by account address. Every method opens its own short
    transaction and returns detached snapshots, never live ORM objects.
    """

    def __init__(self, session_factory: sessionmaker):
        self._factory = session_factory

    @classmethod
    def open(cls, url: str) -> "Registry":
        engine = create_db_engine(url)
        init_schema(engine)
        return cls(create_session_factory(engine))

    def session(self):
        return session_scope(self._factory)

    # -------------------------------------------------------- tracked accounts

    def upsert_account(
        self,
        address: str,
        *,
        account_type: str = "unknown",
        rent_lamports: int = 0,
        owner: Optional[str] = None,
        mint: Optional[str] = None,
        status: str = "active",
        sponsor_tx: Optional[str] = None,
        operator_id: Optional[int] = None,
    ) -> TrackedAccountView:
        """Insert a tracked account, or refresh the mutable fields of an existing one.

        On conflict type, rent, owner, mint, status and the check time are
        refreshed; a protected row keeps its status and the sponsor reference
        of the existing row is kept.
        """
        now = datetime.utcnow()
        with self.session() as session:
            stmt = sqlite_insert(TrackedAccount).values(
                address=address,
                account_type=account_type,
                rent_lamports=rent_lamports,
                owner=owner,
                mint=mint,
                status=status,
                sponsor_tx=sponsor_tx,
                operator_id=operator_id,
                created_at=now,
                last_checked_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[TrackedAccount.address],
                set_={
                    "account_type": stmt.excluded.account_type,
                    "rent_lamports": stmt.excluded.rent_lamports,
                    "owner": stmt.excluded.owner,
                    "mint": stmt.excluded.mint,
                    "status": case(
                        (TrackedAccount.status == "protected", TrackedAccount.status),
                        else_=stmt.excluded.status,
                    ),
                    "last_checked_at": now,
                },
            )
            session.execute(stmt)
            row = session.execute(select(TrackedAccount).where(TrackedAccount.address == address)).scalar_one()
            return TrackedAccountView.model_validate(row)

    def add_account_if_missing(
        self,
        address: str,
        *,
        account_type: str = "unknown",
        rent_lamports: int = 0,
        owner: Optional[str] = None,
        mint: Optional[str] = None,
        status: str = "active",
        sponsor_tx: Optional[str] = None,
        operator_id: Optional[int] = None,
    ) -> Tuple[TrackedAccountView, bool]:
        """Insert unless already tracked; returns ``(row, created)``."""
        with self.session() as session:
            stmt = sqlite_insert(TrackedAccount).values(
                address=address,
                account_type=account_type,
                rent_lamports=rent_lamports,
                owner=owner,
                mint=mint,
                status=status,
                sponsor_tx=sponsor_tx,
                operator_id=operator_id,
            ).prefix_with("OR IGNORE")
            result = session.execute(stmt)
            row = session.execute(select(TrackedAccount).where(TrackedAccount.address == address)).scalar_one()
            return TrackedAccountView.model_validate(row), bool(result.rowcount)

    def get_account(self, address: str) -> Optional[TrackedAccountView]:
        with self.session() as session:
            row = session.execute(
                select(TrackedAccount).where(TrackedAccount.address == str(address))
            ).scalar_one_or_none()
            return TrackedAccountView.model_validate(row) if row else None

    def list_accounts(
        self,
        status: Optional[str] = None,
        exclude_statuses: Iterable[str] = (),
    ) -> List[TrackedAccountView]:
        with self.session() as session:
            stmt = select(TrackedAccount).order_by(TrackedAccount.created_at.desc(), TrackedAccount.id.desc())
            if status:
                stmt = stmt.where(TrackedAccount.status == status)
            excluded = list(exclude_statuses)
            if excluded:
                stmt = stmt.where(TrackedAccount.status.not_in(excluded))
            rows = session.execute(stmt).scalars().all()
            return [TrackedAccountView.model_validate(row) for row in rows]

    def update_account_state(
        self,
        address: str,
        *,
        status: Optional[str] = None,
        rent_lamports: Optional[int] = None,
        last_activity_at=_UNSET,
    ) -> bool:
        """Atomically update status and/or snapshot fields; touches ``last_checked_at``."""
        values = {"last_checked_at": datetime.utcnow()}
        if status is not None:
            values["status"] = status
        if rent_lamports is not None:
            values["rent_lamports"] = rent_lamports
        if last_activity_at is not _UNSET:
            values["last_activity_at"] = last_activity_at
        with self.session() as session:
            result = session.execute(
                update(TrackedAccount).where(TrackedAccount.address == str(address)).values(**values)
            )
            return bool(result.rowcount)

    def update_status(self, address: str, status: str) -> bool:
        return self.update_account_state(address, status=status)

    def delete_account(self, address: str) -> bool:
        with self.session() as session:
            result = session.execute(delete(TrackedAccount).where(TrackedAccount.address == str(address)))
            return bool(result.rowcount)

    def stats(self) -> AccountStats:
        with self.session() as session:
            row = session.execute(
                select(
                    func.count(),
                    func.sum(case((TrackedAccount.status == "active", 1), else_=0)),
                    func.sum(case((TrackedAccount.status == "reclaimable", 1), else_=0)),
                    func.sum(case((TrackedAccount.status == "reclaimed", 1), else_=0)),
                    func.sum(case((TrackedAccount.status == "protected", 1), else_=0)),
                    func.sum(
                        case(
                            (TrackedAccount.status.in_(LOCKED_STATUSES), TrackedAccount.rent_lamports),
                            else_=0,
                        )
                    ),
                ).select_from(TrackedAccount)
            ).one()
            reclaimed_total = session.execute(
                select(func.coalesce(func.sum(ReclaimHistory.amount_reclaimed), 0))
            ).scalar_one()
        total, active, reclaimable, reclaimed, protected, locked = row
        return AccountStats(
            total=total or 0,
            active=active or 0,
            reclaimable=reclaimable or 0,
            reclaimed=reclaimed or 0,
            protected=protected or 0,
            total_rent_locked=locked or 0,
            total_rent_reclaimed=reclaimed_total or 0,
        )

    # --------------------------------------------------------- reclaim history

    def add_history(
        self,
        address: str,
        amount_reclaimed: int,
        tx_signature: str,
        reason: str,
        operator_id: Optional[int] = None,
    ) -> ReclaimHistoryEntry:
        with self.session() as session:
            entry = ReclaimHistory(
                account_address=str(address),
                amount_reclaimed=amount_reclaimed,
                tx_signature=tx_signature,
                reason=reason,
                operator_id=operator_id,
            )
            session.add(entry)
            session.flush()
            session.refresh(entry)
            return ReclaimHistoryEntry.model_validate(entry)

    def list_history(self, limit: int = 100, address: Optional[str] = None) -> List[ReclaimHistoryEntry]:
        with self.session() as session:
            stmt = select(ReclaimHistory).order_by(ReclaimHistory.reclaimed_at.desc(), ReclaimHistory.id.desc())
            if address:
                stmt = stmt.where(ReclaimHistory.account_address == str(address))
            rows = session.execute(stmt.limit(limit)).scalars().all()
            return [ReclaimHistoryEntry.model_validate(row) for row in rows]

    # --------------------------------------------------------------- whitelist

    def protect(self, address: str, reason: str = "Manual protection") -> ProtectionEntry:
        address = str(address)
        with self.session() as session:
            entry = session.get(ProtectedAccount, address)
            if entry:
                entry.reason = reason
            else:
                entry = ProtectedAccount(address=address, reason=reason, added_at=datetime.utcnow())
                session.add(entry)
            session.execute(
                update(TrackedAccount).where(TrackedAccount.address == address).values(status="protected")
            )
            session.flush()
            logger.info("Protected %s (%s)", address, reason)
            return ProtectionEntry.model_validate(entry)

    def unprotect(self, address: str) -> bool:
        address = str(address)
        with self.session() as session:
            result = session.execute(delete(ProtectedAccount).where(ProtectedAccount.address == address))
            session.execute(
                update(TrackedAccount)
                .where(TrackedAccount.address == address, TrackedAccount.status == "protected")
                .values(status="active")
            )
            removed = bool(result.rowcount)
        if removed:
            logger.info("Removed protection for %s", address)
        return removed

    def is_protected(self, address: str) -> bool:
        with self.session() as session:
            return session.get(ProtectedAccount, str(address)) is not None

    def list_protected(self) -> List[ProtectionEntry]:
        with self.session() as session:
            rows = session.execute(select(ProtectedAccount).order_by(ProtectedAccount.added_at)).scalars().all()
            return [ProtectionEntry.model_validate(row) for row in rows]
