from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint

from vacuum.core.database import Base

ACCOUNT_TYPES = ("token_account", "ata", "pda", "unknown")
ACCOUNT_STATUSES = ("active", "reclaimable", "reclaimed", "protected")

# statuses whose rent counts as locked; protected rent is excluded from reclaim totals
LOCKED_STATUSES = ("active", "reclaimable")


class TrackedAccount(Base):
    __tablename__ = "tracked_accounts"
    __table_args__ = (
        UniqueConstraint("address", name="uq_tracked_account_address"),
    )

    id = Column(Integer, primary_key=True, index=True)
    address = Column(String(64), nullable=False, index=True)
    account_type = Column(String(16), default="unknown", nullable=False, index=True)
    sponsor_tx = Column(String(128))
    rent_lamports = Column(BigInteger, default=0, nullable=False)
    owner = Column(String(64))
    mint = Column(String(64))
    status = Column(String(16), default="active", nullable=False, index=True)
    operator_id = Column(Integer, ForeignKey("operators.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_checked_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_activity_at = Column(DateTime)
