from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Integer, String

from vacuum.core.database import Base


class ReclaimHistory(Base):
    """Append-only audit row, one per executed close."""

    __tablename__ = "reclaim_history"

    id = Column(Integer, primary_key=True, index=True)
    account_address = Column(String(64), nullable=False, index=True)
    amount_reclaimed = Column(BigInteger, nullable=False)
    tx_signature = Column(String(128), nullable=False)
    reason = Column(String(16))
    operator_id = Column(Integer, ForeignKey("operators.id"), nullable=True)
    reclaimed_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
