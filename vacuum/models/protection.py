from datetime import datetime

from sqlalchemy import Column, DateTime, String, Text

from vacuum.core.database import Base


class ProtectedAccount(Base):
    __tablename__ = "protected_accounts"

    address = Column(String(64), primary_key=True)
    reason = Column(Text)
    added_at = Column(DateTime, default=datetime.utcnow, nullable=False)
