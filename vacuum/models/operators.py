from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint

from vacuum.core.database import Base


class Operator(Base):
    __tablename__ = "operators"
    __table_args__ = (UniqueConstraint("name", name="uq_operator_name"),)

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(64), nullable=False)
    keypair_path = Column(String(512), nullable=False)
    treasury_address = Column(String(64), nullable=False)
    is_default = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
