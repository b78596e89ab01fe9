from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Numeric, String, func

from savings_gateway.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    username = Column(String, unique=True, nullable=False)
    face_descriptor = Column(JSON, nullable=True)                   # 128-float embedding
    balance = Column(Numeric(12, 2), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Payment(Base):
    __tablename__ = "payments"

    payment_id = Column(String, primary_key=True)                   # m_payment_id sent to the gateway
    user_id = Column(String, index=True, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String, nullable=False, default="pending")      # pending | completed
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)


class Transaction(Base):
    """Append-only ledger entry, one per accepted notification."""

    __tablename__ = "transactions"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, index=True, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)                 # signed; deposits are positive
    type = Column(String, nullable=False)
    status = Column(String, nullable=False)
    payment_id = Column(String, index=True, nullable=True)
    reference = Column(String, nullable=True)                       # gateway pf_payment_id
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
