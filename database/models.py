from datetime import datetime

from sqlalchemy import Column, Integer, String, Float, Date, DateTime, ForeignKey, JSON, Index
from sqlalchemy.orm import relationship
from database.database import Base


def utcnow():
    return datetime.utcnow()


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="user")  # 'user' ou 'admin'
    created_at = Column(DateTime, nullable=False, default=utcnow)

    transactions = relationship(
        "TransactionModel",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class TransactionModel(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(10), nullable=False)  # 'income' ou 'expense'
    category = Column(String(100), nullable=False)
    amount = Column(Float, nullable=False)
    description = Column(String(200), nullable=False)
    date = Column(Date, nullable=False)
    tags = Column(JSON, nullable=False, default=list)
    attachments = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    user = relationship("UserModel", back_populates="transactions")

    __table_args__ = (
        Index("ix_transactions_user_date", "user_id", "date"),
        Index("ix_transactions_user_type", "user_id", "type"),
        Index("ix_transactions_user_category", "user_id", "category"),
    )
