"""
SQLAlchemy ORM Models
"""
from sqlalchemy import Column, String, Numeric, Date, DateTime, ForeignKey, Text, Integer, Index
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime
import enum

Base = declarative_base()


class AccountTypeEnum(str, enum.Enum):
    CHECKING = "checking"
    SAVINGS = "savings"
    CREDIT_CARD = "credit_card"
    LOAN = "loan"
    INVESTMENT = "investment"


class TransactionTypeEnum(str, enum.Enum):
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class Account(Base):
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    account_type = Column(String(32), nullable=False, default=AccountTypeEnum.CHECKING.value)
    institution_name = Column(String, nullable=True)
    balance = Column(Numeric(12, 2), nullable=False, default=0)
    currency_code = Column(String(3), nullable=False, default="BRL")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, onupdate=datetime.utcnow, nullable=True)

    # Relationships
    expenses = relationship("Expense", back_populates="account")
    transactions = relationship("Transaction", back_populates="account")


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(String(500), nullable=False)
    category = Column(String(100), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    is_synced_from_bank = Column(Integer, default=0, nullable=False)  # 0 = manual, 1 = bank sync
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=True)

    # Relationships
    account = relationship("Account", back_populates="expenses")

    __table_args__ = (
        Index("idx_expense_user_date", "user_id", "date"),
    )


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(String(500), nullable=False)
    category = Column(String(100), nullable=False, default="Outros", index=True)
    transaction_type = Column(String(16), nullable=False, default=TransactionTypeEnum.EXPENSE.value, index=True)
    date = Column(Date, nullable=False, index=True)
    merchant_name = Column(String, nullable=True)
    merchant_category = Column(String, nullable=True)
    payment_method = Column(String, nullable=True)  # PIX, TED, DOC, card...
    status = Column(String(16), nullable=False, default="completed")
    is_synced_from_bank = Column(Integer, default=0, nullable=False)

    # AI enrichment fields (overwritten on every enrichment)
    suggested_category = Column(String(100), nullable=True)
    tags = Column(Text, nullable=True)  # JSON array stored as text
    notes = Column(Text, nullable=True)
    is_recurring = Column(Integer, default=0, nullable=False)
    risk_level = Column(String(8), nullable=True)
    merchant_mcc = Column(String(8), nullable=True)
    pix_key = Column(String, nullable=True)
    end_to_end_id = Column(String, nullable=True)
    enriched_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=True)

    # Relationships
    account = relationship("Account", back_populates="transactions")

    __table_args__ = (
        Index("idx_transaction_user_date", "user_id", "date"),
    )
