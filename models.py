from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class AuthProvider(str, Enum):
    credentials = "credentials"
    google = "google"


class WalletType(str, Enum):
    ewallet = "EWALLET"
    bank = "BANK"
    cash = "CASH"
    other = "OTHER"


WALLET_TYPE_ENUM = SAEnum(
    WalletType,
    name="wallettype",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)

AUTH_PROVIDER_ENUM = SAEnum(
    AuthProvider,
    name="authprovider",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[Optional[str]] = mapped_column(String(120))
    image: Mapped[Optional[str]] = mapped_column(String(500))
    password_hash: Mapped[Optional[str]] = mapped_column(String(255))
    provider: Mapped[Optional[AuthProvider]] = mapped_column(AUTH_PROVIDER_ENUM)
    provider_account_id: Mapped[Optional[str]] = mapped_column(String(255))
    email_verified: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    savings_goals: Mapped[list["SavingsGoal"]] = relationship(
        "SavingsGoal",
        back_populates="user",
        cascade="all, delete-orphan",
    )


class Wallet(Base):
    __tablename__ = "wallets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slug: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    logo: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[WalletType] = mapped_column(WALLET_TYPE_ENUM, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )


class SavingsGoal(Base, TimestampMixin):
    __tablename__ = "savings_goals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    wallet_id: Mapped[int] = mapped_column(ForeignKey("wallets.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False, default="Savings")
    target_amount_cents: Mapped[Optional[int]] = mapped_column(BigInteger)
    current_amount_cents: Mapped[int] = mapped_column(
        BigInteger, default=0, nullable=False
    )
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="savings_goals")
    wallet: Mapped["Wallet"] = relationship("Wallet")
    entries: Mapped[list["SavingsEntry"]] = relationship(
        "SavingsEntry",
        back_populates="savings_goal",
        cascade="all, delete-orphan",
    )

    __table_args__ = (Index("ix_savings_goal_user_created", "user_id", "created_at"),)


class SavingsEntry(Base):
    __tablename__ = "savings_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    savings_goal_id: Mapped[int] = mapped_column(
        ForeignKey("savings_goals.id", ondelete="CASCADE"), nullable=False
    )
    # signed: deposits positive, withdrawals negative
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    note: Mapped[Optional[str]] = mapped_column(String(200))
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    savings_goal: Mapped["SavingsGoal"] = relationship(
        "SavingsGoal", back_populates="entries"
    )

    __table_args__ = (
        Index("ix_savings_entry_goal_created", "savings_goal_id", "created_at"),
    )


class EmailVerificationToken(Base):
    __tablename__ = "email_verification_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )


class PasswordResetToken(Base):
    __tablename__ = "password_reset_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    code: Mapped[str] = mapped_column(String(6), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )


class SupportHeart(Base):
    __tablename__ = "support_hearts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
