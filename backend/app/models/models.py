from typing import Union, Literal
from uuid import uuid4
from datetime import datetime
from enum import Enum

from pydantic import BaseModel
from sqlalchemy import (
    Column, String, DateTime, Float, ForeignKey, Date, CheckConstraint, PrimaryKeyConstraint
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

# --- ENUMS ---

class UserRole(str, Enum):
    PARENT = "parent"
    CHILD = "child"

class ExpenseCategory(str, Enum):
    FOOD = "food"
    EDUCATION = "education"
    TRANSPORT = "transport"
    ENTERTAINMENT = "entertainment"
    CLOTHING = "clothing"
    HEALTH = "health"
    GIFTS = "gifts"
    OTHER = "other"

class Attribution(str, Enum):
    """Which side of the household an expense counts against"""
    PARENT = "parent"
    CHILD = "child"

class BudgetPeriod(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"

class RequestStatus(str, Enum):
    """Status of a money request"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

class Timeframe(str, Enum):
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    CUSTOM = "custom"
    ALL = "all"

# --- EXPENSE OWNERSHIP ---

class ParentOwner(BaseModel):
    kind: Literal["parent"] = "parent"

class ChildOwner(BaseModel):
    kind: Literal["child"] = "child"
    child_id: str

ExpenseOwner = Union[ParentOwner, ChildOwner]

# --- SQLALCHEMY MODELS ---

class AuthPrincipal(Base):
    """Identity provider record: credentials live here, never on User"""
    __tablename__ = "auth_principals"
    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    email = Column(String, unique=True, nullable=False)
    password_hash = Column(String, nullable=False)
    display_name = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

class AuthToken(Base):
    __tablename__ = "auth_tokens"
    token = Column(String, primary_key=True)
    principal_id = Column(String, ForeignKey("auth_principals.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

class User(Base):
    __tablename__ = "users"
    id = Column(String, primary_key=True)  # Same id as the AuthPrincipal
    email = Column(String, unique=True, nullable=False)
    display_name = Column(String, nullable=True)
    role = Column(String, nullable=False)
    parent_id = Column(String, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    memberships = relationship(
        "ChildMembership", foreign_keys="ChildMembership.parent_id", back_populates="parent"
    )

class ChildMembership(Base):
    """Parent-side record of a child, independent of the child's own User row"""
    __tablename__ = "children"
    __table_args__ = (PrimaryKeyConstraint("parent_id", "child_id"),)

    parent_id = Column(String, ForeignKey("users.id"), nullable=False)
    child_id = Column(String, nullable=False)
    email = Column(String, nullable=False)
    display_name = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    parent = relationship("User", foreign_keys=[parent_id], back_populates="memberships")

class Expense(Base):
    __tablename__ = "expenses"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        CheckConstraint("attribution IN ('parent', 'child')", name="ck_expenses_attribution"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    owner_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    attribution = Column(String, nullable=False)
    on_behalf_of_parent_id = Column(String, ForeignKey("users.id"), nullable=True)
    amount = Column(Float, nullable=False)
    category = Column(String, nullable=True)
    description = Column(String, nullable=False, default="")
    date = Column(Date, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.utcnow)

    @property
    def owner(self) -> ExpenseOwner:
        if self.attribution == Attribution.PARENT.value:
            return ParentOwner()
        return ChildOwner(child_id=self.owner_id)

    @property
    def attributed_to_parent(self) -> bool:
        return self.attribution == Attribution.PARENT.value

    @property
    def attributed_to_child(self) -> bool:
        return self.attribution == Attribution.CHILD.value

class Budget(Base):
    __tablename__ = "budgets"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_budgets_amount_positive"),
        CheckConstraint("start_date <= end_date", name="ck_budgets_date_order"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    owner_parent_id = Column(String, ForeignKey("users.id"), nullable=False)
    child_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    period = Column(String, nullable=False)  # weekly, monthly, yearly
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.utcnow)

class MoneyRequest(Base):
    """Child-to-parent request for funds"""
    __tablename__ = "money_requests"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_money_requests_amount_positive"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    child_id = Column(String, ForeignKey("users.id"), nullable=False)
    parent_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    reason = Column(String, nullable=False)
    status = Column(String, default=RequestStatus.PENDING.value, nullable=False)
    response_message = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True)
