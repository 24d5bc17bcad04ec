from sqlalchemy import Column, Integer, String, Float, DateTime, Boolean, JSON, ForeignKey, Text
from database import Base
from datetime import datetime

from models.enums import (
    AccountType, Category, ComplianceStatus, PolicyStatus, ViolationSeverity, ViolationStatus
)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    account_type = Column(String, default=AccountType.PERSONAL.value, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    amount = Column(Float, nullable=False)  # negative = expense
    date = Column(DateTime, index=True, nullable=False, default=datetime.utcnow)
    merchant = Column(String, nullable=False)
    description = Column(String, default="")
    category = Column(String, index=True, default=Category.OTHER.value, nullable=False)

    has_anomaly = Column(Boolean, default=False)
    anomaly_reason = Column(String, nullable=True)
    anomaly_comparison = Column(String, nullable=True)
    # set once a user confirms a flagged transaction is expected
    anomaly_reviewed = Column(Boolean, default=False)

    policy_status = Column(String, default=ComplianceStatus.COMPLIANT.value)
    policy_rule = Column(String, nullable=True)

    is_deleted = Column(Boolean, default=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class Policy(Base):
    __tablename__ = "policies"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    title = Column(String, nullable=False)
    description = Column(String, nullable=False)
    daily_limits = Column(JSON, nullable=False, default=dict)      # {category: amount}
    restricted_categories = Column(JSON, nullable=False, default=list)
    approval_required = Column(JSON, nullable=True)                # None -> default list
    status = Column(String, default=PolicyStatus.ACTIVE.value, index=True)
    effective_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    is_deleted = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class PolicyViolation(Base):
    __tablename__ = "policy_violations"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    policy_id = Column(Integer, ForeignKey("policies.id"), nullable=False)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=True)
    violation_type = Column(String, nullable=False)
    merchant = Column(String, nullable=False)
    amount = Column(Float, nullable=False)
    date = Column(DateTime, nullable=False)
    rule_violated = Column(String, nullable=False)
    severity = Column(String, default=ViolationSeverity.MINOR.value)
    status = Column(String, default=ViolationStatus.NEEDS_REVIEW.value, index=True)
    justification = Column(Text, nullable=True)
    justification_date = Column(DateTime, nullable=True)
    review_notes = Column(Text, nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class ChatHistory(Base):
    __tablename__ = "chat_history"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    message = Column(Text, nullable=False)
    response = Column(Text, nullable=False)
    category = Column(String, default="general")
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
