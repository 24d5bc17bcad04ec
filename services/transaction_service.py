"""Transaction CRUD with anomaly flagging and policy checks on every write."""
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from core.exceptions import NotFoundError
from core.logger import get_logger
from models.enums import Category, ComplianceStatus
from models.models import Transaction, User
from models.schemas import ComplianceResult, TransactionCreate, TransactionUpdate
from services import analysis_service
from services.policy_evaluator import PolicyEvaluator

logger = get_logger("transaction_service")

COMPLIANCE_FIELDS = ("amount", "category", "date")


def get_transactions(
    db: Session,
    user_id: int,
    category=None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    anomalies_only: bool = False,
    policy_status: Optional[ComplianceStatus] = None
) -> List[Transaction]:
    query = db.query(Transaction).filter(
        Transaction.user_id == user_id,
        Transaction.is_deleted.is_(False)
    )
    if category:
        query = query.filter(Transaction.category == getattr(category, "value", category))
    if start_date:
        query = query.filter(Transaction.date >= start_date)
    if end_date:
        query = query.filter(Transaction.date <= end_date)
    if anomalies_only:
        query = query.filter(Transaction.has_anomaly.is_(True))
    if policy_status:
        query = query.filter(Transaction.policy_status == ComplianceStatus(policy_status).value)
    return query.order_by(Transaction.date.desc(), Transaction.id.desc()).all()


def get_by_id(db: Session, transaction_id: int, user_id: int) -> Transaction:
    transaction = (
        db.query(Transaction)
        .filter(
            Transaction.id == transaction_id,
            Transaction.user_id == user_id,
            Transaction.is_deleted.is_(False)
        )
        .first()
    )
    if not transaction:
        raise NotFoundError("Transaction not found")
    return transaction


def _apply_compliance(db: Session, transaction: Transaction, user: User) -> ComplianceResult:
    result = PolicyEvaluator.check_compliance(
        db,
        transaction,
        user.account_type,
        get_transactions(db, user.id),
        user.id
    )
    transaction.policy_status = result.status.value
    transaction.policy_rule = result.rule
    db.commit()
    db.refresh(transaction)
    return result


def flag_anomaly(db: Session, user_id: int, transaction: Transaction) -> None:
    # income is never flagged, whether by sign or by category
    if transaction.amount >= 0 or Category(transaction.category).is_income:
        return

    anomaly = analysis_service.check_new_transaction(db, user_id, transaction, expenses_only=True)
    if anomaly.is_anomaly:
        transaction.has_anomaly = True
        transaction.anomaly_reason = anomaly.reason
        transaction.anomaly_comparison = anomaly.comparison
        logger.info("New transaction flagged as %s anomaly", anomaly.severity.value)


def create(db: Session, user: User, data: TransactionCreate) -> Transaction:
    logger.info("Creating transaction for user %s (%s account)", user.id, user.account_type)
    transaction = Transaction(
        user_id=user.id,
        amount=data.amount,
        date=data.date or datetime.utcnow(),
        merchant=data.merchant,
        description=data.description,
        category=data.category.value
    )

    flag_anomaly(db, user.id, transaction)

    # saved first so the policy check can exclude it by id and link violations to it
    db.add(transaction)
    db.commit()
    db.refresh(transaction)

    result = _apply_compliance(db, transaction, user)
    logger.info("Transaction %s created (%s)", transaction.id, result.status.value)
    return transaction


def update(db: Session, transaction_id: int, user: User, data: TransactionUpdate) -> Transaction:
    transaction = get_by_id(db, transaction_id, user.id)
    changes = data.model_dump(exclude_unset=True, exclude_none=True)

    for key, value in changes.items():
        setattr(transaction, key, getattr(value, "value", value))
    db.commit()
    db.refresh(transaction)

    if any(key in changes for key in COMPLIANCE_FIELDS):
        _apply_compliance(db, transaction, user)

    logger.info("Transaction %s updated", transaction.id)
    return transaction


def delete(db: Session, transaction_id: int, user_id: int) -> Transaction:
    transaction = get_by_id(db, transaction_id, user_id)
    transaction.is_deleted = True
    db.commit()
    db.refresh(transaction)
    logger.info("Transaction %s deleted", transaction.id)
    return transaction


def mark_anomaly_normal(db: Session, transaction_id: int, user_id: int) -> Transaction:
    transaction = get_by_id(db, transaction_id, user_id)
    transaction.has_anomaly = False
    transaction.anomaly_reason = None
    transaction.anomaly_comparison = None
    transaction.anomaly_reviewed = True
    db.commit()
    db.refresh(transaction)
    return transaction


def check_compliance(db: Session, transaction_id: int, user: User) -> ComplianceResult:
    transaction = get_by_id(db, transaction_id, user.id)
    return PolicyEvaluator.check_compliance(
        db,
        transaction,
        user.account_type,
        get_transactions(db, user.id),
        user.id
    )
