"""Persists PolicyViolation rows as a best-effort side effect of compliance checks."""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from core.logger import get_logger
from models.enums import ViolationSeverity, ViolationStatus, ViolationType
from models.models import PolicyViolation
from models.schemas import PolicyCreate
from services import policy_service
from services.policy_resolver import EffectivePolicy, get_active_policy

logger = get_logger("violation_recorder")


@dataclass
class RecordOutcome:
    violation: Optional[PolicyViolation] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _ensure_policy_id(db: Session, user_id: int, rules: EffectivePolicy) -> int:
    if rules.policy_id is not None:
        return rules.policy_id

    existing = get_active_policy(db, user_id)
    if existing is not None:
        return existing.id

    logger.info("Creating default policy for business user %s", user_id)
    stored = rules.to_storage()
    policy = policy_service.create_policy(db, user_id, PolicyCreate(
        title="Default Business Policy",
        description="Auto-generated default policy for business account",
        daily_limits=stored["daily_limits"],
        restricted_categories=stored["restricted_categories"],
        approval_required=stored["approval_required"]
    ))
    return policy.id


def record_violation(
    db: Session,
    user_id: int,
    rules: EffectivePolicy,
    transaction,
    violation_type: ViolationType,
    severity: ViolationSeverity,
    rule: str
) -> RecordOutcome:
    """Insert a violation for ``transaction``. Any failure comes back in the outcome, never raised.

    Not idempotent: checking the same transaction twice records two rows.
    """
    try:
        policy_id = _ensure_policy_id(db, user_id, rules)
        violation = PolicyViolation(
            user_id=user_id,
            policy_id=policy_id,
            transaction_id=transaction.id,
            violation_type=violation_type.value,
            merchant=transaction.merchant,
            amount=abs(transaction.amount),
            date=transaction.date,
            rule_violated=rule,
            severity=severity.value,
            status=ViolationStatus.NEEDS_REVIEW.value
        )
        db.add(violation)
        db.commit()
        db.refresh(violation)
    except Exception as e:
        db.rollback()
        return RecordOutcome(error=e)

    logger.info(
        "Recorded %s violation %s for transaction %s",
        violation_type.value, violation.id, transaction.id
    )
    return RecordOutcome(violation=violation)
