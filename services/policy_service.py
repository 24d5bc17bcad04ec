"""Policy and violation records: creation, lookup, justification and review."""
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from core.exceptions import NotFoundError, ValidationError
from core.logger import get_logger
from models.enums import Category, PolicyStatus, ViolationStatus
from models.models import Policy, PolicyViolation
from models.schemas import PolicyCreate, PolicyUpdate
from services.policy_resolver import DEFAULT_DAILY_LIMITS, get_active_policy, merge_policy

logger = get_logger("policy_service")

REVIEW_DECISIONS = {ViolationStatus.APPROVED, ViolationStatus.DENIED, ViolationStatus.RESOLVED}


def _values(categories) -> List[str]:
    return [Category(c).value for c in categories]


def create_policy(db: Session, user_id: int, data: PolicyCreate) -> Policy:
    """Store a new active policy; any previously active policy becomes inactive."""
    deactivated = (
        db.query(Policy)
        .filter(
            Policy.user_id == user_id,
            Policy.status == PolicyStatus.ACTIVE.value,
            Policy.is_deleted.is_(False)
        )
        .update({Policy.status: PolicyStatus.INACTIVE.value}, synchronize_session=False)
    )
    if deactivated:
        logger.info("Deactivated %s existing policies for user %s", deactivated, user_id)

    daily_limits = {c.value: limit for c, limit in DEFAULT_DAILY_LIMITS.items()}
    daily_limits.update({Category(c).value: limit for c, limit in data.daily_limits.items()})

    policy = Policy(
        user_id=user_id,
        title=data.title or "Company Policy",
        description=data.description or "Company spending policy",
        daily_limits=daily_limits,
        restricted_categories=_values(data.restricted_categories),
        approval_required=_values(data.approval_required) if data.approval_required is not None else ["entertainment"],
        status=PolicyStatus.ACTIVE.value,
        effective_date=data.effective_date or datetime.utcnow(),
        is_deleted=False
    )
    db.add(policy)
    db.commit()
    db.refresh(policy)

    logger.info("Policy %s created for user %s", policy.id, user_id)
    return policy


def get_policies(db: Session, user_id: int, status: Optional[PolicyStatus] = None) -> List[Policy]:
    query = db.query(Policy).filter(Policy.user_id == user_id, Policy.is_deleted.is_(False))
    if status:
        query = query.filter(Policy.status == PolicyStatus(status).value)
    return query.order_by(Policy.effective_date.desc(), Policy.id.desc()).all()


def get_policy(db: Session, policy_id: int, user_id: int) -> Policy:
    policy = (
        db.query(Policy)
        .filter(Policy.id == policy_id, Policy.user_id == user_id, Policy.is_deleted.is_(False))
        .first()
    )
    if not policy:
        raise NotFoundError("Policy not found")
    return policy


def update_policy(db: Session, policy_id: int, user_id: int, data: PolicyUpdate) -> Policy:
    policy = get_policy(db, policy_id, user_id)
    changes = data.model_dump(exclude_unset=True)

    if changes.get("status") == PolicyStatus.ACTIVE and policy.status != PolicyStatus.ACTIVE.value:
        # keep a single active policy per user
        db.query(Policy).filter(
            Policy.user_id == user_id,
            Policy.status == PolicyStatus.ACTIVE.value,
            Policy.id != policy.id
        ).update({Policy.status: PolicyStatus.INACTIVE.value}, synchronize_session=False)

    for key, value in changes.items():
        if key == "daily_limits" and value is not None:
            limits = dict(policy.daily_limits or {})
            limits.update({Category(c).value: v for c, v in value.items()})
            value = limits
        elif key in ("restricted_categories", "approval_required") and value is not None:
            value = _values(value)
        elif key == "status" and value is not None:
            value = PolicyStatus(value).value
        setattr(policy, key, value)

    db.commit()
    db.refresh(policy)
    logger.info("Policy %s updated", policy.id)
    return policy


def delete_policy(db: Session, policy_id: int, user_id: int) -> Policy:
    policy = get_policy(db, policy_id, user_id)
    policy.is_deleted = True
    policy.status = PolicyStatus.INACTIVE.value
    db.commit()
    db.refresh(policy)
    logger.info("Policy %s deleted", policy.id)
    return policy


def get_violations(db: Session, user_id: int, status=None, severity=None) -> List[PolicyViolation]:
    query = db.query(PolicyViolation).filter(PolicyViolation.user_id == user_id)
    if status:
        query = query.filter(PolicyViolation.status == getattr(status, "value", status))
    if severity:
        query = query.filter(PolicyViolation.severity == getattr(severity, "value", severity))
    return query.order_by(PolicyViolation.date.desc(), PolicyViolation.id.desc()).all()


def _get_violation(db: Session, violation_id: int, user_id: int) -> PolicyViolation:
    violation = (
        db.query(PolicyViolation)
        .filter(PolicyViolation.id == violation_id, PolicyViolation.user_id == user_id)
        .first()
    )
    if not violation:
        raise NotFoundError("Violation not found")
    return violation


def justify_violation(db: Session, violation_id: int, user_id: int, justification: str) -> PolicyViolation:
    violation = _get_violation(db, violation_id, user_id)
    violation.justification = justification
    violation.justification_date = datetime.utcnow()
    violation.status = ViolationStatus.PENDING_APPROVAL.value
    db.commit()
    db.refresh(violation)
    return violation


def review_violation(
    db: Session, violation_id: int, user_id: int, decision: ViolationStatus, notes: Optional[str] = None
) -> PolicyViolation:
    decision = ViolationStatus(decision)
    if decision not in REVIEW_DECISIONS:
        raise ValidationError(f"Invalid review decision: {decision.value}")

    violation = _get_violation(db, violation_id, user_id)
    violation.status = decision.value
    violation.review_notes = notes
    violation.reviewed_at = datetime.utcnow()
    db.commit()
    db.refresh(violation)
    return violation


def get_policy_overview(db: Session, user_id: int, now: Optional[datetime] = None) -> Optional[dict]:
    policy = get_active_policy(db, user_id)
    if policy is None:
        return None

    now = now or datetime.utcnow()
    month_start = datetime(now.year, now.month, 1)
    violations = db.query(PolicyViolation).filter(PolicyViolation.user_id == user_id)

    violations_this_month = violations.filter(PolicyViolation.date >= month_start).count()
    pending_approvals = violations.filter(
        PolicyViolation.status == ViolationStatus.PENDING_APPROVAL.value
    ).count()
    total_violations = violations.count()

    compliance_rate = max(0, 100 - violations_this_month * 10) if total_violations > 0 else 100
    rules = merge_policy(policy)

    return {
        "last_updated": policy.updated_at,
        "overall_compliance": round(compliance_rate),
        "daily_limits": {c.value: limit for c, limit in rules.daily_limits.items()},
        "restricted_categories": sorted(c.value for c in rules.restricted_categories),
        "approval_required": sorted(c.value for c in rules.approval_required),
        "violations_this_month": violations_this_month,
        "pending_approvals": pending_approvals,
    }
