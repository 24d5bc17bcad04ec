"""Daily-limit and category rules for business account spending."""
from datetime import datetime, time
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from core.logger import get_logger
from models.enums import AccountType, Category, ComplianceStatus, ViolationSeverity, ViolationType
from models.schemas import ComplianceResult
from services.policy_resolver import EffectivePolicy, resolve_policy
from services.violation_recorder import record_violation

logger = get_logger("policy_evaluator")

WARNING_RATIO = 0.8


def _format_limit(limit: float) -> str:
    # 50 -> "50", 50.5 -> "50.5"
    return ("%f" % limit).rstrip("0").rstrip(".")


def _day_bounds(moment: datetime):
    return datetime.combine(moment.date(), time.min), datetime.combine(moment.date(), time.max)


def same_day_expense_total(transaction, category: Category, user_transactions: Iterable) -> float:
    """Absolute spend of the *other* same-day expenses in ``category``."""
    day_start, day_end = _day_bounds(transaction.date)
    total = 0.0
    for t in user_transactions:
        if transaction.id is not None and t.id == transaction.id:
            continue
        if getattr(t, "is_deleted", False):
            continue
        if getattr(t.category, "value", t.category) != category.value:
            continue
        if not (day_start <= t.date <= day_end):
            continue
        # income and refunds never count toward a spending limit
        if t.amount < 0:
            total += abs(t.amount)
    return total


class PolicyEvaluator:
    @staticmethod
    def check_compliance(
        db: Session,
        transaction,
        account_type,
        user_transactions: Iterable = (),
        user_id: Optional[int] = None
    ) -> ComplianceResult:
        if getattr(account_type, "value", account_type) != AccountType.BUSINESS.value:
            return ComplianceResult(
                status=ComplianceStatus.COMPLIANT,
                rule="No policy restrictions for personal accounts"
            )

        rules = resolve_policy(db, user_id)
        category = Category(getattr(transaction.category, "value", transaction.category))
        label = category.value

        daily_limit = rules.limit_for(category)
        if daily_limit is not None:
            total = same_day_expense_total(transaction, category, user_transactions)
            if transaction.amount < 0:
                total += abs(transaction.amount)

            logger.debug(
                "Daily %s limit check: limit=%s total=%.2f (transaction %s)",
                label, daily_limit, total, transaction.id
            )

            if total > daily_limit:
                PolicyEvaluator._record(
                    db, user_id, rules, transaction,
                    ViolationType.DAILY_LIMIT, ViolationSeverity.MAJOR,
                    f"Exceeds daily {label} limit of ${_format_limit(daily_limit)}"
                )
                return ComplianceResult(
                    status=ComplianceStatus.VIOLATION,
                    rule=f"Exceeds daily {label} limit of ${_format_limit(daily_limit)} (total: ${total:.2f})"
                )

            if total >= daily_limit * WARNING_RATIO:
                return ComplianceResult(
                    status=ComplianceStatus.WARNING,
                    rule=f"Approaching daily {label} limit of ${_format_limit(daily_limit)} (total: ${total:.2f})"
                )

        if category in rules.approval_required:
            return ComplianceResult(
                status=ComplianceStatus.WARNING,
                rule=f"{label} expenses require pre-approval"
            )

        if category in rules.restricted_categories:
            rule = f"{label} expenses are not allowed by company policy"
            PolicyEvaluator._record(
                db, user_id, rules, transaction,
                ViolationType.RESTRICTED_CATEGORY, ViolationSeverity.CRITICAL, rule
            )
            return ComplianceResult(status=ComplianceStatus.VIOLATION, rule=rule)

        return ComplianceResult(
            status=ComplianceStatus.COMPLIANT,
            rule=f"Within {label} spending limits"
        )

    @staticmethod
    def _record(db, user_id, rules: EffectivePolicy, transaction, violation_type, severity, rule) -> None:
        if not user_id or transaction.id is None:
            return

        outcome = record_violation(db, user_id, rules, transaction, violation_type, severity, rule)
        if not outcome.ok:
            # the verdict stands even when the violation row could not be stored
            logger.error(
                "Could not record %s violation for transaction %s: %s",
                violation_type.value, transaction.id, outcome.error
            )
