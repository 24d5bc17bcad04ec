"""Spending trends, policy compliance metrics and savings opportunities."""
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from core.logger import get_logger
from models.enums import ComplianceStatus
from models.models import Transaction
from models.schemas import (
    ComplianceMetrics, MonthlyTrend, SavingsOpportunity, SpendingOverview, Velocity
)

logger = get_logger("analytics_service")

PERIOD_MONTHS = {"1-month": 1, "3-months": 3, "6-months": 6, "12-months": 12}
DEFAULT_PERIOD = "6-months"
COMPLIANCE_TREND_MONTHS = 6

SUBSCRIPTION_KEYWORDS = ("subscription", "monthly", "premium", "pro", "plus")
# monthly amounts above which a category is worth a closer look
CATEGORY_THRESHOLDS = {"dining": 400, "entertainment": 200, "shopping": 300, "transport": 200}


def month_start(now: datetime, months_back: int = 0) -> datetime:
    index = now.year * 12 + (now.month - 1) - months_back
    return datetime(index // 12, index % 12 + 1, 1)


def _month_bounds(now: datetime, months_back: int):
    return month_start(now, months_back), month_start(now, months_back - 1)


def _in_range(transactions: Iterable[Transaction], start: datetime, end: datetime) -> List[Transaction]:
    return [t for t in transactions if start <= t.date < end]


def _spent(transactions: Iterable[Transaction]) -> float:
    return sum(abs(t.amount) for t in transactions if t.amount < 0)


def _violations(transactions: Iterable[Transaction]) -> List[Transaction]:
    return [t for t in transactions if t.policy_status == ComplianceStatus.VIOLATION.value]


def _compliance_rate(transactions: List[Transaction]) -> float:
    if not transactions:
        return 100.0
    return round((len(transactions) - len(_violations(transactions))) / len(transactions) * 100, 1)


def _load(db: Session, user_id: int, since: datetime, categories: Optional[List[str]] = None) -> List[Transaction]:
    query = db.query(Transaction).filter(
        Transaction.user_id == user_id,
        Transaction.is_deleted.is_(False),
        Transaction.date >= since
    )
    if categories:
        query = query.filter(Transaction.category.in_(categories))
    return query.order_by(Transaction.date.asc()).all()


def monthly_trends(transactions: List[Transaction], months: int, now: datetime) -> List[MonthlyTrend]:
    trends = []
    for back in range(months - 1, -1, -1):
        start, end = _month_bounds(now, back)
        current = _in_range(transactions, start, end)
        previous = _in_range(transactions, *_month_bounds(now, back + 1))
        trends.append(MonthlyTrend(
            month=start.strftime("%b"),
            current=round(_spent(current), 2),
            previous=round(_spent(previous), 2),
            compliance=_compliance_rate(current),
            violations=len(_violations(current))
        ))
    return trends


def seasonality(transactions: Iterable[Transaction]) -> Dict[str, List[float]]:
    """Spend per category for each calendar month, January first."""
    by_category: Dict[str, List[float]] = {}
    for t in transactions:
        if t.amount >= 0:
            continue
        months = by_category.setdefault(t.category, [0.0] * 12)
        months[t.date.month - 1] = round(months[t.date.month - 1] + abs(t.amount), 2)
    return by_category


def compliance_metrics(transactions: List[Transaction], now: datetime) -> ComplianceMetrics:
    violations = _violations(transactions)
    warnings = [t for t in transactions if t.policy_status == ComplianceStatus.WARNING.value]

    by_category: Dict[str, int] = {}
    for t in violations:
        by_category[t.category] = by_category.get(t.category, 0) + 1

    trend = [
        _compliance_rate(_in_range(transactions, *_month_bounds(now, back)))
        for back in range(COMPLIANCE_TREND_MONTHS - 1, -1, -1)
    ]
    return ComplianceMetrics(
        trend=trend,
        violations_by_category=by_category,
        overall_score=_compliance_rate(transactions),
        total_violations=len(violations),
        total_warnings=len(warnings)
    )


def get_spending_overview(
    db: Session,
    user_id: int,
    period: str = DEFAULT_PERIOD,
    categories: Optional[List[str]] = None,
    now: Optional[datetime] = None
) -> SpendingOverview:
    now = now or datetime.utcnow()
    if period not in PERIOD_MONTHS:
        period = DEFAULT_PERIOD
    months = PERIOD_MONTHS[period]

    transactions = _load(db, user_id, month_start(now, months), categories)
    logger.info("Spending overview for user %s: %s transactions over %s", user_id, len(transactions), period)

    total_spending = _spent(transactions)
    this_month = _spent(_in_range(transactions, *_month_bounds(now, 0)))
    last_month = _spent(_in_range(transactions, *_month_bounds(now, 1)))
    pace = (this_month - last_month) / last_month * 100 if last_month > 0 else 0.0

    compliance = compliance_metrics(transactions, now)
    burn_rate = round(compliance.total_violations / len(transactions) * 100, 1) if transactions else 0.0

    return SpendingOverview(
        monthly_comparison=monthly_trends(transactions, months, now),
        seasonality=seasonality(transactions),
        velocity=Velocity(
            current_pace=round(pace, 1),
            projected_total=round(this_month * (30 / now.day), 2),
            policy_burn_rate=burn_rate
        ),
        compliance=compliance,
        total_spending=round(total_spending, 2),
        average_monthly_spend=round(total_spending / months, 2),
        period=period
    )


def _duplicate_subscriptions(transactions: List[Transaction]) -> List[SavingsOpportunity]:
    counts: Dict[str, int] = {}
    for t in transactions:
        text = f"{t.merchant} {t.description or ''}".lower()
        if any(keyword in text for keyword in SUBSCRIPTION_KEYWORDS):
            counts[t.merchant] = counts.get(t.merchant, 0) + 1

    opportunities = []
    for merchant, count in counts.items():
        if count < 2:
            continue
        amounts = [abs(t.amount) for t in transactions if t.merchant == merchant]
        average = sum(amounts) / len(amounts)
        opportunities.append(SavingsOpportunity(
            id=f"duplicate-{merchant}",
            title="Duplicate Subscription Detected",
            description=f"You have {count} transactions from {merchant}. This might be a duplicate subscription.",
            category="subscriptions",
            potential_savings=round(average * (count - 1), 2),
            confidence="high",
            action=f"Review {merchant} subscriptions and cancel duplicates",
            severity="high" if count > 3 else "medium"
        ))
    return opportunities


def _frequent_merchants(transactions: List[Transaction]) -> List[SavingsOpportunity]:
    spending: Dict[str, dict] = {}
    for t in transactions:
        entry = spending.setdefault(t.merchant, {"total": 0.0, "count": 0, "category": t.category})
        entry["total"] += abs(t.amount)
        entry["count"] += 1

    opportunities = []
    for merchant, data in spending.items():
        if data["count"] < 5 or data["total"] <= 100:
            continue
        opportunities.append(SavingsOpportunity(
            id=f"frequent-{merchant}",
            title="High-Frequency Spending",
            description=f"You've spent ${data['total']:.2f} at {merchant} over {data['count']} transactions.",
            category=data["category"],
            potential_savings=round(data["total"] * 0.15, 2),
            confidence="medium",
            action=f"Look for alternatives to {merchant} or negotiate better rates",
            severity="high" if data["total"] > 500 else "medium"
        ))
    return opportunities


def _category_overspending(transactions: List[Transaction]) -> List[SavingsOpportunity]:
    totals: Dict[str, float] = {}
    for t in transactions:
        totals[t.category] = totals.get(t.category, 0.0) + abs(t.amount)

    opportunities = []
    for category, total in totals.items():
        threshold = CATEGORY_THRESHOLDS.get(category)
        if not threshold or total <= threshold:
            continue
        excess = total - threshold
        opportunities.append(SavingsOpportunity(
            id=f"category-{category}",
            title=f"High {category.capitalize()} Spending",
            description=f"Your {category} spending of ${total:.2f} is above the typical range.",
            category=category,
            potential_savings=round(excess * 0.3, 2),
            confidence="medium",
            action=f"Consider setting a budget for {category} expenses",
            severity="high" if excess > threshold * 0.5 else "medium"
        ))
    return opportunities


def _policy_violations(transactions: List[Transaction]) -> List[SavingsOpportunity]:
    violations = _violations(transactions)
    if not violations:
        return []
    total = sum(abs(t.amount) for t in violations)
    return [SavingsOpportunity(
        id="policy-violations",
        title="Policy Compliance Opportunity",
        description=f"{len(violations)} policy violations detected. Staying compliant could reduce costs.",
        category="policy",
        potential_savings=round(total * 0.2, 2),
        confidence="high",
        action="Review and follow company spending policies",
        severity="high" if len(violations) > 5 else "medium"
    )]


def get_savings_opportunities(db: Session, user_id: int, now: Optional[datetime] = None) -> List[SavingsOpportunity]:
    """Savings ideas from the last three months of expenses, biggest saving first."""
    now = now or datetime.utcnow()
    expenses = [t for t in _load(db, user_id, month_start(now, 3)) if t.amount < 0]

    opportunities = (
        _duplicate_subscriptions(expenses)
        + _frequent_merchants(expenses)
        + _category_overspending(expenses)
        + _policy_violations(expenses)
    )
    opportunities.sort(key=lambda o: o.potential_savings, reverse=True)
    logger.info("Found %s savings opportunities for user %s", len(opportunities), user_id)
    return opportunities
