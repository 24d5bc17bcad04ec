"""Anomaly scans and category breakdowns over a user's transaction history."""
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from core.config import settings
from core.logger import get_logger
from models.enums import AnomalySeverity
from models.models import Transaction
from models.schemas import AnomalyOut, AnomalyReport, AnomalyResult, CategoryAnalysis, CategoryBreakdown
from services.anomaly_detector import AnomalyDetector

logger = get_logger("analysis_service")


def subtract_months(moment: datetime, months: int) -> datetime:
    """Same day-of-month ``months`` earlier, clamped to the end of shorter months."""
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    next_month = datetime(year + (month // 12), month % 12 + 1, 1)
    last_day = (next_month - timedelta(days=1)).day
    return moment.replace(year=year, month=month, day=min(moment.day, last_day))


def anomaly_window_start(date_range: str, now: datetime) -> datetime:
    if date_range == "this-week":
        return now - timedelta(days=7)
    if date_range == "last-30-days":
        return now - timedelta(days=30)
    return datetime(now.year, now.month, 1)


def _active_transactions(db: Session, user_id: int):
    return db.query(Transaction).filter(
        Transaction.user_id == user_id,
        Transaction.is_deleted.is_(False)
    )


def load_history(db: Session, user_id: int, now: datetime, before: Optional[datetime] = None) -> List[Transaction]:
    history_start = subtract_months(now, settings.ANOMALY_HISTORY_MONTHS)
    query = _active_transactions(db, user_id).filter(Transaction.date >= history_start)
    if before is not None:
        query = query.filter(Transaction.date < before)
    return query.all()


def detect_anomalies(
    db: Session,
    user_id: int,
    date_range: str = "this-month",
    severity_level: str = "all",
    now: Optional[datetime] = None
) -> AnomalyReport:
    now = now or datetime.utcnow()
    start_date = anomaly_window_start(date_range, now)

    recent = (
        _active_transactions(db, user_id)
        .filter(Transaction.date >= start_date)
        .order_by(Transaction.date.desc())
        .all()
    )
    historical = load_history(db, user_id, now, before=start_date)
    logger.info(
        "Scanning %s recent transactions for user %s against %s historical",
        len(recent), user_id, len(historical)
    )

    flagged = []
    for transaction in recent:
        if transaction.anomaly_reviewed:
            continue
        result = AnomalyDetector.analyze_transaction(transaction, historical)
        if result.is_anomaly:
            flagged.append((transaction, result))

    summary = AnomalyDetector.summarize(result for _, result in flagged)

    if severity_level and severity_level != "all":
        wanted = AnomalySeverity(severity_level)
        flagged = [item for item in flagged if item[1].severity == wanted]

    anomalies = [
        _anomaly_out(transaction, result)
        for transaction, result in AnomalyDetector.rank_anomalies(flagged)
    ]

    logger.info("Anomaly scan for user %s found %s anomalies", user_id, summary.total)
    return AnomalyReport(anomalies=anomalies, summary=summary, period=date_range)


def _anomaly_out(transaction: Transaction, result: AnomalyResult) -> AnomalyOut:
    return AnomalyOut(
        id=transaction.id,
        user_id=transaction.user_id,
        amount=transaction.amount,
        date=transaction.date,
        merchant=transaction.merchant,
        description=transaction.description,
        category=transaction.category,
        has_anomaly=True,
        anomaly_reason=result.reason,
        anomaly_comparison=result.comparison,
        policy_status=transaction.policy_status,
        policy_rule=transaction.policy_rule,
        anomaly_details=result
    )


def check_new_transaction(
    db: Session,
    user_id: int,
    transaction,
    now: Optional[datetime] = None,
    expenses_only: bool = False
) -> AnomalyResult:
    """Run the detector for a transaction that may not be saved yet.

    With ``expenses_only`` the baseline ignores refunds and other positive rows.
    """
    now = now or datetime.utcnow()
    historical = load_history(db, user_id, now)
    if transaction.id is not None:
        historical = [t for t in historical if t.id != transaction.id]
    if expenses_only:
        historical = [t for t in historical if t.amount < 0]
    return AnomalyDetector.analyze_transaction(transaction, historical)


def category_window(date_range: str, now: datetime):
    if date_range == "this-week":
        # weeks start on Sunday
        start = now - timedelta(days=(now.weekday() + 1) % 7)
        return start.replace(hour=0, minute=0, second=0, microsecond=0), None
    if date_range == "last-month":
        first_of_month = datetime(now.year, now.month, 1)
        last_month_end = first_of_month - timedelta(microseconds=1)
        return datetime(last_month_end.year, last_month_end.month, 1), last_month_end
    if date_range == "this-year":
        return datetime(now.year, 1, 1), None
    return datetime(now.year, now.month, 1), None


def get_category_analysis(
    db: Session,
    user_id: int,
    date_range: str = "this-month",
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    now: Optional[datetime] = None
) -> CategoryAnalysis:
    if not (start_date and end_date):
        start_date, end_date = category_window(date_range, now or datetime.utcnow())

    query = _active_transactions(db, user_id).filter(Transaction.date >= start_date)
    if end_date is not None:
        query = query.filter(Transaction.date <= end_date)

    totals = {}
    for transaction in query.all():
        amount, count = totals.get(transaction.category, (0.0, 0))
        totals[transaction.category] = (amount + abs(transaction.amount), count + 1)

    total_spending = sum(amount for amount, _ in totals.values())
    categories = [
        CategoryBreakdown(
            category=category.capitalize() if category else "Other",
            amount=round(amount, 2),
            percentage=round(amount / total_spending * 100, 1) if total_spending else 0.0,
            transaction_count=count,
            avg_amount=round(amount / count, 2)
        )
        for category, (amount, count) in sorted(totals.items(), key=lambda x: x[1][0], reverse=True)
    ]

    return CategoryAnalysis(
        categories=categories,
        total_spending=round(total_spending, 2),
        period=date_range
    )
