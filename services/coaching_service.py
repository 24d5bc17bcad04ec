import random
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.logger import get_logger
from models.enums import AccountType
from models.models import ChatHistory
from models.schemas import AnomalySummary, CategoryAnalysis, SpendingOverview
from services import analysis_service, analytics_service

logger = get_logger("coaching_service")

RECENT_TRANSACTION_COUNT = 10
MAX_STARTERS = 6

PERSONAL_STARTERS = [
    "How can I reduce my dining expenses?",
    "Am I on track for my savings goal?",
    "What's my biggest spending category?",
    "Show me ways to save money",
    "Analyze my spending patterns",
]
BUSINESS_STARTERS = [
    "How can I stay compliant with company policy?",
    "What are my most common policy violations?",
    "Find policy-compliant alternatives for dining",
    "Help me justify this business expense",
    "Show me compliant vendors in my area",
]


def summarize_transactions(transactions: Iterable) -> str:
    recent = list(transactions)[:RECENT_TRANSACTION_COUNT]
    if not recent:
        return "No transactions yet."
    return ", ".join(f"{t.merchant}: ${abs(t.amount):.2f} ({t.category})" for t in recent)


def build_coaching_messages(
    user,
    transactions: Iterable,
    anomaly_summary: AnomalySummary,
    policy_overview: Optional[dict],
    message: str
) -> List[dict]:
    """System prompt with the user's spending context, followed by their question."""
    context = [
        f"- Name: {user.name}",
        f"- Account type: {user.account_type}",
        f"- Recent transactions: {summarize_transactions(transactions)}",
        f"- Unusual transactions this month: {anomaly_summary.total} "
        f"({anomaly_summary.major} major, {anomaly_summary.moderate} moderate, {anomaly_summary.minor} minor)",
    ]
    if user.account_type == AccountType.BUSINESS.value and policy_overview:
        limits = ", ".join(f"{c} ${v:g}" for c, v in policy_overview["daily_limits"].items())
        context.append(f"- Company daily limits: {limits}")
        context.append(
            f"- Policy compliance: {policy_overview['overall_compliance']}% "
            f"({policy_overview['violations_this_month']} violations this month)"
        )

    system_prompt = (
        "You are a professional spending coach.\n"
        "User context:\n" + "\n".join(context) + "\n\n"
        "Instructions:\n"
        "1. Be concise and practical.\n"
        "2. Refer to the user's real transactions when they ask about their spending.\n"
        "3. Point out unusual expenses and policy limits when relevant.\n"
        "4. Reply in the same language the user writes in."
    )
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": message},
    ]


def save_chat_history(db: Session, user_id: int, message: str, response: str, category: str = "general") -> None:
    """Store one exchange. A failure here never affects the reply."""
    try:
        db.add(ChatHistory(user_id=user_id, message=message, response=response, category=category))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Could not save chat history for user %s: %s", user_id, e)


def get_chat_history(db: Session, user_id: int, limit: int = 50) -> List[ChatHistory]:
    """The latest ``limit`` exchanges, oldest first."""
    latest = (
        db.query(ChatHistory)
        .filter(ChatHistory.user_id == user_id)
        .order_by(ChatHistory.created_at.desc(), ChatHistory.id.desc())
        .limit(limit)
        .all()
    )
    return list(reversed(latest))


def static_starters(account_type: str) -> List[str]:
    return list(BUSINESS_STARTERS if account_type == AccountType.BUSINESS.value else PERSONAL_STARTERS)


def conversation_starters(
    account_type: str,
    category_analysis: CategoryAnalysis,
    anomaly_summary: AnomalySummary,
    overview: SpendingOverview
) -> List[str]:
    business = account_type == AccountType.BUSINESS.value
    if business:
        starters = ["How can I stay compliant with company policy?", "Show me compliant vendors in my area"]
    else:
        starters = ["How can I improve my spending habits?", "What are my biggest money-saving opportunities?"]

    if category_analysis.categories:
        top = category_analysis.categories[0]
        if top.percentage > 30:
            starters.append(f"How can I reduce my {top.category.lower()} expenses?")

    if anomaly_summary.total > 0:
        starters.append("Why are some of my recent transactions flagged as unusual?")

    active_months = [m.current for m in overview.monthly_comparison if m.current > 0]
    if active_months:
        average = sum(active_months) / len(active_months)
        if overview.monthly_comparison[-1].current > average * 1.2:
            starters.append("My spending is higher than usual this month - what should I do?")

    if business:
        starters += ["What are my most common policy violations?", "Help me justify this business expense"]
    else:
        starters += ["Am I on track for my savings goal?", "Show me ways to save money this month"]

    unique = list(dict.fromkeys(starters))
    return random.sample(unique, len(unique))[:MAX_STARTERS]


def generate_conversation_starters(db: Session, user) -> List[str]:
    """Starters built from this month's spending, or the static list when data can't be read."""
    try:
        category_analysis = analysis_service.get_category_analysis(db, user.id)
        anomalies = analysis_service.detect_anomalies(db, user.id)
        overview = analytics_service.get_spending_overview(db, user.id)
    except SQLAlchemyError as e:
        logger.error("Could not build conversation starters for user %s: %s", user.id, e)
        return static_starters(user.account_type)

    return conversation_starters(user.account_type, category_analysis, anomalies.summary, overview)
