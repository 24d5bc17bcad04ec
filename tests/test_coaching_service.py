from types import SimpleNamespace

from sqlalchemy.exc import OperationalError

from models.enums import AccountType
from models.models import ChatHistory
from models.schemas import AnomalySummary, CategoryAnalysis, CategoryBreakdown
from services import analysis_service, coaching_service


def _analysis(category="Dining", percentage=60.0):
    return CategoryAnalysis(
        categories=[CategoryBreakdown(
            category=category, amount=300, percentage=percentage, transaction_count=3, avg_amount=100
        )],
        total_spending=500,
        period="this-month"
    )


def _overview(*monthly):
    return SimpleNamespace(monthly_comparison=[SimpleNamespace(current=amount) for amount in monthly])


def test_chat_history_is_returned_oldest_first(db, make_user):
    user = make_user()
    other = make_user()
    for n in range(3):
        coaching_service.save_chat_history(db, user.id, f"question {n}", f"answer {n}")
    coaching_service.save_chat_history(db, other.id, "someone else", "hidden")

    history = coaching_service.get_chat_history(db, user.id, limit=2)

    assert [h.message for h in history] == ["question 1", "question 2"]
    assert history[0].category == "general"


def test_chat_history_failure_is_logged_not_raised(db, make_user, monkeypatch, caplog):
    user = make_user()

    def broken_commit():
        raise OperationalError("INSERT", {}, Exception("disk full"))

    monkeypatch.setattr(db, "commit", broken_commit)
    coaching_service.save_chat_history(db, user.id, "hi", "hello")
    monkeypatch.undo()

    assert "Could not save chat history" in caplog.text
    assert db.query(ChatHistory).count() == 0


def test_personal_starters_follow_spending():
    starters = coaching_service.conversation_starters(
        AccountType.PERSONAL.value, _analysis(), AnomalySummary(total=2, minor=2), _overview(100, 100, 300)
    )

    assert len(starters) == coaching_service.MAX_STARTERS
    assert set(starters) <= {
        "How can I improve my spending habits?",
        "What are my biggest money-saving opportunities?",
        "How can I reduce my dining expenses?",
        "Why are some of my recent transactions flagged as unusual?",
        "My spending is higher than usual this month - what should I do?",
        "Am I on track for my savings goal?",
        "Show me ways to save money this month",
    }


def test_business_starters_without_signals():
    starters = coaching_service.conversation_starters(
        AccountType.BUSINESS.value, _analysis(percentage=25.0), AnomalySummary(), _overview(0, 100, 100)
    )

    assert sorted(starters) == sorted([
        "How can I stay compliant with company policy?",
        "Show me compliant vendors in my area",
        "What are my most common policy violations?",
        "Help me justify this business expense",
    ])


def test_starters_fall_back_to_static_list(db, make_user, monkeypatch):
    user = make_user(AccountType.BUSINESS)

    def unavailable(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(analysis_service, "get_category_analysis", unavailable)

    assert coaching_service.generate_conversation_starters(db, user) == coaching_service.BUSINESS_STARTERS


def test_starters_from_stored_data(db, make_user):
    user = make_user(AccountType.PERSONAL)

    starters = coaching_service.generate_conversation_starters(db, user)

    assert "How can I improve my spending habits?" in starters
    assert len(starters) <= coaching_service.MAX_STARTERS
