import logging
from datetime import datetime

from sqlalchemy.exc import OperationalError

from models.enums import AccountType, Category, ComplianceStatus, ViolationSeverity, ViolationType
from models.models import Policy, PolicyViolation, Transaction
from models.schemas import PolicyCreate
from services import policy_evaluator, policy_service
from services.policy_evaluator import PolicyEvaluator
from services.violation_recorder import RecordOutcome, record_violation
from services.policy_resolver import EffectivePolicy

DAY = datetime(2024, 6, 10, 9, 30)


def check(db, transaction, user, transactions):
    return PolicyEvaluator.check_compliance(db, transaction, user.account_type, transactions, user.id)


def test_personal_accounts_are_always_compliant(db, make_user, make_transaction):
    user = make_user(AccountType.PERSONAL)
    policy_service.create_policy(db, user.id, PolicyCreate(restricted_categories=["shopping"]))
    big = make_transaction(user, -10_000, category="shopping", date=DAY)

    result = check(db, big, user, [big])

    assert result.status == ComplianceStatus.COMPLIANT
    assert result.rule == "No policy restrictions for personal accounts"
    assert db.query(PolicyViolation).count() == 0


def test_daily_limit_exceeded_records_major_violation(db, make_user, make_transaction):
    user = make_user()
    first = make_transaction(user, -20, date=DAY)
    second = make_transaction(user, -20, date=DAY.replace(hour=12))
    third = make_transaction(user, -15, date=DAY.replace(hour=19))

    result = check(db, third, user, [first, second, third])

    assert result.status == ComplianceStatus.VIOLATION
    assert "$55" in result.rule
    assert "$50" in result.rule
    assert result.rule == "Exceeds daily dining limit of $50 (total: $55.00)"

    violation = db.query(PolicyViolation).one()
    assert violation.violation_type == "daily_limit"
    assert violation.severity == "Major"
    assert violation.status == "Needs Review"
    assert violation.transaction_id == third.id
    assert violation.amount == 15

    # no active policy existed, so a default one backs the violation
    policy = db.query(Policy).one()
    assert policy.title == "Default Business Policy"
    assert violation.policy_id == policy.id


def test_approaching_limit_is_a_warning(db, make_user, make_transaction):
    user = make_user()
    earlier = make_transaction(user, -42, date=DAY)
    current = make_transaction(user, -5, date=DAY.replace(hour=20))

    result = check(db, current, user, [earlier, current])

    assert result.status == ComplianceStatus.WARNING
    assert result.rule == "Approaching daily dining limit of $50 (total: $47.00)"
    assert db.query(PolicyViolation).count() == 0


def test_income_never_counts_toward_daily_total(db, make_user, make_transaction):
    user = make_user()
    refund = make_transaction(user, 500, date=DAY)
    current = make_transaction(user, -30, date=DAY.replace(hour=13))

    result = check(db, current, user, [refund, current])

    assert result.status == ComplianceStatus.COMPLIANT
    assert result.rule == "Within dining spending limits"


def test_income_transaction_itself_is_not_added(db, make_user, make_transaction):
    user = make_user()
    lunch = make_transaction(user, -45, date=DAY)
    refund = make_transaction(user, 20, date=DAY.replace(hour=15))

    result = check(db, refund, user, [lunch, refund])

    assert result.status == ComplianceStatus.WARNING
    assert "(total: $45.00)" in result.rule


def test_other_days_and_categories_are_ignored(db, make_user, make_transaction):
    user = make_user()
    yesterday = make_transaction(user, -45, date=datetime(2024, 6, 9, 23, 59))
    taxi = make_transaction(user, -45, category="transport", date=DAY)
    current = make_transaction(user, -10, date=DAY)

    result = check(db, current, user, [yesterday, taxi, current])

    assert result.status == ComplianceStatus.COMPLIANT


def test_restricted_category_without_limit_is_always_a_violation(db, make_user, make_transaction):
    user = make_user()
    policy_service.create_policy(db, user.id, PolicyCreate(
        daily_limits={"shopping": 0},
        restricted_categories=["shopping"]
    ))
    tiny = make_transaction(user, -0.01, category="shopping", date=DAY)

    result = check(db, tiny, user, [tiny])

    assert result.status == ComplianceStatus.VIOLATION
    assert result.rule == "shopping expenses are not allowed by company policy"
    violation = db.query(PolicyViolation).one()
    assert violation.violation_type == "restricted_category"
    assert violation.severity == "Critical"


def test_approval_required_beats_restricted(db, make_user, make_transaction):
    user = make_user()
    policy_service.create_policy(db, user.id, PolicyCreate(
        daily_limits={"entertainment": 0},
        restricted_categories=["entertainment"],
        approval_required=["entertainment"]
    ))
    ticket = make_transaction(user, -10, category="entertainment", date=DAY)

    result = check(db, ticket, user, [ticket])

    assert result.status == ComplianceStatus.WARNING
    assert result.rule == "entertainment expenses require pre-approval"


def test_daily_limit_violation_beats_approval_required(db, make_user, make_transaction):
    user = make_user()
    concert = make_transaction(user, -120, category="entertainment", date=DAY)

    result = check(db, concert, user, [concert])

    assert result.status == ComplianceStatus.VIOLATION
    assert result.rule.startswith("Exceeds daily entertainment limit of $75")


def test_stored_policy_limits_are_used(db, make_user, make_transaction):
    user = make_user()
    policy = policy_service.create_policy(db, user.id, PolicyCreate(daily_limits={"dining": 30}))
    current = make_transaction(user, -35, date=DAY)

    result = check(db, current, user, [current])

    assert result.status == ComplianceStatus.VIOLATION
    assert db.query(PolicyViolation).one().policy_id == policy.id


def test_unsaved_transaction_gets_verdict_without_violation_row(db, make_user):
    user = make_user()
    draft = Transaction(user_id=user.id, amount=-80, category="dining", date=DAY, merchant="Bistro")

    result = check(db, draft, user, [])

    assert result.status == ComplianceStatus.VIOLATION
    assert db.query(PolicyViolation).count() == 0


def test_recording_failure_does_not_change_verdict(db, make_user, make_transaction, monkeypatch, caplog):
    user = make_user()
    current = make_transaction(user, -80, date=DAY)

    def failing_record(*args, **kwargs):
        return RecordOutcome(error=OperationalError("INSERT", {}, Exception("disk full")))

    monkeypatch.setattr(policy_evaluator, "record_violation", failing_record)

    with caplog.at_level(logging.ERROR):
        result = check(db, current, user, [current])

    assert result.status == ComplianceStatus.VIOLATION
    assert "Could not record daily_limit violation" in caplog.text


def test_record_violation_returns_store_errors(db, make_user, make_transaction, monkeypatch):
    user = make_user()
    current = make_transaction(user, -80, date=DAY)

    def broken_commit():
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    monkeypatch.setattr(db, "commit", broken_commit)

    outcome = record_violation(
        db, user.id, EffectivePolicy(), current,
        ViolationType.DAILY_LIMIT, ViolationSeverity.MAJOR, "Exceeds daily dining limit of $50"
    )

    assert outcome.ok is False
    assert isinstance(outcome.error, OperationalError)
    assert outcome.violation is None


def test_total_equal_to_limit_is_only_a_warning(db, make_user, make_transaction):
    user = make_user()
    earlier = make_transaction(user, -30, date=DAY)
    current = make_transaction(user, -20, date=DAY.replace(hour=18))

    result = check(db, current, user, [earlier, current])

    assert result.status == ComplianceStatus.WARNING
    assert result.rule == "Approaching daily dining limit of $50 (total: $50.00)"
    assert db.query(PolicyViolation).count() == 0


def test_warning_starts_at_eighty_percent(db, make_user, make_transaction):
    user = make_user()
    earlier = make_transaction(user, -25, date=DAY)
    at_threshold = make_transaction(user, -15, date=DAY.replace(hour=18))
    below = make_transaction(user, -14.99, date=DAY.replace(hour=19))

    assert check(db, at_threshold, user, [earlier, at_threshold]).status == ComplianceStatus.WARNING
    assert check(db, below, user, [earlier, below]).status == ComplianceStatus.COMPLIANT


def test_fractional_limit_is_printed_as_stored(db, make_user, make_transaction):
    user = make_user()
    policy_service.create_policy(db, user.id, PolicyCreate(daily_limits={"dining": 50.5}))
    current = make_transaction(user, -60, date=DAY)

    result = check(db, current, user, [current])

    assert result.rule == "Exceeds daily dining limit of $50.5 (total: $60.00)"
    assert db.query(PolicyViolation).one().rule_violated == "Exceeds daily dining limit of $50.5"


def test_restricted_violation_creates_default_policy(db, make_user, make_transaction, monkeypatch):
    user = make_user()
    rules = EffectivePolicy(daily_limits={}, restricted_categories=frozenset({Category.SHOPPING}))
    monkeypatch.setattr(policy_evaluator, "resolve_policy", lambda db, user_id: rules)
    purchase = make_transaction(user, -5, category="shopping", date=DAY)

    result = check(db, purchase, user, [purchase])

    assert result.status == ComplianceStatus.VIOLATION
    policy = db.query(Policy).one()
    assert policy.title == "Default Business Policy"
    assert policy.restricted_categories == ["shopping"]
    violation = db.query(PolicyViolation).one()
    assert violation.violation_type == "restricted_category"
    assert violation.policy_id == policy.id


def test_unexpected_recording_error_keeps_verdict(db, make_user, make_transaction, monkeypatch, caplog):
    user = make_user()
    current = make_transaction(user, -80, date=DAY)

    def broken_create_policy(*args, **kwargs):
        raise ValueError("bad policy payload")

    monkeypatch.setattr(policy_service, "create_policy", broken_create_policy)

    with caplog.at_level(logging.ERROR):
        result = check(db, current, user, [current])

    assert result.status == ComplianceStatus.VIOLATION
    assert "bad policy payload" in caplog.text
    assert db.query(PolicyViolation).count() == 0
