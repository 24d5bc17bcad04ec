from datetime import datetime

from models.enums import Category
from models.models import Policy
from models.schemas import PolicyCreate
from services import policy_service
from services.policy_resolver import (
    DEFAULT_APPROVAL_REQUIRED, DEFAULT_DAILY_LIMITS, EffectivePolicy, merge_policy, resolve_policy
)


def test_defaults_without_an_active_policy(db, make_user):
    user = make_user()
    rules = resolve_policy(db, user.id)

    assert rules.policy_id is None
    assert rules.daily_limits == DEFAULT_DAILY_LIMITS
    assert rules.limit_for(Category.DINING) == 50
    assert rules.limit_for(Category.SALARY) is None
    assert rules.approval_required == DEFAULT_APPROVAL_REQUIRED
    assert rules.restricted_categories == frozenset()


def test_stored_values_override_defaults():
    policy = Policy(
        id=4,
        daily_limits={"dining": 30, "shopping": 0},
        restricted_categories=["shopping"],
        approval_required=[]
    )
    rules = merge_policy(policy)

    assert rules.policy_id == 4
    assert rules.limit_for(Category.DINING) == 30
    assert rules.limit_for(Category.SHOPPING) is None
    assert rules.limit_for(Category.TRANSPORT) == 100
    assert rules.restricted_categories == frozenset({Category.SHOPPING})
    assert rules.approval_required == frozenset()


def test_missing_approval_list_falls_back_to_default():
    rules = merge_policy(Policy(id=1, daily_limits={}, restricted_categories=[], approval_required=None))
    assert rules.approval_required == frozenset({Category.ENTERTAINMENT})


def test_newest_active_policy_wins(db, make_user):
    user = make_user()
    policy_service.create_policy(db, user.id, PolicyCreate(daily_limits={"dining": 20}))
    newer = policy_service.create_policy(db, user.id, PolicyCreate(
        daily_limits={"dining": 80},
        effective_date=datetime(2030, 1, 1)
    ))

    rules = resolve_policy(db, user.id)

    assert rules.policy_id == newer.id
    assert rules.limit_for(Category.DINING) == 80


def test_to_storage_uses_plain_strings():
    stored = EffectivePolicy().to_storage()
    assert stored["daily_limits"]["dining"] == 50
    assert stored["restricted_categories"] == []
    assert stored["approval_required"] == ["entertainment"]
