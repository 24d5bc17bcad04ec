"""Effective spending policy: a user's stored active policy merged over defaults."""
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Optional

from sqlalchemy.orm import Session

from core.logger import get_logger
from models.enums import Category, PolicyStatus
from models.models import Policy

logger = get_logger("policy_resolver")

DEFAULT_DAILY_LIMITS: Dict[Category, float] = {
    Category.DINING: 50,
    Category.TRANSPORT: 100,
    Category.ENTERTAINMENT: 75,
    Category.SHOPPING: 200,
    Category.GROCERIES: 75,
    Category.HEALTHCARE: 200,
    Category.UTILITIES: 150,
    Category.OTHER: 50,
}
DEFAULT_RESTRICTED_CATEGORIES: FrozenSet[Category] = frozenset()
DEFAULT_APPROVAL_REQUIRED: FrozenSet[Category] = frozenset({Category.ENTERTAINMENT})


@dataclass(frozen=True)
class EffectivePolicy:
    policy_id: Optional[int] = None
    daily_limits: Dict[Category, float] = field(default_factory=lambda: dict(DEFAULT_DAILY_LIMITS))
    restricted_categories: FrozenSet[Category] = DEFAULT_RESTRICTED_CATEGORIES
    approval_required: FrozenSet[Category] = DEFAULT_APPROVAL_REQUIRED

    def limit_for(self, category: Category) -> Optional[float]:
        """Configured daily limit, or None when the category has no (or a zero) limit."""
        limit = self.daily_limits.get(category)
        return limit if limit else None

    def to_storage(self) -> dict:
        """Column values for persisting these rules as a Policy row."""
        return {
            "daily_limits": {c.value: v for c, v in self.daily_limits.items()},
            "restricted_categories": sorted(c.value for c in self.restricted_categories),
            "approval_required": sorted(c.value for c in self.approval_required),
        }


def _categories(values) -> FrozenSet[Category]:
    return frozenset(Category(v) for v in values)


def merge_policy(policy: Optional[Policy]) -> EffectivePolicy:
    if policy is None:
        return EffectivePolicy()

    daily_limits = dict(DEFAULT_DAILY_LIMITS)
    for category, limit in (policy.daily_limits or {}).items():
        daily_limits[Category(category)] = limit

    restricted = _categories(policy.restricted_categories or [])
    if policy.approval_required is None:
        approval = DEFAULT_APPROVAL_REQUIRED
    else:
        approval = _categories(policy.approval_required)

    return EffectivePolicy(
        policy_id=policy.id,
        daily_limits=daily_limits,
        restricted_categories=restricted,
        approval_required=approval
    )


def get_active_policy(db: Session, user_id: int) -> Optional[Policy]:
    return (
        db.query(Policy)
        .filter(
            Policy.user_id == user_id,
            Policy.status == PolicyStatus.ACTIVE.value,
            Policy.is_deleted.is_(False)
        )
        .order_by(Policy.effective_date.desc(), Policy.id.desc())
        .first()
    )


def resolve_policy(db: Session, user_id: int) -> EffectivePolicy:
    policy = get_active_policy(db, user_id)
    if policy is None:
        logger.debug("No active policy for user %s, using default rules", user_id)
    return merge_policy(policy)
