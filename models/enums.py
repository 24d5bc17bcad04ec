from enum import Enum


class Category(str, Enum):
    DINING = "dining"
    TRANSPORT = "transport"
    SHOPPING = "shopping"
    GROCERIES = "groceries"
    ENTERTAINMENT = "entertainment"
    HEALTHCARE = "healthcare"
    UTILITIES = "utilities"
    SALARY = "salary"
    WAGE = "wage"
    INCOME = "income"
    REFUND = "refund"
    DEPOSIT = "deposit"
    TRANSFER_IN = "transfer-in"
    OTHER = "other"

    @property
    def is_income(self) -> bool:
        return self in INCOME_CATEGORIES


INCOME_CATEGORIES = frozenset({
    Category.SALARY, Category.WAGE, Category.INCOME,
    Category.REFUND, Category.DEPOSIT, Category.TRANSFER_IN,
})


class AccountType(str, Enum):
    PERSONAL = "personal"
    BUSINESS = "business"


class PolicyStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    DRAFT = "draft"


class ComplianceStatus(str, Enum):
    COMPLIANT = "compliant"
    WARNING = "warning"
    VIOLATION = "violation"


class AnomalySeverity(str, Enum):
    MAJOR = "major"
    MODERATE = "moderate"
    MINOR = "minor"

    @property
    def rank(self) -> int:
        return {"major": 3, "moderate": 2, "minor": 1}[self.value]


class ViolationType(str, Enum):
    DAILY_LIMIT = "daily_limit"
    RESTRICTED_CATEGORY = "restricted_category"
    REQUIRES_APPROVAL = "requires_approval"


class ViolationSeverity(str, Enum):
    MINOR = "Minor"
    MAJOR = "Major"
    CRITICAL = "Critical"


class ViolationStatus(str, Enum):
    NEEDS_REVIEW = "Needs Review"
    PENDING_APPROVAL = "Pending Approval"
    APPROVED = "Approved"
    DENIED = "Denied"
    RESOLVED = "Resolved"
