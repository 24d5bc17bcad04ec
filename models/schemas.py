# models/schemas.py
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from models.enums import (
    AccountType, AnomalySeverity, Category, ComplianceStatus, PolicyStatus,
    ViolationSeverity, ViolationStatus, ViolationType
)


class CamelModel(BaseModel):
    # snake_case in Python, camelCase on the wire
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class UserCreate(CamelModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    account_type: AccountType = AccountType.PERSONAL


class UserOut(CamelModel):
    id: int
    name: str
    email: str
    account_type: AccountType


class TransactionCreate(CamelModel):
    amount: float
    merchant: str = Field(min_length=1)
    date: Optional[datetime] = None
    description: str = ""
    category: Category = Category.OTHER


class TransactionUpdate(CamelModel):
    amount: Optional[float] = None
    merchant: Optional[str] = None
    date: Optional[datetime] = None
    description: Optional[str] = None
    category: Optional[Category] = None


class TransactionOut(CamelModel):
    id: int
    user_id: int
    amount: float
    date: datetime
    merchant: str
    description: Optional[str] = None
    category: Category
    has_anomaly: bool = False
    anomaly_reason: Optional[str] = None
    anomaly_comparison: Optional[str] = None
    policy_status: ComplianceStatus = ComplianceStatus.COMPLIANT
    policy_rule: Optional[str] = None


class ExpectedRange(CamelModel):
    min: float
    max: float
    average: float


class AnomalyResult(CamelModel):
    is_anomaly: bool = False
    severity: Optional[AnomalySeverity] = None
    reason: str = ""
    z_score: Optional[float] = None
    comparison: Optional[str] = None
    expected_range: Optional[ExpectedRange] = None


class AnomalyOut(TransactionOut):
    anomaly_details: AnomalyResult


class AnomalySummary(CamelModel):
    total: int = 0
    major: int = 0
    moderate: int = 0
    minor: int = 0


class AnomalyReport(CamelModel):
    anomalies: List[AnomalyOut]
    summary: AnomalySummary
    period: str


class ComplianceResult(CamelModel):
    status: ComplianceStatus
    rule: str


class CategoryBreakdown(CamelModel):
    category: str
    amount: float
    percentage: float
    transaction_count: int
    avg_amount: float


class CategoryAnalysis(CamelModel):
    categories: List[CategoryBreakdown]
    total_spending: float
    period: str


class PolicyCreate(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    daily_limits: Dict[Category, float] = Field(default_factory=dict)
    restricted_categories: List[Category] = Field(default_factory=list)
    approval_required: Optional[List[Category]] = None
    effective_date: Optional[datetime] = None


class PolicyUpdate(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    daily_limits: Optional[Dict[Category, float]] = None
    restricted_categories: Optional[List[Category]] = None
    approval_required: Optional[List[Category]] = None
    effective_date: Optional[datetime] = None
    status: Optional[PolicyStatus] = None


class PolicyOut(CamelModel):
    id: int
    user_id: int
    title: str
    description: str
    daily_limits: Dict[str, float]
    restricted_categories: List[str]
    approval_required: Optional[List[str]] = None
    status: PolicyStatus
    effective_date: datetime


class PolicyOverview(CamelModel):
    last_updated: Optional[datetime] = None
    overall_compliance: int
    daily_limits: Dict[str, float]
    restricted_categories: List[str]
    approval_required: List[str]
    violations_this_month: int
    pending_approvals: int


class ViolationOut(CamelModel):
    id: int
    policy_id: int
    transaction_id: Optional[int] = None
    violation_type: ViolationType
    merchant: str
    amount: float
    date: datetime
    rule_violated: str
    severity: ViolationSeverity
    status: ViolationStatus
    justification: Optional[str] = None
    justification_date: Optional[datetime] = None
    review_notes: Optional[str] = None


class JustificationRequest(CamelModel):
    justification: str = Field(min_length=1)


class ReviewRequest(CamelModel):
    decision: ViolationStatus
    notes: Optional[str] = None


class ChatRequest(CamelModel):
    message: str = Field(min_length=1)


class ChatHistoryOut(CamelModel):
    id: int
    message: str
    response: str
    category: str
    created_at: datetime


class StatementImportRequest(CamelModel):
    content: str = Field(min_length=1)


class StatementImportResult(CamelModel):
    message: str
    transaction_count: int
    duplicates_skipped: int
    transactions: List[TransactionOut]


class MonthlyTrend(CamelModel):
    month: str
    current: float
    previous: float
    compliance: float
    violations: int


class Velocity(CamelModel):
    current_pace: float
    projected_total: float
    policy_burn_rate: float


class ComplianceMetrics(CamelModel):
    trend: List[float]
    violations_by_category: Dict[str, int]
    overall_score: float
    total_violations: int
    total_warnings: int


class SpendingOverview(CamelModel):
    monthly_comparison: List[MonthlyTrend]
    seasonality: Dict[str, List[float]]
    velocity: Velocity
    compliance: ComplianceMetrics
    total_spending: float
    average_monthly_spend: float
    period: str


class SavingsOpportunity(CamelModel):
    id: str
    title: str
    description: str
    category: str
    potential_savings: float
    confidence: str
    action: str
    severity: str
