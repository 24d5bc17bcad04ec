from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import StreamingResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from api.open_ai_client import AICoach
from core.logger import get_logger
from database import get_db
from models.enums import Category, ComplianceStatus, PolicyStatus, ViolationSeverity, ViolationStatus
from models.models import Transaction, User
from models.schemas import (
    AnomalyReport, AnomalyResult, CategoryAnalysis, ChatHistoryOut, ChatRequest, ComplianceResult,
    JustificationRequest, PolicyCreate, PolicyOut, PolicyOverview, PolicyUpdate,
    ReviewRequest, SavingsOpportunity, SpendingOverview, StatementImportRequest, StatementImportResult,
    TransactionCreate, TransactionOut, TransactionUpdate, UserCreate, UserOut, ViolationOut
)
from services import (
    analysis_service, analytics_service, coaching_service, export_service, policy_service,
    statement_service, transaction_service
)
from web.dependencies import get_coach, get_current_user

logger = get_logger("routes")

router = APIRouter()


@router.get("/health")
async def health():
    return {"status": "ok"}


# --- USERS ---
@router.post("/users", response_model=UserOut, status_code=201)
def create_user(payload: UserCreate, db: Session = Depends(get_db)):
    user = User(name=payload.name, email=payload.email, account_type=payload.account_type.value)
    try:
        db.add(user)
        db.commit()
        db.refresh(user)
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail="Email already registered")
    return user


@router.get("/users/me", response_model=UserOut)
def read_me(user: User = Depends(get_current_user)):
    return user


# --- TRANSACTIONS ---
@router.get("/transactions", response_model=List[TransactionOut])
def list_transactions(
    category: Optional[Category] = None,
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    anomalies_only: bool = Query(False, alias="anomaliesOnly"),
    policy_status: Optional[ComplianceStatus] = Query(None, alias="policyStatus"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return transaction_service.get_transactions(
        db, user.id, category, start_date, end_date, anomalies_only, policy_status
    )


@router.post("/transactions", response_model=TransactionOut, status_code=201)
def create_transaction(
    payload: TransactionCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        return transaction_service.create(db, user, payload)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Error creating transaction: %s", e)
        raise HTTPException(status_code=500, detail="Failed to create transaction")


@router.post("/transactions/check-anomaly")
def check_anomaly(
    payload: TransactionCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    candidate = Transaction(
        user_id=user.id,
        amount=payload.amount,
        date=payload.date or datetime.utcnow(),
        merchant=payload.merchant,
        category=payload.category.value
    )
    result: AnomalyResult = analysis_service.check_new_transaction(db, user.id, candidate)
    return {"anomaly": result.model_dump(by_alias=True)}


@router.post("/transactions/import-statement", response_model=StatementImportResult)
def import_statement(
    payload: StatementImportRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        return statement_service.import_statement(db, user, payload.content)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Error importing statement: %s", e)
        raise HTTPException(status_code=500, detail="Failed to process statement")


@router.get("/transactions/{tx_id}", response_model=TransactionOut)
def read_transaction(tx_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return transaction_service.get_by_id(db, tx_id, user.id)


@router.put("/transactions/{tx_id}", response_model=TransactionOut)
def update_transaction(
    tx_id: int,
    payload: TransactionUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        return transaction_service.update(db, tx_id, user, payload)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Error updating transaction %s: %s", tx_id, e)
        raise HTTPException(status_code=500, detail="Failed to update transaction")


@router.delete("/transactions/{tx_id}", status_code=204)
def delete_transaction(tx_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    transaction_service.delete(db, tx_id, user.id)
    return Response(status_code=204)


@router.post("/transactions/{tx_id}/compliance-check", response_model=ComplianceResult)
def compliance_check(tx_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return transaction_service.check_compliance(db, tx_id, user)


@router.post("/transactions/{tx_id}/mark-normal", response_model=TransactionOut)
def mark_normal(tx_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return transaction_service.mark_anomaly_normal(db, tx_id, user.id)


# --- ANALYSIS ---
@router.get("/analysis/anomalies", response_model=AnomalyReport)
def get_anomalies(
    date_range: str = Query("this-month", alias="dateRange"),
    severity_level: str = Query("all", alias="severityLevel", pattern="^(all|major|moderate|minor)$"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    report = analysis_service.detect_anomalies(db, user.id, date_range, severity_level)
    logger.info("Returning %s anomalies for user %s", len(report.anomalies), user.id)
    return report


@router.get("/analysis/spending-categories", response_model=CategoryAnalysis)
def get_spending_categories(
    date_range: str = Query("this-month", alias="dateRange"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return analysis_service.get_category_analysis(db, user.id, date_range, start_date, end_date)


# --- ANALYTICS ---
@router.get("/analytics/overview", response_model=SpendingOverview)
def spending_overview(
    period: str = Query("6-months", pattern="^(1-month|3-months|6-months|12-months)$"),
    categories: Optional[List[Category]] = Query(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    selected = [c.value for c in categories] if categories else None
    return analytics_service.get_spending_overview(db, user.id, period, selected)


@router.get("/analytics/savings-opportunities", response_model=List[SavingsOpportunity])
def savings_opportunities(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return analytics_service.get_savings_opportunities(db, user.id)


# --- POLICIES ---
@router.get("/policies", response_model=List[PolicyOut])
def list_policies(
    status: Optional[PolicyStatus] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return policy_service.get_policies(db, user.id, status)


@router.post("/policies", response_model=PolicyOut, status_code=201)
def create_policy(payload: PolicyCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    try:
        return policy_service.create_policy(db, user.id, payload)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Error creating policy: %s", e)
        raise HTTPException(status_code=500, detail="Failed to create policy")


@router.get("/policies/overview", response_model=Optional[PolicyOverview])
def policy_overview(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return policy_service.get_policy_overview(db, user.id)


@router.get("/policies/violations", response_model=List[ViolationOut])
def list_violations(
    status: Optional[ViolationStatus] = None,
    severity: Optional[ViolationSeverity] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return policy_service.get_violations(db, user.id, status, severity)


@router.post("/policies/violations/{violation_id}/justify", response_model=ViolationOut)
def justify_violation(
    violation_id: int,
    payload: JustificationRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return policy_service.justify_violation(db, violation_id, user.id, payload.justification)


@router.post("/policies/violations/{violation_id}/review", response_model=ViolationOut)
def review_violation(
    violation_id: int,
    payload: ReviewRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return policy_service.review_violation(db, violation_id, user.id, payload.decision, payload.notes)


@router.get("/policies/{policy_id}", response_model=PolicyOut)
def read_policy(policy_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return policy_service.get_policy(db, policy_id, user.id)


@router.put("/policies/{policy_id}", response_model=PolicyOut)
def update_policy(
    policy_id: int,
    payload: PolicyUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return policy_service.update_policy(db, policy_id, user.id, payload)


@router.delete("/policies/{policy_id}", status_code=204)
def delete_policy(policy_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    policy_service.delete_policy(db, policy_id, user.id)
    return Response(status_code=204)


# --- COACH ---
@router.post("/coach/chat")
def chat_with_coach(
    payload: ChatRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    coach: AICoach = Depends(get_coach)
):
    transactions = transaction_service.get_transactions(db, user.id)
    anomaly_report = analysis_service.detect_anomalies(db, user.id)
    overview = policy_service.get_policy_overview(db, user.id)

    messages = coaching_service.build_coaching_messages(user, transactions, anomaly_report.summary, overview, payload.message)
    reply = coach.get_financial_advice(messages)
    coaching_service.save_chat_history(db, user.id, payload.message, reply)
    return {"response": reply}


@router.get("/coach/history", response_model=List[ChatHistoryOut])
def chat_history(
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return coaching_service.get_chat_history(db, user.id, limit)


@router.get("/coach/starters")
def conversation_starters(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"starters": coaching_service.generate_conversation_starters(db, user)}


# --- SETTINGS ---
@router.get("/settings/export")
def export_data(
    format: str = Query("json", pattern="^(json|csv)$"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    data = export_service.export_user_data(db, user)
    if format == "csv":
        return StreamingResponse(
            export_service.to_csv(data),
            media_type="text/csv",
            headers={"Content-Disposition": "attachment; filename=spendai_export.csv"}
        )
    return data
