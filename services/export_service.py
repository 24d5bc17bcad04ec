"""Export of everything stored for a user, as JSON or a sectioned CSV."""
import csv
from io import StringIO

from sqlalchemy.orm import Session

from core.logger import get_logger
from models.enums import AccountType
from models.models import User
from services import policy_service, transaction_service

logger = get_logger("export_service")


def _iso(value):
    return value.isoformat() if value else None


def export_user_data(db: Session, user: User) -> dict:
    transactions = transaction_service.get_transactions(db, user.id)
    data = {
        "user": {
            "email": user.email,
            "name": user.name,
            "accountType": user.account_type,
            "createdAt": _iso(user.created_at),
        },
        "transactions": [
            {
                "amount": t.amount,
                "date": _iso(t.date),
                "description": t.description,
                "merchant": t.merchant,
                "category": t.category,
                "hasAnomaly": bool(t.has_anomaly),
                "policyStatus": t.policy_status,
                "createdAt": _iso(t.created_at),
            }
            for t in transactions
        ],
    }

    if user.account_type == AccountType.BUSINESS.value:
        data["policies"] = [
            {
                "title": p.title,
                "description": p.description,
                "effectiveDate": _iso(p.effective_date),
                "status": p.status,
                "createdAt": _iso(p.created_at),
            }
            for p in policy_service.get_policies(db, user.id)
        ]
        data["policyViolations"] = [
            {
                "transactionId": v.transaction_id,
                "violationType": v.violation_type,
                "severity": v.severity,
                "status": v.status,
                "createdAt": _iso(v.created_at),
            }
            for v in policy_service.get_violations(db, user.id)
        ]

    logger.info("Exported %s transactions for user %s", len(transactions), user.id)
    return data


def _write_section(writer, title: str, rows: list, empty_message: str) -> None:
    writer.writerow([title])
    if rows:
        headers = list(rows[0].keys())
        writer.writerow(headers)
        for row in rows:
            writer.writerow(["" if row[h] is None else row[h] for h in headers])
    else:
        writer.writerow([empty_message])
    writer.writerow([])


def to_csv(data: dict) -> StringIO:
    output = StringIO()
    writer = csv.writer(output)

    writer.writerow(["USER INFORMATION"])
    writer.writerow(["Field", "Value"])
    for key, value in data["user"].items():
        writer.writerow([key, value])
    writer.writerow([])

    _write_section(writer, "TRANSACTIONS", data["transactions"], "No transactions found")
    if "policies" in data:
        _write_section(writer, "POLICIES", data["policies"], "No policies found")
        _write_section(writer, "POLICY VIOLATIONS", data["policyViolations"], "No policy violations found")

    output.seek(0)
    return output
