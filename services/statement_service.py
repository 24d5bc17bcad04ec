"""Bank statement import: CSV rows become transactions checked like any other."""
import csv
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from io import StringIO
from typing import List, Optional

from sqlalchemy.orm import Session

from core.exceptions import ValidationError
from core.logger import get_logger
from models.enums import Category
from models.models import Transaction, User
from models.schemas import StatementImportResult, TransactionCreate, TransactionOut
from services import transaction_service

logger = get_logger("statement_service")

# month-first before day-first, as most exported statements are US formatted
DATE_FORMATS = (
    "%m/%d/%Y", "%d/%m/%Y",
    "%m-%d-%Y", "%d-%m-%Y",
    "%d.%m.%Y",
    "%d %b %Y", "%d %B %Y", "%b %d, %Y",
)

# first matching category wins
CATEGORY_KEYWORDS = (
    (Category.GROCERIES, ("grocery", "supermarket", "food", "walmart", "kroger", "safeway", "whole foods",
                          "trader joe", "costco", "target", "fresh market")),
    (Category.TRANSPORT, ("gas", "fuel", "transport", "uber", "lyft", "taxi", "shell", "exxon", "chevron",
                          "bp", "mobil", "parking", "metro", "bus")),
    (Category.DINING, ("restaurant", "coffee", "dining", "starbucks", "mcdonald", "burger", "pizza", "cafe",
                       "bistro", "grill", "kitchen", "bar", "pub", "diner")),
    (Category.SHOPPING, ("shop", "store", "amazon", "mall", "retail", "clothing", "fashion", "electronics",
                         "best buy", "home depot", "lowes")),
    (Category.ENTERTAINMENT, ("entertainment", "movie", "netflix", "spotify", "theater", "cinema", "streaming",
                              "music", "game", "concert", "show")),
    (Category.UTILITIES, ("utility", "electric", "water", "internet", "phone", "cable", "power", "gas company",
                          "telecom", "wireless")),
)

MERCHANT_NOISE = (
    re.compile(r"Card \d+x+\d+", re.IGNORECASE),
    re.compile(r"Receipt \d+", re.IGNORECASE),
    re.compile(r"Date \d{1,2} \w{3} \d{4}", re.IGNORECASE),
    re.compile(r"Time \d{1,2}:\d{2}[AP]M", re.IGNORECASE),
    re.compile(r"\bIn [A-Z][A-Z\s]*"),
    re.compile(r"- (Visa|EFTPOS|BPAY) (Purchase|Payment)", re.IGNORECASE),
)

DUPLICATE_WINDOW = timedelta(days=1)


@dataclass
class StatementLine:
    date: datetime
    merchant: str
    description: str
    amount: float
    category: Category


def parse_flexible_date(value: str) -> datetime:
    value = value.strip()
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        pass
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    raise ValueError(f"Cannot parse date: {value}")


def parse_flexible_amount(value: Optional[str]) -> Optional[float]:
    """Amount from a statement cell; ``None`` when the cell is empty or unreadable.

    Currency symbols, thousands separators and spaces are ignored, and
    ``(12.50)`` reads as -12.50.
    """
    if not value or not value.strip():
        return None
    cleaned = re.sub(r"[$,\s()]", "", value)
    try:
        amount = float(cleaned)
    except ValueError:
        return None
    if "(" in value and ")" in value:
        return -abs(amount)
    return amount


def extract_merchant_name(description: str) -> str:
    merchant = description
    for pattern in MERCHANT_NOISE:
        merchant = pattern.sub("", merchant).strip()
    merchant = re.sub(r"\s*-\s*$", "", merchant).strip()
    return re.split(r"\s*-\s*", merchant)[0].strip()


def categorize(merchant: str, description: str) -> Category:
    text = f"{merchant} {description}".lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return category
    return Category.OTHER


def parse_statement_csv(content: str) -> List[StatementLine]:
    """Parse ``Date, Description, Credit, Debit[, Balance]`` rows.

    Credits become positive amounts and debits negative ones. Rows with an
    unreadable date or no amount are skipped.
    """
    rows = [row for row in csv.reader(StringIO(content)) if any(cell.strip() for cell in row)]
    if not rows:
        raise ValidationError("CSV file is empty")

    header = ",".join(rows[0]).lower()
    if "date" in header or "description" in header:
        rows = rows[1:]

    lines = []
    skipped = 0
    for row in rows:
        if len(row) < 3:
            skipped += 1
            continue
        try:
            date = parse_flexible_date(row[0])
        except ValueError as e:
            logger.debug("Skipping statement row: %s", e)
            skipped += 1
            continue

        description = row[1].strip()
        credit = parse_flexible_amount(row[2])
        debit = parse_flexible_amount(row[3]) if len(row) > 3 else None
        if credit:
            amount = abs(credit)
        elif debit:
            amount = -abs(debit)
        else:
            skipped += 1
            continue

        merchant = extract_merchant_name(description) or "Unknown Merchant"
        lines.append(StatementLine(
            date=date,
            merchant=merchant,
            description=description or "Transaction from CSV",
            amount=amount,
            category=categorize(merchant, description)
        ))

    logger.info("Parsed %s statement rows, skipped %s", len(lines), skipped)
    return lines


def _is_duplicate(db: Session, user_id: int, line: StatementLine) -> bool:
    return db.query(Transaction).filter(
        Transaction.user_id == user_id,
        Transaction.merchant == line.merchant,
        Transaction.amount == line.amount,
        Transaction.date >= line.date - DUPLICATE_WINDOW,
        Transaction.date <= line.date + DUPLICATE_WINDOW,
        Transaction.is_deleted.is_(False)
    ).first() is not None


def import_statement(db: Session, user: User, content: str) -> StatementImportResult:
    lines = parse_statement_csv(content)

    saved = []
    duplicates = 0
    for line in lines:
        if _is_duplicate(db, user.id, line):
            duplicates += 1
            continue
        saved.append(transaction_service.create(db, user, TransactionCreate(
            amount=line.amount,
            merchant=line.merchant,
            date=line.date,
            description=line.description,
            category=line.category
        )))

    logger.info(
        "Statement import for user %s: %s extracted, %s saved, %s duplicates",
        user.id, len(lines), len(saved), duplicates
    )
    return StatementImportResult(
        message=(
            f"Statement processed successfully. {len(saved)} new transactions added "
            f"from your file, {duplicates} duplicates skipped."
        ),
        transaction_count=len(saved),
        duplicates_skipped=duplicates,
        transactions=[TransactionOut.model_validate(t) for t in saved]
    )
