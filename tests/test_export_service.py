import csv

from models.enums import AccountType
from models.schemas import TransactionCreate
from services import export_service, transaction_service


def test_personal_export_has_no_policy_sections(db, make_user, make_transaction):
    user = make_user(AccountType.PERSONAL, name="Sam")
    make_transaction(user, -12.5, merchant="Bakery")

    data = export_service.export_user_data(db, user)

    assert data["user"]["name"] == "Sam"
    assert data["user"]["accountType"] == "personal"
    assert data["transactions"][0]["merchant"] == "Bakery"
    assert data["transactions"][0]["date"] == "2024-06-10T12:00:00"
    assert "policies" not in data
    assert "policyViolations" not in data


def test_business_export_includes_policies_and_violations(db, make_user):
    user = make_user(AccountType.BUSINESS)
    transaction_service.create(db, user, TransactionCreate(amount=-90, merchant="Steakhouse", category="dining"))

    data = export_service.export_user_data(db, user)

    assert [p["title"] for p in data["policies"]] == ["Default Business Policy"]
    assert len(data["policyViolations"]) == 1
    assert data["policyViolations"][0]["violationType"] == "daily_limit"
    assert data["transactions"][0]["policyStatus"] == "violation"


def test_csv_export_sections(db, make_user):
    user = make_user(AccountType.PERSONAL)

    rows = list(csv.reader(export_service.to_csv(export_service.export_user_data(db, user))))

    assert rows[0] == ["USER INFORMATION"]
    assert rows[1] == ["Field", "Value"]
    assert ["name", "Alex"] in rows
    assert ["TRANSACTIONS"] in rows
    assert ["No transactions found"] in rows
    assert ["POLICIES"] not in rows
