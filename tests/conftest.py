import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db
from main import app
from models.enums import AccountType
from models.models import Transaction, User
from web.dependencies import get_coach


class FakeCoach:
    def __init__(self):
        self.calls = []

    def get_financial_advice(self, messages):
        self.calls.append(messages)
        return "Keep dining under your daily limit."


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    Session = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def coach():
    return FakeCoach()


@pytest.fixture
def client(db, coach):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_coach] = lambda: coach
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(account_type=AccountType.BUSINESS, name="Alex"):
        counter["n"] += 1
        user = User(name=name, email=f"user{counter['n']}@example.com", account_type=account_type.value)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def make_transaction(db):
    def _make(user, amount, category="dining", date=None, merchant="Cafe", **extra):
        transaction = Transaction(
            user_id=user.id,
            amount=amount,
            category=category,
            date=date or datetime(2024, 6, 10, 12, 0),
            merchant=merchant,
            **extra
        )
        db.add(transaction)
        db.commit()
        db.refresh(transaction)
        return transaction

    return _make
