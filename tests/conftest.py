"""
Pytest fixtures for the expense approval test suite.

Provides:
- An in-memory SQLite database shared by every session of a test
- A recording notification sink
- Factories for companies, users, approval rules and expenses
- A FastAPI TestClient wired to the test database
"""
from datetime import date
from decimal import Decimal
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database.database import Base, get_db
# Registers every table on Base.metadata
import app.database.migration  # noqa: F401
from app.database.models.approval import ApprovalRule, ApprovalRuleApprover, ApprovalRuleCondition
from app.database.models.expense import Expense, ExpenseStatus
from app.database.models.users import Company, User
from app.logic.notifications import (
    DatabaseNotificationSink,
    NotificationEvent,
    NotificationSink,
    get_notification_sink,
)


class RecordingSink(NotificationSink):
    """Keeps every delivered event in memory"""

    def __init__(self):
        self.events: List[NotificationEvent] = []

    def _deliver(self, event: NotificationEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type) -> List[NotificationEvent]:
        return [e for e in self.events if e.event_type == event_type]


class FailingSink(NotificationSink):
    def __init__(self):
        self.attempts = 0

    def _deliver(self, event: NotificationEvent) -> None:
        self.attempts += 1
        raise RuntimeError("notification backend unavailable")


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def failing_sink():
    return FailingSink()


@pytest.fixture
def client(session_factory):
    from main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_sink] = lambda: DatabaseNotificationSink(session_factory)
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def company(db_session):
    company = Company(name="Acme Corp", country="United States", currency_code="USD")
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture
def make_user(db_session, company):
    counter = {"n": 0}

    def _make_user(
        name: str,
        role: str = "employee",
        manager: Optional[User] = None,
        department: Optional[str] = None,
        company_id: Optional[int] = None,
    ) -> User:
        counter["n"] += 1
        user = User(
            company_id=company_id or company.id,
            name=name,
            email=f"{name.lower().replace(' ', '.')}.{counter['n']}@acme.com",
            role=role,
            department=department,
            manager_id=manager.id if manager else None,
            is_active=True,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make_user


@pytest.fixture
def make_rule(db_session, company):
    def _make_rule(
        name: str,
        approvers: List[User],
        conditions: Optional[List[tuple]] = None,
        sequential: bool = False,
        manager_required: bool = False,
        min_pct: int = 100,
        priority: int = 100,
        required: Optional[List[User]] = None,
    ) -> ApprovalRule:
        required_ids = {u.id for u in (required or [])}
        rule = ApprovalRule(
            company_id=company.id,
            name=name,
            is_manager_approval_required=manager_required,
            is_sequence_required=sequential,
            min_approval_percentage=min_pct,
            priority=priority,
            is_active=True,
        )
        for kind, params in conditions or []:
            rule.conditions.append(ApprovalRuleCondition(kind=kind, params=params))
        for index, approver in enumerate(approvers, start=1):
            rule.approvers.append(ApprovalRuleApprover(
                approver_id=approver.id,
                sequence_order=index if sequential else None,
                is_required=approver.id in required_ids,
            ))
        db_session.add(rule)
        db_session.commit()
        return rule

    return _make_rule


@pytest.fixture
def make_expense(db_session, company):
    def _make_expense(submitter: User, amount: str = "100.00", category: str = "Travel") -> Expense:
        expense = Expense(
            company_id=company.id,
            submitter_id=submitter.id,
            amount=Decimal(amount),
            currency_code="USD",
            category=category,
            description=f"{category} expense",
            expense_date=date(2024, 5, 1),
            status=ExpenseStatus.DRAFT.value,
        )
        db_session.add(expense)
        db_session.commit()
        return expense

    return _make_expense
