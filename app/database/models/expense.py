from sqlalchemy import Column, Integer, Numeric, String, ForeignKey, Text, Date, Boolean, TIMESTAMP
from sqlalchemy.orm import relationship
from app.database.database import Base
from app.logic.chain_mode import ChainMode, chain_mode_from_order
from datetime import datetime
from enum import Enum

class ExpenseStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ApprovalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"  # moot once its rule or the expense is decided


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    submitter_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    currency_code = Column(String(10), nullable=False, default="USD")
    category = Column(String(100), nullable=False)
    description = Column(Text)
    remarks = Column(Text, default=None)
    expense_date = Column(Date, nullable=False)
    status = Column(String(50), nullable=False, default=ExpenseStatus.DRAFT.value)
    chain_error = Column(Text, nullable=True)  # last failed chain build, cleared on success
    submitted_at = Column(TIMESTAMP, nullable=True)
    decided_at = Column(TIMESTAMP, nullable=True)
    created_at = Column(TIMESTAMP, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, nullable=True)

    submitter = relationship("User", foreign_keys=[submitter_id])
    chain_rules = relationship(
        "ApprovalChainRule",
        back_populates="expense",
        cascade="all, delete-orphan",
        order_by="ApprovalChainRule.position"
    )
    approvals = relationship(
        "ExpenseApproval",
        back_populates="expense",
        cascade="all, delete-orphan",
        order_by="ExpenseApproval.id"
    )


class ApprovalChainRule(Base):
    """Snapshot of an applicable rule taken when the chain was built"""
    __tablename__ = "approval_chain_rules"

    id = Column(Integer, primary_key=True, index=True)
    expense_id = Column(Integer, ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False, index=True)
    rule_id = Column(Integer, ForeignKey("approval_rules.id", ondelete="SET NULL"), nullable=True, index=True)
    rule_name = Column(String(100), nullable=False)
    position = Column(Integer, nullable=False)
    is_sequential = Column(Boolean, nullable=False, default=False)
    min_approval_percentage = Column(Integer, nullable=False)
    total_approvers = Column(Integer, nullable=False)
    created_at = Column(TIMESTAMP, default=datetime.utcnow)

    expense = relationship("Expense", back_populates="chain_rules")
    approvals = relationship("ExpenseApproval", back_populates="chain_rule", order_by="ExpenseApproval.id")


class ExpenseApproval(Base):
    __tablename__ = "expense_approvals"

    id = Column(Integer, primary_key=True, index=True)
    expense_id = Column(Integer, ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False, index=True)
    chain_rule_id = Column(Integer, ForeignKey("approval_chain_rules.id", ondelete="CASCADE"), nullable=False)
    rule_id = Column(Integer, ForeignKey("approval_rules.id", ondelete="SET NULL"), nullable=True)  # null for manager tasks
    approver_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String(50), nullable=False, default=ApprovalStatus.PENDING.value)
    sequence_order = Column(Integer, nullable=True)  # null for parallel tasks
    is_manager_approval = Column(Boolean, nullable=False, default=False)
    is_required = Column(Boolean, nullable=False, default=False)
    comments = Column(Text, nullable=True)
    processed_at = Column(TIMESTAMP, nullable=True)
    created_at = Column(TIMESTAMP, default=datetime.utcnow)

    expense = relationship("Expense", back_populates="approvals")
    chain_rule = relationship("ApprovalChainRule", back_populates="approvals")
    approver = relationship("User")

    @property
    def chain_mode(self) -> ChainMode:
        return chain_mode_from_order(self.sequence_order)

    @property
    def is_terminal(self) -> bool:
        return self.status != ApprovalStatus.PENDING.value
