from sqlalchemy import Column, Integer, String, ForeignKey, Text, Boolean, JSON, TIMESTAMP
from sqlalchemy.orm import relationship
from app.database.database import Base
from datetime import datetime

class ApprovalRule(Base):
    __tablename__ = "approval_rules"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    is_manager_approval_required = Column(Boolean, nullable=False, default=False)
    is_sequence_required = Column(Boolean, nullable=False, default=False)
    min_approval_percentage = Column(Integer, nullable=False, default=100)  # 1..100
    priority = Column(Integer, nullable=False, default=100)  # lower runs first
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(TIMESTAMP, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, nullable=True)

    company = relationship("Company")
    conditions = relationship(
        "ApprovalRuleCondition",
        back_populates="approval_rule",
        cascade="all, delete-orphan",
        order_by="ApprovalRuleCondition.id"
    )
    approvers = relationship(
        "ApprovalRuleApprover",
        back_populates="approval_rule",
        cascade="all, delete-orphan",
        order_by="ApprovalRuleApprover.id"
    )


class ApprovalRuleCondition(Base):
    __tablename__ = "approval_rule_conditions"

    id = Column(Integer, primary_key=True, index=True)
    rule_id = Column(Integer, ForeignKey("approval_rules.id", ondelete="CASCADE"), nullable=False)
    kind = Column(String(50), nullable=False)  # amount_threshold, category, user_role, department
    params = Column(JSON, nullable=False, default=dict)

    approval_rule = relationship("ApprovalRule", back_populates="conditions")


class ApprovalRuleApprover(Base):
    __tablename__ = "approval_rule_approvers"

    id = Column(Integer, primary_key=True, index=True)
    rule_id = Column(Integer, ForeignKey("approval_rules.id", ondelete="CASCADE"), nullable=False)
    approver_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    sequence_order = Column(Integer, nullable=True)  # 1..N, sequential rules only
    is_required = Column(Boolean, nullable=False, default=False)

    approval_rule = relationship("ApprovalRule", back_populates="approvers")
    approver = relationship("User")
