from sqlalchemy import Column, Integer, String, ForeignKey, Text, Boolean, JSON, TIMESTAMP, UniqueConstraint
from sqlalchemy.orm import relationship
from app.database.database import Base
from datetime import datetime

class ApprovalRule(Base):
    __tablename__ = "approval_rules"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    # {"amount_threshold": "500.00", "category_ids": [..], "user_roles": [..], "departments": [..]}
    conditions = Column(JSON, nullable=False, default=dict)
    sequence = Column(String(20), nullable=False, default="SEQUENTIAL")  # SEQUENTIAL, PARALLEL
    min_approval_percentage = Column(Integer, nullable=False, default=100)
    is_manager_approval_required = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(TIMESTAMP, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, nullable=True)

    steps = relationship("ApprovalStep", back_populates="approval_rule", cascade="all, delete-orphan",
                         order_by="ApprovalStep.sequence_order")


class ApprovalStep(Base):
    __tablename__ = "approval_steps"
    __table_args__ = (UniqueConstraint("rule_id", "approver_id", name="uq_approval_step_rule_approver"),)

    id = Column(Integer, primary_key=True, index=True)
    sequence_order = Column(Integer, nullable=False) # 1, 2, 3 if sequential

    rule_id = Column(Integer, ForeignKey("approval_rules.id", ondelete="CASCADE"), nullable=False)
    approval_rule = relationship("ApprovalRule", back_populates="steps")

    approver_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False) # user who approves in this step
    approver = relationship("User")
