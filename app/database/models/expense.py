from sqlalchemy import Column, Integer, Numeric, String, ForeignKey, Text, Date, Boolean, Float, TIMESTAMP
from sqlalchemy.orm import relationship
from app.database.database import Base
from datetime import datetime

class Expense(Base):
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, index=True)
    submitter_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("expense_categories.id"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    description = Column(Text, nullable=False)
    merchant_name = Column(String(100), nullable=True)
    remarks = Column(Text, default=None)
    expense_date = Column(Date, nullable=False)
    status = Column(String(50), nullable=False, default="DRAFT")  # DRAFT, PENDING_APPROVAL, APPROVED, REJECTED

    # Approval plan snapshot taken at submission time
    approval_rule_id = Column(Integer, ForeignKey("approval_rules.id", ondelete="SET NULL"), nullable=True)
    approval_sequence = Column(String(20), nullable=True)  # SEQUENTIAL, PARALLEL
    required_approval_percentage = Column(Integer, nullable=True)
    submission_cycle = Column(Integer, nullable=False, default=0)
    submitted_at = Column(TIMESTAMP, nullable=True)

    version_id = Column(Integer, nullable=False, default=1)
    created_at = Column(TIMESTAMP, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, nullable=True)

    __mapper_args__ = {"version_id_col": version_id}

    # Relationships
    submitter = relationship("User", foreign_keys=[submitter_id])
    category = relationship("ExpenseCategory")
    receipt = relationship("ExpenseReceipt", back_populates="expense", uselist=False, cascade="all, delete-orphan")
    approvals = relationship("ExpenseApproval", back_populates="expense", cascade="all, delete-orphan",
                             order_by=lambda: [ExpenseApproval.submission_cycle, ExpenseApproval.sequence_order])

    def current_approvals(self):
        """Approval rows belonging to the latest submission cycle"""
        return [a for a in self.approvals if a.submission_cycle == self.submission_cycle]


class ExpenseReceipt(Base):
    __tablename__ = "expense_receipts"

    id = Column(Integer, primary_key=True, index=True)
    expense_id = Column(Integer, ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False, unique=True)
    file_url = Column(Text, nullable=False)
    file_name = Column(String(255), nullable=False)
    file_type = Column(String(100), nullable=False)
    file_size = Column(Integer, nullable=False, default=0)

    # Fields supplied by the external OCR extractor
    ocr_merchant = Column(String(255), nullable=True)
    ocr_amount = Column(Numeric(12, 2), nullable=True)
    ocr_date = Column(Date, nullable=True)
    ocr_confidence = Column(Float, nullable=True)

    uploaded_at = Column(TIMESTAMP, default=datetime.utcnow)

    expense = relationship("Expense", back_populates="receipt")


class ExpenseApproval(Base):
    __tablename__ = "expense_approvals"

    id = Column(Integer, primary_key=True, index=True)
    expense_id = Column(Integer, ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False, index=True)
    approver_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    submission_cycle = Column(Integer, nullable=False, default=1)
    sequence_order = Column(Integer, nullable=False, default=1)
    status = Column(String(50), nullable=False, default="PENDING")  # PENDING, APPROVED, REJECTED
    is_manager_approval = Column(Boolean, default=False)
    comments = Column(Text, nullable=True)
    processed_at = Column(TIMESTAMP, nullable=True)
    created_at = Column(TIMESTAMP, default=datetime.utcnow)

    expense = relationship("Expense", back_populates="approvals")
    approver = relationship("User")
